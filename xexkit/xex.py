"""XEX2 executable headers and image loading."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass
from typing import Mapping, Optional

from Crypto.Cipher import AES

from .image import Image
from .section import SectionFlags
from .symbols import Symbol, SymbolType

RETAIL_KEY = bytes(
    (0x20, 0xB1, 0x85, 0xA5, 0x9D, 0x28, 0xFD, 0xC3, 0x40, 0x58, 0x3F, 0xBB, 0x08, 0x96, 0xBF, 0x91)
)
_BLANK_IV = bytes(16)
_KEY_SIZE = 16

_IMAGE_SCN_CNT_CODE = 0x00000020
# Three nops followed by blr, in guest byte order.
_IMPORT_THUNK = bytes.fromhex("60000000" "60000000" "60000000" "4e800020")

_HEADER = struct.Struct(">4s5I")
_OPT_HEADER = struct.Struct(">II")
_SECURITY = struct.Struct(">II256sIII20sI20s16s16sI20sIII")
_FILE_FORMAT = struct.Struct(">IHH")
_BASIC_BLOCK = struct.Struct(">II")
_IMPORT_HEADER = struct.Struct(">III")
_IMPORT_LIBRARY = struct.Struct(">I20sIIIHH")
_PE_SECTION = struct.Struct("<8sIIIIIIHHI")
_NT_HEADERS_SIZE = 4 + 20 + 224


class ModuleFlags(enum.IntFlag):
    MODULE_PATCH = 0x10
    PATCH_FULL = 0x20
    PATCH_DELTA = 0x40


class HeaderKey(enum.IntEnum):
    RESOURCE_INFO = 0x000002FF
    FILE_FORMAT_INFO = 0x000003FF
    DELTA_PATCH_DESCRIPTOR = 0x000005FF
    BASE_REFERENCE = 0x00000405
    BOUNDING_PATH = 0x000080FF
    DEVICE_ID = 0x00008105
    ORIGINAL_BASE_ADDRESS = 0x00010001
    ENTRY_POINT = 0x00010100
    IMAGE_BASE_ADDRESS = 0x00010201
    IMPORT_LIBRARIES = 0x000103FF
    CHECKSUM_TIMESTAMP = 0x00018002
    ENABLED_FOR_CALLCAP = 0x00018102
    ENABLED_FOR_FASTCAP = 0x00018200
    ORIGINAL_PE_NAME = 0x000183FF
    STATIC_LIBRARIES = 0x000200FF
    TLS_INFO = 0x00020104
    DEFAULT_STACK_SIZE = 0x00020200
    DEFAULT_FILESYSTEM_CACHE_SIZE = 0x00020301
    DEFAULT_HEAP_SIZE = 0x00020401
    PAGE_HEAP_SIZE_AND_FLAGS = 0x00028002
    SYSTEM_FLAGS = 0x00030000
    EXECUTION_INFO = 0x00040006
    TITLE_WORKSPACE_SIZE = 0x00040201
    GAME_RATINGS = 0x00040310
    LAN_KEY = 0x00040404
    XBOX360_LOGO = 0x000405FF
    MULTIDISC_MEDIA_IDS = 0x000406FF
    ALTERNATE_TITLE_IDS = 0x000407FF
    ADDITIONAL_TITLE_MEMORY = 0x00040801
    EXPORTS_BY_NAME = 0x00E10402


class EncryptionType(enum.IntEnum):
    NONE = 0
    NORMAL = 1


class CompressionType(enum.IntEnum):
    NONE = 0
    BASIC = 1
    NORMAL = 2
    DELTA = 3


class XexError(ValueError):
    """Raised for malformed or unsupported XEX data."""


def _check_bounds(data, offset: int, size: int, what: str) -> None:
    if offset < 0 or offset + size > len(data):
        raise XexError(f"{what} at offset {offset:#x} runs past the end of the data")


@dataclass
class XexHeader:
    magic: bytes
    module_flags: int
    header_size: int
    reserved: int
    security_offset: int
    header_count: int

    @classmethod
    def parse(cls, data) -> "XexHeader":
        _check_bounds(data, 0, _HEADER.size, "XEX header")
        return cls(*_HEADER.unpack_from(data, 0))


@dataclass
class SecurityInfo:
    header_size: int
    image_size: int
    rsa_signature: bytes
    unknown: int
    image_flags: int
    load_address: int
    section_digest: bytes
    import_table_count: int
    import_table_digest: bytes
    xgd2_media_id: bytes
    aes_key: bytes
    export_table: int
    header_digest: bytes
    region: int
    allowed_media_types: int
    page_descriptor_count: int

    @classmethod
    def parse(cls, data, offset) -> "SecurityInfo":
        _check_bounds(data, offset, _SECURITY.size, "security info")
        return cls(*_SECURITY.unpack_from(data, offset))


@dataclass
class FileFormatInfo:
    info_size: int
    encryption_type: int
    compression_type: int
    blocks: tuple = ()
    payload: bytes = b""

    @classmethod
    def parse(cls, data, offset) -> "FileFormatInfo":
        _check_bounds(data, offset, _FILE_FORMAT.size, "file format info")
        info_size, encryption, compression = _FILE_FORMAT.unpack_from(data, offset)
        end = offset + max(info_size, _FILE_FORMAT.size)
        _check_bounds(data, offset, end - offset, "file format info")
        payload = bytes(data[offset + _FILE_FORMAT.size:end])
        blocks: tuple = ()
        if compression == CompressionType.BASIC:
            count = max(info_size // _BASIC_BLOCK.size - 1, 0)
            raw = payload[:count * _BASIC_BLOCK.size]
            if len(raw) < count * _BASIC_BLOCK.size:
                raise XexError("basic compression block table is truncated")
            blocks = tuple(_BASIC_BLOCK.iter_unpack(raw))
        return cls(info_size, encryption, compression, blocks, payload)


def find_opt_header(data, key) -> Optional[int]:
    """Offset of an optional header's data, or None if the key is absent.

    Keys whose low byte is zero hold their value inline; the offset of that
    value within the header table is returned for them.
    """
    header = XexHeader.parse(data)
    table_size = header.header_count * _OPT_HEADER.size
    _check_bounds(data, _HEADER.size, table_size, "optional header table")
    table = bytes(data[_HEADER.size:_HEADER.size + table_size])
    for index, (entry_key, value) in enumerate(_OPT_HEADER.iter_unpack(table)):
        if entry_key == key:
            if key & 0xFF == 0:
                return _HEADER.size + index * _OPT_HEADER.size + 4
            return value
    return None


def aes_cbc_decrypt(key, data) -> bytes:
    """AES-128-CBC decryption with a zero IV; a partial trailing block is left as is."""
    data = bytes(data)
    whole = len(data) - len(data) % 16
    cipher = AES.new(bytes(key), AES.MODE_CBC, iv=_BLANK_IV)
    return cipher.decrypt(data[:whole]) + data[whole:]


def decrypt_image_key(encrypted_key) -> bytes:
    """Decrypt an image's session key with the retail key."""
    if len(encrypted_key) != _KEY_SIZE:
        raise ValueError(f"image key must be {_KEY_SIZE} bytes")
    return aes_cbc_decrypt(RETAIL_KEY, encrypted_key)


def _expand_basic(body: bytes, blocks) -> bytearray:
    out = bytearray()
    cursor = 0
    for data_size, zero_size in blocks:
        chunk = body[cursor:cursor + data_size]
        if len(chunk) < data_size:
            raise XexError("compressed image data is truncated")
        out += chunk
        out += bytes(zero_size)
        cursor += data_size
    return out


def _map_pe(image: Image) -> None:
    data = image.data
    try:
        (lfanew,) = struct.unpack_from("<I", data, 0x3C)
        (num_sections,) = struct.unpack_from("<H", data, lfanew + 6)
        (entry,) = struct.unpack_from("<I", data, lfanew + 24 + 16)
        (image_base,) = struct.unpack_from("<I", data, lfanew + 24 + 28)
    except struct.error as exc:
        raise XexError(f"malformed PE headers: {exc}") from exc

    image.base = image_base
    image.entry_point = image_base + entry

    table = lfanew + _NT_HEADERS_SIZE
    table_size = num_sections * _PE_SECTION.size
    _check_bounds(data, table, table_size, "PE section table")
    for fields in _PE_SECTION.iter_unpack(bytes(data[table:table + table_size])):
        raw_name, virtual_size, virtual_address = fields[0], fields[1], fields[2]
        characteristics = fields[-1]
        flags = SectionFlags.CODE if characteristics & _IMAGE_SCN_CNT_CODE else SectionFlags.NONE
        name = raw_name.split(b"\0", 1)[0].decode("latin-1")
        image.map(name, virtual_address, virtual_size, flags, virtual_address)


def _resolve_imports(image: Image, data, offset: int, exports: Mapping[str, Mapping[int, str]]) -> None:
    _check_bounds(data, offset, _IMPORT_HEADER.size, "import header")
    _, string_table_size, count = _IMPORT_HEADER.unpack_from(data, offset)

    names = []
    cursor = offset + _IMPORT_HEADER.size
    for _ in range(count):
        end = bytes(data).find(b"\0", cursor)
        if end < 0:
            raise XexError("import string table is not terminated")
        names.append(bytes(data[cursor:end]).decode("latin-1"))
        cursor = end + 1

    library = offset + _IMPORT_HEADER.size + string_table_size
    for name in names:
        _check_bounds(data, library, _IMPORT_LIBRARY.size, "import library")
        num_imports = _IMPORT_LIBRARY.unpack_from(data, library)[-1]
        ordinals = exports.get(name, {})
        descriptors = library + _IMPORT_LIBRARY.size
        _check_bounds(data, descriptors, num_imports * 4, "import descriptors")
        for (thunk_address,) in struct.iter_unpack(">I", bytes(data[descriptors:descriptors + num_imports * 4])):
            position = image.find(thunk_address)
            _check_bounds(image.data, position, 4, "import thunk")
            value = int.from_bytes(image.data[position:position + 4], "big")
            # The thunk word is left byte-reversed in place.
            image.data[position:position + 4] = value.to_bytes(4, "little")
            if value >> 24 != 0:
                symbol_name = ordinals.get(value & 0xFFFF)
                if symbol_name is not None:
                    image.symbols.add(
                        Symbol(symbol_name, thunk_address, len(_IMPORT_THUNK), SymbolType.FUNCTION)
                    )
                _check_bounds(image.data, position, len(_IMPORT_THUNK), "import thunk")
                image.data[position:position + len(_IMPORT_THUNK)] = _IMPORT_THUNK
        library = descriptors + num_imports * 4


def load_xex_image(data, exports: Optional[Mapping[str, Mapping[int, str]]] = None) -> Image:
    """Decrypt, decompress and map an XEX2 executable.

    ``exports`` maps an import library name to a table of ordinal -> symbol
    name; imported functions found there are added to the image's symbols.
    """
    header = XexHeader.parse(data)
    security = SecurityInfo.parse(data, header.security_offset)
    format_offset = find_opt_header(data, HeaderKey.FILE_FORMAT_INFO)
    if format_offset is None:
        raise XexError("XEX has no file format info")
    info = FileFormatInfo.parse(data, format_offset)
    if info.compression_type > CompressionType.BASIC:
        raise XexError(f"unsupported compression type {info.compression_type}")

    body = bytes(data[header.header_size:])
    if info.encryption_type == EncryptionType.NORMAL:
        body = aes_cbc_decrypt(decrypt_image_key(security.aes_key), body)

    if info.compression_type == CompressionType.NONE:
        if len(body) < security.image_size:
            raise XexError("image data is truncated")
        image_data = bytearray(body[:security.image_size])
    else:
        image_data = _expand_basic(body, info.blocks)

    image = Image(data=image_data, size=security.image_size)
    _map_pe(image)

    imports_offset = find_opt_header(data, HeaderKey.IMPORT_LIBRARIES)
    if imports_offset is not None:
        _resolve_imports(image, data, imports_offset, exports or {})
    return image