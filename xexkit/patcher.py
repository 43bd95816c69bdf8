"""Apply XEX delta patches to a base executable."""

from __future__ import annotations

import enum
import hashlib
import os
import struct
from contextlib import ExitStack
from dataclasses import dataclass

from .files import MemoryMappedFile, PathLike
from .lzx import LzxError, lzx_decompress
from .xex import (
    CompressionType,
    EncryptionType,
    FileFormatInfo,
    HeaderKey,
    ModuleFlags,
    SecurityInfo,
    XexError,
    XexHeader,
    aes_cbc_decrypt,
    decrypt_image_key,
    find_opt_header,
)

_MAGIC = b"XEX2"
_DELTA_ENTRY = struct.Struct(">IIHH")
_DESCRIPTOR = struct.Struct(">III20s16s7I")
_BLOCK_INFO = struct.Struct(">I20s")
_WINDOW = struct.Struct(">I")


class PatchResult(enum.Enum):
    SUCCESS = 0
    FILE_OPEN_FAILED = 1
    FILE_WRITE_FAILED = 2
    XEX_FILE_UNSUPPORTED = 3
    XEX_FILE_INVALID = 4
    PATCH_FILE_INVALID = 5
    PATCH_INCOMPATIBLE = 6
    PATCH_FAILED = 7
    PATCH_UNSUPPORTED = 8


class PatchError(Exception):
    """Raised when a patch cannot be applied; ``result`` says why."""

    def __init__(self, result: PatchResult, message: str = "") -> None:
        super().__init__(message or result.name)
        self.result = result


@dataclass
class _Descriptor:
    size: int
    target_version: int
    source_version: int
    digest_source: bytes
    image_key_source: bytes
    size_of_target_headers: int
    headers_source_offset: int
    headers_source_size: int
    headers_target_offset: int
    image_source_offset: int
    image_source_size: int
    image_target_offset: int


def _guard(result: PatchResult, action, *args):
    try:
        return action(*args)
    except (XexError, struct.error) as exc:
        raise PatchError(result, str(exc)) from exc


def _write(dest, offset: int, data: bytes) -> None:
    if offset < 0 or offset + len(data) > len(dest):
        raise PatchError(PatchResult.PATCH_FAILED, "patch writes outside the target")
    dest[offset:offset + len(data)] = data


def _read(source, offset: int, length: int) -> bytes:
    if offset < 0 or offset + length > len(source):
        raise PatchError(PatchResult.PATCH_FAILED, "patch reads outside the target")
    return bytes(source[offset:offset + length])


def apply_delta_patch(patch, window_size, dest) -> None:
    """Apply a run of delta patch entries to ``dest`` in place."""
    patch = bytes(patch)
    position = 0
    while position < len(patch):
        if position + _DELTA_ENTRY.size > len(patch):
            raise PatchError(PatchResult.PATCH_FAILED, "delta patch entry is truncated")
        old, new, uncompressed, compressed = _DELTA_ENTRY.unpack_from(patch, position)
        if not (old or new or uncompressed or compressed):
            break
        if compressed == 0:
            _write(dest, new, bytes(uncompressed))
            position += _DELTA_ENTRY.size
        elif compressed == 1:
            _write(dest, new, _read(dest, old, uncompressed))
            position += _DELTA_ENTRY.size
        else:
            start = position + _DELTA_ENTRY.size
            reference = _read(dest, old, uncompressed)
            try:
                decoded = lzx_decompress(patch[start:start + compressed], uncompressed, window_size, reference)
            except LzxError as exc:
                raise PatchError(PatchResult.PATCH_FAILED, str(exc)) from exc
            _write(dest, new, decoded)
            position = start + compressed


def apply_patch(xex_bytes, patch_bytes, skip_data=False) -> bytes:
    """Return the patched executable; raises PatchError on failure."""
    xex = bytes(xex_bytes)
    patch = bytes(patch_bytes)
    if xex[:4] != _MAGIC:
        raise PatchError(PatchResult.XEX_FILE_INVALID)
    if patch[:4] != _MAGIC:
        raise PatchError(PatchResult.PATCH_FILE_INVALID)

    xex_header = _guard(PatchResult.XEX_FILE_INVALID, XexHeader.parse, xex)
    patch_header = _guard(PatchResult.PATCH_FILE_INVALID, XexHeader.parse, patch)
    patch_flags = ModuleFlags.MODULE_PATCH | ModuleFlags.PATCH_DELTA | ModuleFlags.PATCH_FULL
    if not patch_header.module_flags & patch_flags:
        raise PatchError(PatchResult.PATCH_FILE_INVALID, "not a patch file")

    invalid = PatchResult.PATCH_FILE_INVALID
    descriptor_offset = _guard(invalid, find_opt_header, patch, HeaderKey.DELTA_PATCH_DESCRIPTOR)
    if descriptor_offset is None:
        raise PatchError(invalid, "no delta patch descriptor")
    descriptor = _Descriptor(*_guard(invalid, _DESCRIPTOR.unpack_from, patch, descriptor_offset))
    format_offset = _guard(invalid, find_opt_header, patch, HeaderKey.FILE_FORMAT_INFO)
    if format_offset is None:
        raise PatchError(invalid, "no file format info")
    patch_format = _guard(invalid, FileFormatInfo.parse, patch, format_offset)
    if patch_format.compression_type != CompressionType.DELTA:
        raise PatchError(invalid, "patch is not delta compressed")
    (window_size,) = _guard(invalid, _WINDOW.unpack_from, patch, format_offset + 8)
    block_size, block_digest = _guard(invalid, _BLOCK_INFO.unpack_from, patch, format_offset + 12)

    incompatible = PatchResult.PATCH_INCOMPATIBLE
    if descriptor.headers_source_offset > xex_header.header_size:
        raise PatchError(incompatible)
    if descriptor.headers_source_size > xex_header.header_size - descriptor.headers_source_offset:
        raise PatchError(incompatible)
    if descriptor.headers_target_offset > descriptor.size_of_target_headers:
        raise PatchError(incompatible)
    if descriptor.headers_source_size > descriptor.size_of_target_headers - descriptor.headers_target_offset:
        raise PatchError(incompatible)

    target_size = descriptor.size_of_target_headers or (
        descriptor.headers_target_offset + descriptor.headers_source_size)
    out = bytearray(max(target_size, xex_header.header_size))
    copied = min(target_size, len(xex))
    out[:copied] = xex[:copied]
    if descriptor.headers_source_offset > 0:
        moved = _read(out, descriptor.headers_source_offset, descriptor.headers_source_size)
        _write(out, descriptor.headers_target_offset, moved)

    info_start = descriptor_offset + _DESCRIPTOR.size
    apply_delta_patch(patch[info_start:info_start + descriptor.size], window_size, out)

    del out[target_size:]
    failed = PatchResult.PATCH_FAILED
    new_header = _guard(failed, XexHeader.parse, out)
    new_security = _guard(failed, SecurityInfo.parse, out, new_header.security_offset)
    body = xex[xex_header.header_size:]
    out += bytes(new_security.image_size)
    out[target_size:target_size + len(body)] = body

    original_security = _guard(PatchResult.XEX_FILE_INVALID, SecurityInfo.parse, xex, xex_header.security_offset)
    patch_security = _guard(invalid, SecurityInfo.parse, patch, patch_header.security_offset)
    original_key = decrypt_image_key(original_security.aes_key)
    new_key = decrypt_image_key(new_security.aes_key)
    patch_key = aes_cbc_decrypt(new_key, patch_security.aes_key)
    image_key_source = aes_cbc_decrypt(new_key, descriptor.image_key_source)
    if image_key_source != original_key:
        raise PatchError(incompatible, "patch key does not match the base executable")

    if skip_data:
        return bytes(out)

    base_format_offset = _guard(PatchResult.XEX_FILE_INVALID, find_opt_header, xex, HeaderKey.FILE_FORMAT_INFO)
    if base_format_offset is None:
        raise PatchError(PatchResult.XEX_FILE_INVALID, "no file format info")
    base_format = _guard(PatchResult.XEX_FILE_INVALID, FileFormatInfo.parse, xex, base_format_offset)

    if base_format.encryption_type == EncryptionType.NORMAL:
        region = bytes(out[target_size:target_size + len(body)])
        out[target_size:target_size + len(region)] = aes_cbc_decrypt(original_key, region)
    elif base_format.encryption_type != EncryptionType.NONE:
        raise PatchError(PatchResult.XEX_FILE_INVALID, "unknown encryption type")

    if base_format.compression_type == CompressionType.BASIC:
        compressed_size = sum(data_size for data_size, _ in base_format.blocks)
        image_size = sum(data_size + zero_size for data_size, zero_size in base_format.blocks)
        if len(out) < target_size + image_size:
            raise PatchError(PatchResult.XEX_FILE_INVALID, "image is larger than declared")
        source = bytes(out[target_size:target_size + compressed_size])
        expanded = bytearray()
        cursor = 0
        for data_size, zero_size in base_format.blocks:
            expanded += source[cursor:cursor + data_size]
            expanded += bytes(zero_size)
            cursor += data_size
        out[target_size:target_size + image_size] = expanded
    elif base_format.compression_type in (CompressionType.NORMAL, CompressionType.DELTA):
        raise PatchError(PatchResult.XEX_FILE_UNSUPPORTED)
    elif base_format.compression_type != CompressionType.NONE:
        raise PatchError(PatchResult.XEX_FILE_INVALID, "unknown compression type")

    new_format_offset = _guard(failed, find_opt_header, out, HeaderKey.FILE_FORMAT_INFO)
    if new_format_offset is None:
        raise PatchError(failed, "patched header lacks file format info")
    _guard(failed, struct.pack_into, ">HH", out, new_format_offset + 4,
           EncryptionType.NONE, CompressionType.NONE)

    patch_data = patch[patch_header.header_size:]
    if patch_format.encryption_type == EncryptionType.NORMAL:
        patch_data = aes_cbc_decrypt(patch_key, patch_data)
    elif patch_format.encryption_type != EncryptionType.NONE:
        raise PatchError(invalid, "unknown patch encryption type")

    exe_base = new_header.header_size
    if descriptor.image_source_offset > 0:
        moved = _read(out, exe_base + descriptor.image_source_offset, descriptor.image_source_size)
        _write(out, exe_base + descriptor.image_target_offset, moved)

    cursor = 0
    with memoryview(out) as view:
        exe = view[exe_base:]
        try:
            while block_size > 0:
                if block_size < _BLOCK_INFO.size or cursor + _BLOCK_INFO.size > len(patch_data):
                    raise PatchError(failed, "patch block is truncated")
                next_size, next_digest = _BLOCK_INFO.unpack_from(patch_data, cursor)
                if hashlib.sha1(patch_data[cursor:cursor + block_size]).digest() != block_digest:
                    raise PatchError(failed, "patch block digest mismatch")
                cursor += _BLOCK_INFO.size
                data_size = block_size - _BLOCK_INFO.size
                apply_delta_patch(patch_data[cursor:cursor + data_size], window_size, exe)
                cursor += data_size
                block_size, block_digest = next_size, next_digest
        finally:
            exe.release()

    return bytes(out)


def apply_patch_files(base_path: PathLike, patch_path: PathLike, new_path: PathLike) -> PatchResult:
    """Patch the executable at ``base_path`` and write it to ``new_path``."""
    with ExitStack() as stack:
        try:
            base = stack.enter_context(MemoryMappedFile(base_path))
            patch = stack.enter_context(MemoryMappedFile(patch_path))
        except OSError as exc:
            raise PatchError(PatchResult.FILE_OPEN_FAILED, str(exc)) from exc
        patched = apply_patch(base.data(), patch.data(), False)

    try:
        stream = open(new_path, "wb")
    except OSError as exc:
        raise PatchError(PatchResult.FILE_OPEN_FAILED, str(exc)) from exc
    try:
        with stream:
            stream.write(patched)
    except OSError as exc:
        try:
            os.remove(new_path)
        except OSError:
            pass
        raise PatchError(PatchResult.FILE_WRITE_FAILED, str(exc)) from exc
    return PatchResult.SUCCESS