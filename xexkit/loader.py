"""Detect an executable's format and load it into an Image."""

from __future__ import annotations

import struct

from .files import PathLike, load_file
from .image import Image
from .section import SectionFlags
from .xex import load_xex_image

_ELF_MAGIC = b"\x7fELF"
_XEX_MAGIC = b"XEX2"
_EI_DATA = 5
_ELF_DATA_BIG_ENDIAN = 2
_PT_LOAD = 1
_SHF_EXECINSTR = 0x4

_ELF_HEADER = struct.Struct(">16sHHIIIIIHHHHHH")
_PROGRAM_HEADER = struct.Struct(">8I")
_SECTION_HEADER = struct.Struct(">10I")


def _table(data, offset: int, count: int, codec: struct.Struct):
    end = offset + count * codec.size
    if offset < 0 or end > len(data):
        raise ValueError("ELF table runs past the end of the data")
    return list(codec.iter_unpack(bytes(data[offset:end])))


def _c_string_at(data, offset: int) -> str:
    end = data.find(b"\0", offset)
    if end < 0:
        end = len(data)
    return bytes(data[offset:end]).decode("latin-1")


def _load_elf_image(data) -> Image:
    if len(data) < _ELF_HEADER.size:
        raise ValueError("ELF header is truncated")
    (ident, _type, _machine, _version, entry, phoff, shoff, _flags,
     _ehsize, _phentsize, phnum, _shentsize, shnum, shstrndx) = _ELF_HEADER.unpack_from(data, 0)
    if ident[_EI_DATA] != _ELF_DATA_BIG_ENDIAN:
        raise ValueError("only big-endian ELF images are supported")

    image = Image(data=bytearray(data), size=len(data), entry_point=entry)

    for program in _table(data, phoff, phnum, _PROGRAM_HEADER):
        if program[0] == _PT_LOAD:
            image.base = program[2]
            break

    sections = _table(data, shoff, shnum, _SECTION_HEADER)
    if shstrndx >= len(sections):
        raise ValueError("ELF string table index is out of range")
    string_table = sections[shstrndx][4]

    for name_index, sh_type, sh_flags, sh_addr, sh_offset, sh_size, *_ in sections:
        if sh_type == 0:
            continue
        flags = SectionFlags.CODE if sh_flags & _SHF_EXECINSTR else SectionFlags.NONE
        name = _c_string_at(image.data, string_table + name_index) if name_index else ""
        image.map(name, sh_addr - image.base, sh_size, flags, sh_offset)

    return image


def parse_image(data) -> Image:
    """Load an ELF or XEX2 executable from bytes."""
    magic = bytes(data[:4])
    if magic == _ELF_MAGIC:
        return _load_elf_image(data)
    if magic == _XEX_MAGIC:
        return load_xex_image(data)
    raise ValueError("unrecognised executable format")


def load_image_file(path: PathLike) -> Image:
    """Read and load an executable file."""
    return parse_image(load_file(path))