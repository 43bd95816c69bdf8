import struct

import pytest

from xexkit.loader import load_image_file, parse_image
from xexkit.section import SectionFlags

BASE = 0x82000000
TEXT = bytes.fromhex("60000000" "4e800020") * 8
SHSTR = b"\0.text\0.shstrtab\0"


def build_elf(ei_data=2):
    data = bytearray(0x200)
    ident = b"\x7fELF" + bytes([1, ei_data, 1]) + bytes(9)
    struct.pack_into(">16sHHIIIIIHHHHHH", data, 0, ident, 2, 0x14, 1, BASE + 0x100,
                     52, 0x180, 0, 52, 32, 1, 40, 3, 2)
    struct.pack_into(">8I", data, 52, 1, 0, BASE, BASE, 0x200, 0x200, 5, 0x10000)
    data[0x100:0x100 + len(TEXT)] = TEXT
    data[0x140:0x140 + len(SHSTR)] = SHSTR
    struct.pack_into(">10I", data, 0x180 + 40, 1, 1, 6, BASE + 0x100, 0x100, len(TEXT), 0, 0, 4, 0)
    struct.pack_into(">10I", data, 0x180 + 80, 7, 3, 0, 0, 0x140, len(SHSTR), 0, 0, 1, 0)
    return bytes(data)


def build_xex():
    image = bytearray(0x2000)
    struct.pack_into("<I", image, 0x3C, 0x40)
    image[0x40:0x44] = b"PE\0\0"
    struct.pack_into("<H", image, 0x46, 1)
    struct.pack_into("<I", image, 0x58 + 16, 0x1000)
    struct.pack_into("<I", image, 0x58 + 28, BASE)
    struct.pack_into("<8sIIIIIIHHI", image, 0x138, b".text", 0x1000, 0x1000, 0x1000, 0x1000, 0, 0, 0, 0, 0x20)
    image[0x1000:0x1000 + len(TEXT)] = TEXT
    security = struct.pack(">II256sIII20sI20s16s16sI20sIII", 0, 0x2000, bytes(256), 0, 0, 0, bytes(20),
                           0, bytes(20), bytes(16), bytes(16), 0, bytes(20), 0, 0, 0)
    header = struct.pack(">4s5I", b"XEX2", 0, 432, 0, 40, 1)
    header += struct.pack(">II", 0x3FF, 32) + struct.pack(">IHH", 8, 0, 0) + security
    header += bytes(432 - len(header))
    return header + bytes(image)


def test_elf_header_fields():
    elf = build_elf()
    image = parse_image(elf)
    assert image.base == BASE
    assert image.entry_point == BASE + 0x100
    assert image.size == len(elf)
    assert image.data == elf


def test_elf_sections_and_flags():
    image = parse_image(build_elf())
    text = image.find_section(".text")
    assert text.base == BASE + 0x100
    assert text.size == len(TEXT)
    assert text.flags == SectionFlags.CODE
    assert image.find_section(".shstrtab").flags == SectionFlags.NONE
    assert len(image.sections) == 2


def test_elf_read_through_section():
    image = parse_image(build_elf())
    assert image.find(BASE + 0x110) == 0x110
    assert image.read(BASE + 0x100, len(TEXT)) == TEXT


def test_little_endian_elf_rejected():
    with pytest.raises(ValueError):
        parse_image(build_elf(ei_data=1))


def test_unknown_format_rejected():
    with pytest.raises(ValueError):
        parse_image(b"MZ\0\0" + bytes(64))


def test_short_data_rejected():
    with pytest.raises(ValueError):
        parse_image(b"XE")


def test_xex_dispatch():
    image = parse_image(build_xex())
    assert image.base == BASE
    assert image.entry_point == BASE + 0x1000
    assert image.read(BASE + 0x1000, len(TEXT)) == TEXT


def test_load_image_file(tmp_path):
    path = tmp_path / "module.elf"
    path.write_bytes(build_elf())
    image = load_image_file(path)
    assert image.find_section(".text").base == BASE + 0x100


def test_load_missing_file_raises(tmp_path):
    with pytest.raises(OSError):
        load_image_file(tmp_path / "missing.xex")