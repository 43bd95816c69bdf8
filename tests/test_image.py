import pytest

from xexkit.image import Image
from xexkit.section import SectionFlags

BASE = 0x82000000


def make_image():
    data = bytearray(range(256)) * 4
    image = Image(data=data, base=BASE, size=len(data))
    image.map(".text", 0x100, 0x100, SectionFlags.CODE, 0x100)
    image.map(".data", 0x200, 0x100, SectionFlags.NONE, 0x200)
    return image


def test_map_adds_image_base():
    image = make_image()
    text = image.find_section(".text")
    assert text.base == BASE + 0x100
    assert text.size == 0x100
    assert text.flags == SectionFlags.CODE


def test_find_returns_data_offset():
    image = make_image()
    assert image.find(BASE + 0x110) == 0x110
    assert image.find(BASE + 0x200) == 0x200


def test_sections_kept_in_address_order():
    image = Image(base=BASE)
    image.map("b", 0x300, 0x10, 0, 0)
    image.map("a", 0x100, 0x10, 0, 0)
    image.map("c", 0x200, 0x10, 0, 0)
    assert [section.name for section in image.sections] == ["a", "c", "b"]


def test_duplicate_base_keeps_first_section():
    image = make_image()
    kept = image.map(".other", 0x100, 0x20, SectionFlags.DATA, 0)
    assert kept.name == ".text"
    assert len(image.sections) == 2


def test_find_below_all_sections_raises():
    image = make_image()
    with pytest.raises(LookupError):
        image.find(BASE)


def test_find_section_missing_is_none():
    assert make_image().find_section(".bss") is None


def test_read_returns_bytes_from_section():
    image = make_image()
    assert image.read(BASE + 0x104, 4) == bytes(image.data[0x104:0x108])


def test_read_past_data_raises():
    image = make_image()
    with pytest.raises(ValueError):
        image.read(BASE + 0x2F0, 0x400)


def test_none_name_becomes_empty():
    image = Image(base=BASE)
    section = image.map(None, 0, 4, 0, 0)
    assert section.name == ""