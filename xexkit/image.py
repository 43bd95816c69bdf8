"""Loaded executable images: raw bytes, sections and symbols."""

from __future__ import annotations

from bisect import bisect_left, bisect_right
from dataclasses import dataclass, field
from typing import Optional

from .section import Section, SectionFlags
from .symbols import SymbolTable


@dataclass
class Image:
    """An executable image with sections ordered by virtual address."""

    data: bytearray = field(default_factory=bytearray)
    base: int = 0
    size: int = 0
    entry_point: int = 0
    sections: list[Section] = field(default_factory=list)
    symbols: SymbolTable = field(default_factory=SymbolTable)

    def _bases(self) -> list[int]:
        return [section.base for section in self.sections]

    def map(self, name, base, size, flags, data_offset) -> Section:
        """Map a section by RVA; a section already at that address is kept."""
        section = Section(name or "", self.base + base, size, SectionFlags(flags), data_offset)
        index = bisect_left(self._bases(), section.base)
        if index < len(self.sections) and self.sections[index].base == section.base:
            return self.sections[index]
        self.sections.insert(index, section)
        return section

    def find(self, address: int) -> int:
        """Offset into ``data`` for a virtual address, via the nearest section below it."""
        index = bisect_right(self._bases(), address) - 1
        if index < 0:
            raise LookupError(f"no section maps address {address:#x}")
        section = self.sections[index]
        return section.data_offset + (address - section.base)

    def find_section(self, name: str) -> Optional[Section]:
        """The first section with the given name, or None."""
        return next((section for section in self.sections if section.name == name), None)

    def read(self, address: int, length: int) -> bytes:
        """Read ``length`` bytes of image data at a virtual address."""
        offset = self.find(address)
        if offset < 0 or length < 0 or offset + length > len(self.data):
            raise ValueError(f"{length} bytes at {address:#x} lie outside the image data")
        return bytes(self.data[offset:offset + length])