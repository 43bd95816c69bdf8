"""Image sections and their flags."""

from __future__ import annotations

import enum
from dataclasses import dataclass


class SectionFlags(enum.IntFlag):
    NONE = 0
    DATA = 1
    CODE = 2


@dataclass
class Section:
    """A named region of an image, ordered by its base address."""

    name: str = ""
    base: int = 0
    size: int = 0
    flags: SectionFlags = SectionFlags.NONE
    data_offset: int = 0

    def __post_init__(self) -> None:
        self.flags = SectionFlags(self.flags)

    def contains(self, address: int) -> bool:
        """True if the address lies within the section."""
        return self.base <= address < self.base + self.size

    def end(self) -> int:
        """The first address past the section."""
        return self.base + self.size

    def __lt__(self, other) -> bool:
        other_base = other.base if isinstance(other, Section) else other
        return self.base < other_base