"""Reader for XDBF resource databases: strings, images and achievements."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass
from typing import Iterator, NamedTuple, Optional

XDBF_SIGNATURE = 0x58444246
XACH_SIGNATURE = 0x58414348

_HEADER = struct.Struct(">6I")
_ENTRY = struct.Struct(">HQII")
_FREE_SPACE_ENTRY = struct.Struct(">II")
_TABLE_HEADER = struct.Struct(">IIIH")
_STRING_ENTRY = struct.Struct(">HH")
_ACHIEVEMENT_ENTRY = struct.Struct(">HHHHIH2xI16x")


class Namespace(enum.IntEnum):
    SPA_METADATA = 1
    SPA_IMAGE = 2
    SPA_STRING_TABLE = 3
    GPD_ACHIEVEMENT = 1
    GPD_IMAGE = 2
    GPD_SETTING = 3
    GPD_TITLE = 4
    GPD_STRING = 5
    GPD_ACHIEVEMENT_SECURITY_GFWL = 6
    GPD_AVATAR_AWARD_360 = 6


class Language(enum.IntEnum):
    UNKNOWN = 0
    ENGLISH = 1
    JAPANESE = 2
    GERMAN = 3
    FRENCH = 4
    SPANISH = 5
    ITALIAN = 6
    KOREAN = 7
    CHINESE_TRAD = 8
    PORTUGUESE = 9
    CHINESE_SIMP = 10
    POLISH = 11
    RUSSIAN = 12


class AchievementFlags(enum.IntFlag):
    TYPE_COMPLETION = 1
    TYPE_LEVELING = 2
    TYPE_UNLOCK = 3
    TYPE_EVENT = 4
    TYPE_TOURNAMENT = 5
    TYPE_CHECKPOINT = 6
    TYPE_OTHER = 7
    TYPE_MASK = 7
    STATUS_UNACHIEVED = 1 << 4
    STATUS_EARNED_ONLINE = 1 << 16
    STATUS_EARNED = 1 << 17
    STATUS_EDITED = 1 << 20


class TitleType(enum.IntEnum):
    SYSTEM = 0
    FULL = 1
    DEMO = 2
    DOWNLOAD = 3


@dataclass
class Achievement:
    id: int = 0
    name: str = ""
    unlocked_desc: str = ""
    locked_desc: str = ""
    image: Optional[bytes] = None
    score: int = 0


@dataclass
class XdbfBlock:
    """A resource's bytes and their offset within the database."""

    offset: int
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


class _Entry(NamedTuple):
    namespace: int
    resource_id: int
    offset: int
    length: int


def _unpack(codec: struct.Struct, data: bytes, offset: int, what: str) -> tuple:
    if offset < 0 or offset + codec.size > len(data):
        raise ValueError(f"{what} at offset {offset:#x} runs past the end of the data")
    return codec.unpack_from(data, offset)


class XdbfFile:
    """An XDBF database held in memory."""

    def __init__(self, data) -> None:
        data = bytes(data)
        if len(data) <= _HEADER.size:
            raise ValueError("data is too short for an XDBF header")
        (signature, self.version, self.entry_table_length, self.entry_count,
         self.free_space_table_length, self.free_space_entry_count) = _HEADER.unpack_from(data, 0)
        if signature != XDBF_SIGNATURE:
            raise ValueError("bad XDBF signature")
        self.data = data

        cursor = _HEADER.size
        self.entries: list[_Entry] = []
        for _ in range(self.entry_count):
            self.entries.append(_Entry(*_unpack(_ENTRY, data, cursor, "XDBF entry")))
            cursor += _ENTRY.size

        cursor += _FREE_SPACE_ENTRY.size * self.free_space_table_length
        if cursor > len(data):
            raise ValueError("XDBF free space table runs past the end of the data")
        self.content_offset = cursor

    def get_resource(self, namespace, resource_id) -> Optional[XdbfBlock]:
        """The first resource with this namespace and id, or None."""
        for entry in self.entries:
            if entry.namespace == namespace and entry.resource_id == resource_id:
                start = self.content_offset + entry.offset
                if start + entry.length > len(self.data):
                    raise ValueError("XDBF resource runs past the end of the data")
                return XdbfBlock(start, self.data[start:start + entry.length])
        return None

    def get_string(self, language, string_id) -> str:
        """A string from the language's table, or an empty string."""
        block = self.get_resource(Namespace.SPA_STRING_TABLE, int(language))
        if block is None:
            return ""
        table = block.data
        count = _unpack(_TABLE_HEADER, table, 0, "string table header")[3]
        cursor = _TABLE_HEADER.size
        for _ in range(count):
            entry_id, length = _unpack(_STRING_ENTRY, table, cursor, "string entry")
            cursor += _STRING_ENTRY.size
            if entry_id == string_id:
                raw = table[cursor:cursor + length]
                if len(raw) < length:
                    raise ValueError("string runs past the end of its table")
                return raw.decode("utf-8", errors="replace")
            cursor += length
        return ""

    def _achievement_entries(self) -> Iterator[tuple]:
        block = self.get_resource(Namespace.SPA_METADATA, XACH_SIGNATURE)
        if block is None:
            return
        table = block.data
        count = _unpack(_TABLE_HEADER, table, 0, "achievement table header")[3]
        cursor = _TABLE_HEADER.size
        for _ in range(count):
            yield _unpack(_ACHIEVEMENT_ENTRY, table, cursor, "achievement entry")
            cursor += _ACHIEVEMENT_ENTRY.size

    def _make_achievement(self, language, entry: tuple) -> Achievement:
        achievement_id, name_id, unlocked_id, locked_id, image_id, score, _flags = entry
        image = self.get_resource(Namespace.SPA_IMAGE, image_id)
        return Achievement(
            id=achievement_id,
            name=self.get_string(language, name_id),
            unlocked_desc=self.get_string(language, unlocked_id),
            locked_desc=self.get_string(language, locked_id),
            image=image.data if image is not None else None,
            score=score,
        )

    def get_achievements(self, language) -> list[Achievement]:
        """All achievements, with text in the given language."""
        return [self._make_achievement(language, entry) for entry in self._achievement_entries()]

    def get_achievement(self, language, achievement_id) -> Optional[Achievement]:
        """The achievement with the given id, or None."""
        for entry in self._achievement_entries():
            if entry[0] == achievement_id:
                return self._make_achievement(language, entry)
        return None