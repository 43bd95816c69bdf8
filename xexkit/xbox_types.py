"""Fixed-layout guest structures with natural C alignment."""

from __future__ import annotations

import enum
import functools
import re
import struct
from dataclasses import dataclass, field, fields
from typing import ClassVar, NamedTuple, Optional

_SPEC = re.compile(r"([<>]?)(\d*)([a-zA-Z?])")


class _Slot(NamedTuple):
    name: str
    offset: int
    codec: Optional[struct.Struct]
    nested: Optional[type]
    is_array: bool


def _round_up(value: int, align: int) -> int:
    return -(-value // align) * align


@functools.lru_cache(maxsize=None)
def _layout(cls):
    slots = []
    offset = 0
    max_align = 1
    for f in fields(cls):
        spec = f.metadata["fmt"]
        if isinstance(spec, type):
            size = spec.byte_size()
            align = spec._alignment()
            slot_codec, nested, is_array = None, spec, False
        else:
            match = _SPEC.fullmatch(spec)
            if match is None:
                raise TypeError(f"bad field format {spec!r}")
            order, count, code = match.groups()
            order = order or cls._ORDER
            slot_codec = struct.Struct(f"{order}{count}{code}")
            align = 1 if code == "s" else struct.calcsize(order + code)
            size = slot_codec.size
            nested = None
            is_array = bool(count) and code != "s"
        offset = _round_up(offset, align)
        slots.append(_Slot(f.name, offset, slot_codec, nested, is_array))
        offset += size
        max_align = max(max_align, align)
    return tuple(slots), _round_up(offset, max_align), max_align


def _scalar(fmt: str, default=0):
    return field(default=default, metadata={"fmt": fmt})


def _array(fmt: str, count: int):
    return field(default_factory=lambda: (0,) * count, metadata={"fmt": f"{count}{fmt}"})


def _chars(count: int):
    return field(default=bytes(count), metadata={"fmt": f"{count}s"})


def _nested(cls):
    return field(default_factory=cls, metadata={"fmt": cls})


def _c_string(raw: bytes) -> str:
    return raw.split(b"\0", 1)[0].decode("latin-1")


def _wide_string(units) -> str:
    chars = []
    for unit in units:
        if unit == 0:
            break
        chars.append(unit)
    return struct.pack(f"<{len(chars)}H", *chars).decode("utf-16-le")


class GuestStruct:
    """Base for structures laid out as in guest memory."""

    _ORDER: ClassVar[str] = ">"

    @classmethod
    def from_bytes(cls, data, offset=0):
        """Decode an instance from ``data`` starting at ``offset``."""
        slots, size, _ = _layout(cls)
        if offset < 0 or offset + size > len(data):
            raise ValueError(f"{cls.__name__} needs {size} bytes at offset {offset}")
        values = {}
        for slot in slots:
            position = offset + slot.offset
            if slot.nested is not None:
                values[slot.name] = slot.nested.from_bytes(data, position)
            else:
                unpacked = slot.codec.unpack_from(data, position)
                values[slot.name] = unpacked if slot.is_array else unpacked[0]
        return cls(**values)

    def to_bytes(self) -> bytes:
        """Encode the instance into its guest byte layout."""
        slots, size, _ = _layout(type(self))
        buffer = bytearray(size)
        for slot in slots:
            value = getattr(self, slot.name)
            if slot.nested is not None:
                if not isinstance(value, slot.nested):
                    raise TypeError(f"{slot.name} must be {slot.nested.__name__}")
                encoded = value.to_bytes()
                buffer[slot.offset:slot.offset + len(encoded)] = encoded
                continue
            args = tuple(value) if slot.is_array else (value,)
            try:
                slot.codec.pack_into(buffer, slot.offset, *args)
            except struct.error as exc:
                raise ValueError(f"cannot encode field {slot.name}: {exc}") from exc
        return bytes(buffer)

    @classmethod
    def byte_size(cls) -> int:
        """Size of the structure in bytes, including trailing padding."""
        if cls is GuestStruct:
            return 0
        return _layout(cls)[1]

    @classmethod
    def _alignment(cls) -> int:
        return _layout(cls)[2]


@dataclass
class RuntimeFunction(GuestStruct):
    begin_address: int = _scalar("I")
    data: int = _scalar("I")

    @property
    def prolog_length(self) -> int:
        return self.data & 0xFF

    @property
    def function_length(self) -> int:
        return (self.data >> 8) & 0x3FFFFF

    @property
    def thirty_two_bit(self) -> bool:
        return bool((self.data >> 30) & 1)

    @property
    def exception_flag(self) -> bool:
        return bool((self.data >> 31) & 1)


@dataclass
class ListEntry(GuestStruct):
    flink: int = _scalar("I")
    blink: int = _scalar("I")


@dataclass
class DispatcherHeader(GuestStruct):
    type: int = _scalar("B")
    absolute: int = _scalar("B")
    size: int = _scalar("B")
    inserted: int = _scalar("B")
    signal_state: int = _scalar("I")
    wait_list_head: ListEntry = _nested(ListEntry)

    @property
    def lock(self) -> int:
        """The first four bytes read as one big-endian word."""
        return int.from_bytes(bytes((self.type, self.absolute, self.size, self.inserted)), "big")


@dataclass
class AnsiString(GuestStruct):
    length: int = _scalar("H")
    maximum_length: int = _scalar("H")
    buffer: int = _scalar("I")


@dataclass
class ObjectAttributes(GuestStruct):
    root_directory: int = _scalar("I")
    name: int = _scalar("I")
    attributes: int = _scalar("I")


@dataclass
class IoStatusBlock(GuestStruct):
    status: int = _scalar("I")
    information: int = _scalar("I")

    @property
    def pointer(self) -> int:
        return self.status


@dataclass
class Overlapped(GuestStruct):
    internal: int = _scalar("I")
    internal_high: int = _scalar("I")
    offset: int = _scalar("I")
    offset_high: int = _scalar("I")
    event: int = _scalar("I")


@dataclass
class XOverlapped(GuestStruct):
    error: int = _scalar("I")
    length: int = _scalar("I")
    internal_context: int = _scalar("<I")
    event: int = _scalar("I")
    completion_routine: int = _scalar("I")
    completion_context: int = _scalar("I")
    extended_error: int = _scalar("I")


@dataclass
class MemoryStatus(GuestStruct):
    length: int = _scalar("I")
    memory_load: int = _scalar("I")
    total_phys: int = _scalar("I")
    avail_phys: int = _scalar("I")
    total_page_file: int = _scalar("I")
    avail_page_file: int = _scalar("I")
    total_virtual: int = _scalar("I")
    avail_virtual: int = _scalar("I")


@dataclass
class VideoMode(GuestStruct):
    display_width: int = _scalar("I")
    display_height: int = _scalar("I")
    is_interlaced: int = _scalar("I")
    is_widescreen: int = _scalar("I")
    is_high_definition: int = _scalar("I")
    refresh_rate: int = _scalar("I")
    video_standard: int = _scalar("I")
    unknown_4a: int = _scalar("I")
    unknown_01: int = _scalar("I")
    reserved: tuple = _array("I", 3)


@dataclass
class KSemaphore(GuestStruct):
    header: DispatcherHeader = _nested(DispatcherHeader)
    limit: int = _scalar("I")


@dataclass
class UserSigninInfo(GuestStruct):
    xuid: int = _scalar("Q")
    field_08: int = _scalar("I")
    signin_state: int = _scalar("I")
    field_10: int = _scalar("I")
    field_14: int = _scalar("I")
    name: bytes = _chars(16)

    @property
    def name_text(self) -> str:
        return _c_string(self.name)


@dataclass
class TimeFields(GuestStruct):
    year: int = _scalar("H")
    month: int = _scalar("H")
    day: int = _scalar("H")
    hour: int = _scalar("H")
    minute: int = _scalar("H")
    second: int = _scalar("H")
    milliseconds: int = _scalar("H")
    weekday: int = _scalar("H")


CONTENT_MAX_DISPLAYNAME = 128
CONTENT_MAX_FILENAME = 42
CONTENT_DEVICE_MAX_NAME = 27


@dataclass
class ContentData(GuestStruct):
    device_id: int = _scalar("I")
    content_type: int = _scalar("I")
    display_name: tuple = _array("H", CONTENT_MAX_DISPLAYNAME)
    file_name: bytes = _chars(CONTENT_MAX_FILENAME)

    @property
    def display_name_text(self) -> str:
        return _wide_string(self.display_name)

    @property
    def file_name_text(self) -> str:
        return _c_string(self.file_name)


@dataclass
class DeviceData(GuestStruct):
    device_id: int = _scalar("I")
    device_type: int = _scalar("I")
    device_bytes: int = _scalar("Q")
    device_free_bytes: int = _scalar("Q")
    name: tuple = _array("H", CONTENT_DEVICE_MAX_NAME)

    @property
    def name_text(self) -> str:
        return _wide_string(self.name)


class GamepadButtons(enum.IntFlag):
    DPAD_UP = 0x0001
    DPAD_DOWN = 0x0002
    DPAD_LEFT = 0x0004
    DPAD_RIGHT = 0x0008
    START = 0x0010
    BACK = 0x0020
    LEFT_THUMB = 0x0040
    RIGHT_THUMB = 0x0080
    LEFT_SHOULDER = 0x0100
    RIGHT_SHOULDER = 0x0200
    A = 0x1000
    B = 0x2000
    X = 0x4000
    Y = 0x8000


@dataclass
class Gamepad(GuestStruct):
    _ORDER: ClassVar[str] = "<"

    buttons: int = _scalar("H")
    left_trigger: int = _scalar("B")
    right_trigger: int = _scalar("B")
    thumb_lx: int = _scalar("h")
    thumb_ly: int = _scalar("h")
    thumb_rx: int = _scalar("h")
    thumb_ry: int = _scalar("h")


@dataclass
class Vibration(GuestStruct):
    _ORDER: ClassVar[str] = "<"

    left_motor_speed: int = _scalar("H")
    right_motor_speed: int = _scalar("H")


@dataclass
class InputCapabilities(GuestStruct):
    _ORDER: ClassVar[str] = "<"

    type: int = _scalar("B")
    sub_type: int = _scalar("B")
    flags: int = _scalar("H")
    gamepad: Gamepad = _nested(Gamepad)
    vibration: Vibration = _nested(Vibration)


@dataclass
class InputState(GuestStruct):
    _ORDER: ClassVar[str] = "<"

    packet_number: int = _scalar("I")
    gamepad: Gamepad = _nested(Gamepad)