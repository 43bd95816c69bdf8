"""Byte-order helpers for big-endian guest data and guest handle tagging."""

from __future__ import annotations

import struct

_GUEST_HANDLE_BIT = 0x80000000
_VALID_SIZES = (1, 2, 4, 8)


def byte_swap(value: int, size: int) -> int:
    """Reverse the byte order of an unsigned integer of ``size`` bytes."""
    if size not in _VALID_SIZES:
        raise ValueError(f"unexpected byte size: {size}")
    masked = value & ((1 << (size * 8)) - 1)
    return int.from_bytes(masked.to_bytes(size, "little"), "big")


def swap_float(value: float) -> float:
    """Reinterpret a single-precision float with its bytes reversed."""
    return struct.unpack("<f", struct.pack(">f", value))[0]


def swap_double(value: float) -> float:
    """Reinterpret a double-precision float with its bytes reversed."""
    return struct.unpack("<d", struct.pack(">d", value))[0]


def is_guest_handle(handle: int) -> bool:
    """Return True if the handle carries the guest tag bit."""
    return (handle & _GUEST_HANDLE_BIT) == _GUEST_HANDLE_BIT


def to_guest_handle(handle: int) -> int:
    """Tag a host handle as a guest handle."""
    return handle | _GUEST_HANDLE_BIT


def to_host_handle(handle: int) -> int:
    """Strip the guest tag bit from a handle."""
    return handle & ~_GUEST_HANDLE_BIT