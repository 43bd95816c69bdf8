"""Vector helpers over 128-bit registers held in host lane order.

Byte vectors are 16 lanes and halfword vectors 8 lanes. Word and float
vectors are 4 lanes. Lane 0 is the least significant lane of the host register.
"""

from __future__ import annotations

import math
import struct
from typing import Sequence, Union

_INT_MIN = -(1 << 31)
_INT_MAX = (1 << 31) - 1
_U32_MAX = 0xFFFFFFFF
_TABLE_ROWS = 16

VectorLike = Union[bytes, bytearray, Sequence[int]]


def _lanes(values, count: int, name: str) -> list:
    lanes = list(values)
    if len(lanes) != count:
        raise ValueError(f"{name} must have {count} lanes, got {len(lanes)}")
    return lanes


def _unsigned(values, count: int, bits: int, name: str) -> list[int]:
    mask = (1 << bits) - 1
    return [int(v) & mask for v in _lanes(values, count, name)]


def _signed(value: int, bits: int) -> int:
    value &= (1 << bits) - 1
    return value - (1 << bits) if value >> (bits - 1) else value


def _check_shift(shift: int) -> int:
    if not 0 <= shift < _TABLE_ROWS:
        raise ValueError(f"shift must be in 0..15, got {shift}")
    return shift


def vector_mask_left(shift: int) -> bytes:
    """Row of the left mask table: 0xFF for the first ``shift`` lanes, then descending indices."""
    shift = _check_shift(shift)
    return bytes(0xFF if i < shift else 0x0F - (i - shift) for i in range(16))


def vector_mask_right(shift: int) -> bytes:
    """Row of the right mask table: descending indices for ``shift`` lanes, then 0xFF."""
    shift = _check_shift(shift)
    return bytes(shift - 1 - i if i < shift else 0xFF for i in range(16))


def vector_shift_left(shift: int) -> bytes:
    """Row of the left shift table used to build shuffle controls."""
    shift = _check_shift(shift)
    return bytes(0x0F - i + shift for i in range(16))


def vector_shift_right(shift: int) -> bytes:
    """Row of the right shift table used to build shuffle controls."""
    shift = _check_shift(shift)
    return bytes(0x1F - i - shift for i in range(16))


def adds_epu32(a, b) -> list[int]:
    """Unsigned saturating add of four 32-bit lanes."""
    left = _unsigned(a, 4, 32, "a")
    right = _unsigned(b, 4, 32, "b")
    return [x + min(x ^ _U32_MAX, y) for x, y in zip(left, right)]


def avg_epi8(a, b) -> list[int]:
    """Signed rounding average of sixteen 8-bit lanes."""
    left = [_signed(v, 8) for v in _lanes(a, 16, "a")]
    right = [_signed(v, 8) for v in _lanes(b, 16, "b")]
    return [(x + y + 1) >> 1 for x, y in zip(left, right)]


def avg_epi16(a, b) -> list[int]:
    """Signed rounding average of eight 16-bit lanes."""
    left = [_signed(v, 16) for v in _lanes(a, 8, "a")]
    right = [_signed(v, 16) for v in _lanes(b, 8, "b")]
    return [(x + y + 1) >> 1 for x, y in zip(left, right)]


def _to_single(value: float) -> float:
    return struct.unpack("<f", struct.pack("<f", value))[0]


def cvtepu32_ps(values) -> list[float]:
    """Convert four unsigned 32-bit lanes to single precision, rounding to nearest."""
    return [_to_single(float(v)) for v in _unsigned(values, 4, 32, "values")]


def perm_epi8(a, b, control) -> bytes:
    """Byte permute: each control byte selects from ``a`` or, with bit 4 set, from ``b``."""
    first = _unsigned(a, 16, 8, "a")
    second = _unsigned(b, 16, 8, "b")
    selectors = _unsigned(control, 16, 8, "control")
    return bytes(
        (second if c & 0x10 else first)[0x0F - (c & 0x0F)] for c in selectors
    )


def cmpgt_epu8(a, b) -> list[int]:
    """Unsigned greater-than of sixteen 8-bit lanes; 0xFF where true."""
    left = _unsigned(a, 16, 8, "a")
    right = _unsigned(b, 16, 8, "b")
    return [0xFF if x > y else 0 for x, y in zip(left, right)]


def cmpgt_epu16(a, b) -> list[int]:
    """Unsigned greater-than of eight 16-bit lanes; 0xFFFF where true."""
    left = _unsigned(a, 8, 16, "a")
    right = _unsigned(b, 8, 16, "b")
    return [0xFFFF if x > y else 0 for x, y in zip(left, right)]


def _saturate_to_int32(value: float) -> int:
    if math.isnan(value):
        return 0
    if value >= 2147483648.0:
        return _INT_MAX
    if value < -2147483648.0:
        return _INT_MIN
    return math.trunc(value)


def vctsxs(values) -> list[int]:
    """Truncate four single-precision lanes to signed 32-bit, saturating; NaN gives 0."""
    return [_saturate_to_int32(_to_single(float(v))) for v in _lanes(values, 4, "values")]


def vsr(a, shift) -> bytes:
    """Shift a 16-byte register right by the low three bits of ``shift``.

    ``shift`` is an int or a vector whose low quadword holds the count.
    """
    register = bytes(_unsigned(a, 16, 8, "a"))
    if isinstance(shift, int):
        count = shift & 7
    else:
        count = int.from_bytes(bytes(_unsigned(shift, 16, 8, "shift"))[:8], "little") & 7
    value = int.from_bytes(register, "little") >> count
    return value.to_bytes(16, "little")