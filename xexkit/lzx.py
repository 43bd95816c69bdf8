"""LZX decompression with optional reference data for delta patches."""

from __future__ import annotations

from typing import Optional

_FRAME_SIZE = 32768
_MIN_MATCH = 2
_NUM_CHARS = 256
_PRETREE_SIZE = 20
_ALIGNED_SIZE = 8
_LENGTH_SIZE = 249
_MAX_CODE_LENGTH = 16
_MAX_PADDING_WORDS = 2

_BLOCK_VERBATIM = 1
_BLOCK_ALIGNED = 2
_BLOCK_UNCOMPRESSED = 3

_POSITION_SLOTS = {15: 30, 16: 32, 17: 34, 18: 36, 19: 38, 20: 42, 21: 50}
_EXTRA_BITS = [0 if i < 4 else min((i - 2) // 2, 17) for i in range(51)]
_POSITION_BASE = [0]
for _extra in _EXTRA_BITS[:-1]:
    _POSITION_BASE.append(_POSITION_BASE[-1] + (1 << _extra))


class LzxError(ValueError):
    """Raised when an LZX stream cannot be decoded."""


class _BitReader:
    """Reads 16-bit little-endian words most significant bit first."""

    def __init__(self, data: bytes) -> None:
        self.data = data
        self.pos = 0
        self.buffer = 0
        self.bits_left = 0
        self._padding = 0

    def ensure(self, count: int) -> None:
        while self.bits_left < count:
            chunk = self.data[self.pos:self.pos + 2]
            if not chunk:
                self._padding += 1
                if self._padding > _MAX_PADDING_WORDS:
                    raise LzxError("out of input data")
            word = int.from_bytes(chunk.ljust(2, b"\0"), "little")
            self.pos += 2
            self.buffer = (self.buffer << 16) | word
            self.bits_left += 16

    def peek(self, count: int) -> int:
        return (self.buffer >> (self.bits_left - count)) & ((1 << count) - 1)

    def remove(self, count: int) -> None:
        self.bits_left -= count
        self.buffer &= (1 << self.bits_left) - 1

    def read(self, count: int) -> int:
        if count == 0:
            return 0
        self.ensure(count)
        value = self.peek(count)
        self.remove(count)
        return value

    def align_to_bytes(self) -> None:
        self.ensure(16)
        if self.bits_left > 16:
            self.pos -= 2
        self.bits_left = 0
        self.buffer = 0

    def read_raw(self, count: int) -> bytes:
        chunk = self.data[self.pos:self.pos + count]
        if len(chunk) < count:
            raise LzxError("out of input data")
        self.pos += count
        return chunk


class _HuffmanTree:
    """A canonical Huffman code read most significant bit first."""

    def __init__(self, lengths) -> None:
        self.counts = [0] * (_MAX_CODE_LENGTH + 1)
        for length in lengths:
            self.counts[length] += 1
        self.counts[0] = 0
        self.empty = not any(self.counts)
        if not self.empty:
            kraft = sum(count << (_MAX_CODE_LENGTH - length)
                        for length, count in enumerate(self.counts) if length)
            if kraft != 1 << _MAX_CODE_LENGTH:
                raise LzxError("invalid Huffman code lengths")
        self.symbols = [symbol for _, symbol in sorted(
            (length, symbol) for symbol, length in enumerate(lengths) if length)]

    def decode(self, reader: _BitReader) -> int:
        if self.empty:
            raise LzxError("symbol read from an empty Huffman tree")
        reader.ensure(_MAX_CODE_LENGTH)
        bits = reader.peek(_MAX_CODE_LENGTH)
        code = first = index = 0
        for length in range(1, _MAX_CODE_LENGTH + 1):
            code |= (bits >> (_MAX_CODE_LENGTH - length)) & 1
            count = self.counts[length]
            if code - first < count:
                reader.remove(length)
                return self.symbols[index + code - first]
            index += count
            first = (first + count) << 1
            code <<= 1
        raise LzxError("invalid Huffman code")


def _translate_e8(chunk: bytearray, position: int, file_size: int) -> None:
    index = 0
    end = len(chunk) - 10
    while index < end:
        if chunk[index] != 0xE8:
            index += 1
            position += 1
            continue
        absolute = int.from_bytes(chunk[index + 1:index + 5], "little", signed=True)
        if -position <= absolute < file_size:
            relative = absolute - position if absolute >= 0 else absolute + file_size
            chunk[index + 1:index + 5] = (relative & 0xFFFFFFFF).to_bytes(4, "little")
        index += 5
        position += 5


class LzxDecoder:
    """Decodes an LZX stream; reference data pre-fills the end of the window."""

    def __init__(self, window_size: int, reference: Optional[bytes] = None) -> None:
        if window_size <= 0:
            raise LzxError("window size must be positive")
        window_bits = (window_size & -window_size).bit_length() - 1
        if window_bits not in _POSITION_SLOTS:
            raise LzxError(f"unsupported window size {window_size:#x}")
        self.window_size = 1 << window_bits
        self._main_elements = _NUM_CHARS + (_POSITION_SLOTS[window_bits] << 3)
        self.window = bytearray(self.window_size)
        self.reference_size = 0
        if reference is not None:
            reference = bytes(reference)
            if len(reference) > self.window_size:
                raise LzxError("reference data is larger than the window")
            self.window[self.window_size - len(reference):] = reference
            self.reference_size = self.window_size

    def decompress(self, data, out_length: int) -> bytes:
        """Decode ``out_length`` bytes from ``data``."""
        reader = _BitReader(bytes(data))
        window, window_size = self.window, self.window_size
        main_lengths = [0] * self._main_elements
        length_lengths = [0] * _LENGTH_SIZE
        main_tree = length_tree = aligned_tree = None
        r0 = r1 = r2 = 1
        block_type = block_length = block_remaining = 0
        intel_started = False
        intel_file_size = 0
        window_pos = frame_pos = 0
        output = bytearray()
        frame = 0

        if reader.read(1):
            high = reader.read(16)
            low = reader.read(16)
            intel_file_size = (high << 16) | low

        def read_lengths(lengths, first, last):
            pretree = _HuffmanTree([reader.read(4) for _ in range(_PRETREE_SIZE)])
            x = first
            while x < last:
                symbol = pretree.decode(reader)
                if symbol == 17:
                    run = reader.read(4) + 4
                    fill = [0] * run
                elif symbol == 18:
                    run = reader.read(5) + 20
                    fill = [0] * run
                elif symbol == 19:
                    run = reader.read(1) + 4
                    value = (lengths[x] - pretree.decode(reader)) % 17
                    fill = [value] * run
                else:
                    fill = [(lengths[x] - symbol) % 17]
                end = min(x + len(fill), len(lengths))
                lengths[x:end] = fill[:end - x]
                x += len(fill)

        while len(output) < out_length:
            frame_size = min(_FRAME_SIZE, out_length - len(output))
            bytes_todo = frame_pos + frame_size - window_pos
            while bytes_todo > 0:
                if block_remaining == 0:
                    if block_type == _BLOCK_UNCOMPRESSED and block_length & 1:
                        reader.read_raw(1)
                    block_type = reader.read(3)
                    high = reader.read(16)
                    low = reader.read(8)
                    block_remaining = block_length = (high << 8) | low
                    if block_type in (_BLOCK_VERBATIM, _BLOCK_ALIGNED):
                        if block_type == _BLOCK_ALIGNED:
                            aligned_tree = _HuffmanTree([reader.read(3) for _ in range(_ALIGNED_SIZE)])
                        read_lengths(main_lengths, 0, _NUM_CHARS)
                        read_lengths(main_lengths, _NUM_CHARS, self._main_elements)
                        main_tree = _HuffmanTree(main_lengths)
                        if main_lengths[0xE8]:
                            intel_started = True
                        read_lengths(length_lengths, 0, _LENGTH_SIZE)
                        length_tree = _HuffmanTree(length_lengths)
                    elif block_type == _BLOCK_UNCOMPRESSED:
                        intel_started = True
                        reader.align_to_bytes()
                        raw = reader.read_raw(12)
                        r0, r1, r2 = (int.from_bytes(raw[i:i + 4], "little") for i in (0, 4, 8))
                    else:
                        raise LzxError(f"bad block type {block_type}")

                this_run = min(block_remaining, bytes_todo)
                bytes_todo -= this_run
                block_remaining -= this_run

                if block_type == _BLOCK_UNCOMPRESSED:
                    window[window_pos:window_pos + this_run] = reader.read_raw(this_run)
                    window_pos += this_run
                    continue

                while this_run > 0:
                    symbol = main_tree.decode(reader)
                    if symbol < _NUM_CHARS:
                        window[window_pos] = symbol
                        window_pos += 1
                        this_run -= 1
                        continue
                    symbol -= _NUM_CHARS
                    match_length = symbol & 7
                    if match_length == 7:
                        match_length += length_tree.decode(reader)
                    match_length += _MIN_MATCH
                    slot = symbol >> 3
                    if slot > 2:
                        extra = _EXTRA_BITS[slot]
                        if block_type == _BLOCK_ALIGNED:
                            offset = _POSITION_BASE[slot] - 2
                            if extra > 3:
                                offset += reader.read(extra - 3) << 3
                                offset += aligned_tree.decode(reader)
                            elif extra == 3:
                                offset += aligned_tree.decode(reader)
                            elif extra > 0:
                                offset += reader.read(extra)
                            else:
                                offset = 1
                        elif slot != 3:
                            offset = _POSITION_BASE[slot] - 2 + reader.read(extra)
                        else:
                            offset = 1
                        r2, r1, r0 = r1, r0, offset
                    elif slot == 0:
                        offset = r0
                    elif slot == 1:
                        offset = r1
                        r1, r0 = r0, offset
                    else:
                        offset = r2
                        r2, r0 = r0, offset

                    if window_pos + match_length > window_size:
                        raise LzxError("match runs past the end of the window")
                    if offset > window_pos:
                        behind = offset - window_pos
                        if offset > len(output) + (window_pos - frame_pos) and behind > self.reference_size:
                            raise LzxError("match offset beyond the start of the data")
                    source = window_pos - offset
                    for k in range(match_length):
                        window[window_pos + k] = window[(source + k) % window_size]
                    window_pos += match_length
                    this_run -= match_length

                if this_run < 0:
                    if -this_run > block_remaining:
                        raise LzxError("match overruns the block")
                    block_remaining += this_run

            if window_pos - frame_pos != frame_size:
                raise LzxError("decoded beyond the frame limit")

            if reader.bits_left > 0:
                reader.ensure(16)
            if reader.bits_left & 15:
                reader.remove(reader.bits_left & 15)

            chunk = bytearray(window[frame_pos:frame_pos + frame_size])
            if intel_started and intel_file_size and frame < 32768 and frame_size > 10:
                _translate_e8(chunk, len(output), intel_file_size)
            output += chunk
            frame += 1
            frame_pos += frame_size
            if window_pos == window_size:
                window_pos = 0
            if frame_pos == window_size:
                frame_pos = 0

        return bytes(output)


def lzx_decompress(data, out_length, window_size, reference=None) -> bytes:
    """Decode ``out_length`` bytes of LZX data with the given window."""
    return LzxDecoder(window_size, reference).decompress(data, out_length)