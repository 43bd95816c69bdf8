"""Symbols and an address-ordered symbol table that allows duplicates."""

from __future__ import annotations

import enum
from bisect import bisect_left, bisect_right
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional


class SymbolType(enum.Enum):
    NONE = 0
    SECTION = 1
    FUNCTION = 2
    COMMENT = 3


@dataclass
class Symbol:
    name: str = ""
    address: int = 0
    size: int = 0
    type: SymbolType = SymbolType.NONE


class SymbolTable:
    """Symbols kept in address order; equal addresses keep insertion order."""

    def __init__(self, symbols: Iterable[Symbol] = ()) -> None:
        self._addresses: list[int] = []
        self._symbols: list[Symbol] = []
        for symbol in symbols:
            self.add(symbol)

    def add(self, symbol: Symbol) -> Symbol:
        """Insert a symbol after any others at the same address."""
        index = bisect_right(self._addresses, symbol.address)
        self._addresses.insert(index, symbol.address)
        self._symbols.insert(index, symbol)
        return symbol

    def at_address(self, address: int) -> list[Symbol]:
        """All symbols starting exactly at ``address``."""
        low = bisect_left(self._addresses, address)
        high = bisect_right(self._addresses, address)
        return self._symbols[low:high]

    def find(self, address: int) -> Optional[Symbol]:
        """The last non-empty symbol starting at ``address``, or None."""
        match = None
        for symbol in self.at_address(address):
            if address < symbol.address + symbol.size:
                match = symbol
        return match

    def __iter__(self) -> Iterator[Symbol]:
        return iter(list(self._symbols))

    def __len__(self) -> int:
        return len(self._symbols)