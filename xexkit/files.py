"""Whole-file loading and read-only memory mapping."""

from __future__ import annotations

import mmap
import os
from typing import Optional, Union

PathLike = Union[str, os.PathLike]


def load_file(path: PathLike) -> bytes:
    """Read a whole file as bytes; raises OSError if it cannot be read."""
    with open(path, "rb") as stream:
        return stream.read()


class MemoryMappedFile:
    """A read-only memory mapping of a file."""

    def __init__(self, path: Optional[PathLike] = None) -> None:
        self._file = None
        self._map: Optional[mmap.mmap] = None
        if path is not None:
            self.open(path)

    def open(self, path: PathLike) -> None:
        """Map the file at ``path``; raises OSError on failure."""
        self.close()
        stream = open(path, "rb")
        try:
            mapping = mmap.mmap(stream.fileno(), 0, access=mmap.ACCESS_READ)
        except (OSError, ValueError) as exc:
            stream.close()
            raise OSError(f"cannot map {os.fspath(path)}: {exc}") from exc
        self._file = stream
        self._map = mapping

    def close(self) -> None:
        """Release the mapping and the file."""
        if self._map is not None:
            self._map.close()
            self._map = None
        if self._file is not None:
            self._file.close()
            self._file = None

    def is_open(self) -> bool:
        return self._map is not None

    def data(self) -> mmap.mmap:
        """The mapped bytes."""
        if self._map is None:
            raise ValueError("file is not open")
        return self._map

    def size(self) -> int:
        return len(self._map) if self._map is not None else 0

    def __enter__(self) -> "MemoryMappedFile":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()