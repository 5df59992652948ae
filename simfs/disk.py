"""A disk held in memory, addressed in blocks."""

from __future__ import annotations

import os
from typing import Protocol

from simfs.layout import BSIZE, ROOTDEV


class DiskError(Exception):
    """A disk request that cannot be carried out."""


class _SyncBuffer(Protocol):
    dev: int
    blockno: int
    data: bytearray
    valid: bool
    dirty: bool

    @property
    def holding(self) -> bool: ...


class MemDisk:
    """Disk image kept in memory; serves block reads and writes for one device."""

    def __init__(self, image: bytes = b"", dev: int = ROOTDEV) -> None:
        self._data = bytearray(image)
        self.dev = dev

    @classmethod
    def from_file(cls, path: str | os.PathLike[str], dev: int = ROOTDEV) -> MemDisk:
        with open(path, "rb") as fh:
            return cls(fh.read(), dev)

    @property
    def nblocks(self) -> int:
        return len(self._data) // BSIZE

    @property
    def image(self) -> bytes:
        return bytes(self._data)

    def _span(self, blockno: int) -> slice:
        if not 0 <= blockno < self.nblocks:
            raise DiskError(f"block {blockno} out of range")
        start = blockno * BSIZE
        return slice(start, start + BSIZE)

    def read_block(self, blockno: int) -> bytes:
        return bytes(self._data[self._span(blockno)])

    def write_block(self, blockno: int, data: bytes) -> None:
        if len(data) != BSIZE:
            raise ValueError(f"block data must be {BSIZE} bytes, got {len(data)}")
        self._data[self._span(blockno)] = data

    def sync(self, buf: _SyncBuffer) -> None:
        """Write a dirty buffer to disk, or fill an invalid one from disk."""
        if not buf.holding:
            raise DiskError("buffer not locked")
        if buf.valid and not buf.dirty:
            raise DiskError("nothing to do")
        if buf.dev != self.dev:
            raise DiskError(f"request not for disk {self.dev}")
        span = self._span(buf.blockno)
        if buf.dirty:
            buf.dirty = False
            self._data[span] = buf.data
        else:
            buf.data[:] = self._data[span]
        buf.valid = True

    def save(self, path: str | os.PathLike[str]) -> None:
        with open(path, "wb") as fh:
            fh.write(self._data)