"""Buffer cache: in-memory copies of disk blocks with LRU recycling."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

from simfs.disk import MemDisk
from simfs.layout import BSIZE, NBUF


class BufferError_(Exception):
    """Misuse of the buffer cache, or no buffer available."""


@dataclass(eq=False)
class Buffer:
    """A cached disk block. Only one thread may hold it at a time."""

    dev: int = 0
    blockno: int = 0
    data: bytearray = field(default_factory=lambda: bytearray(BSIZE))
    valid: bool = False
    dirty: bool = False
    refcnt: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _owner: int | None = field(default=None, init=False, repr=False)

    @property
    def holding(self) -> bool:
        """True if the calling thread holds this buffer."""
        return self._lock.locked() and self._owner == threading.get_ident()

    def _acquire(self) -> None:
        self._lock.acquire()
        self._owner = threading.get_ident()

    def _release(self) -> None:
        self._owner = None
        self._lock.release()


class BufferCache:
    """A fixed set of buffers kept in most-recently-used order."""

    def __init__(self, disk: MemDisk, nbuf: int = NBUF) -> None:
        if nbuf < 1:
            raise ValueError("the cache needs at least one buffer")
        self.disk = disk
        self._lock = threading.Lock()
        # Most recently used first; the last buffer created starts at the front.
        self._lru: list[Buffer] = [Buffer() for _ in range(nbuf)][::-1]

    def _get(self, dev: int, blockno: int) -> Buffer:
        with self._lock:
            buf = next(
                (b for b in self._lru if b.dev == dev and b.blockno == blockno), None
            )
            if buf is not None:
                buf.refcnt += 1
            else:
                # A dirty buffer is pinned: the log has not committed it yet.
                buf = next(
                    (b for b in reversed(self._lru) if b.refcnt == 0 and not b.dirty),
                    None,
                )
                if buf is None:
                    raise BufferError_("no buffers")
                buf.dev = dev
                buf.blockno = blockno
                buf.valid = False
                buf.dirty = False
                buf.refcnt = 1
        buf._acquire()
        return buf

    def read(self, dev: int, blockno: int) -> Buffer:
        """Return a held buffer with the contents of the block."""
        buf = self._get(dev, blockno)
        if not buf.valid:
            self.disk.sync(buf)
        return buf

    def write(self, buf: Buffer) -> None:
        """Write a held buffer's contents to disk."""
        if not buf.holding:
            raise BufferError_("write of a buffer not held")
        buf.dirty = True
        self.disk.sync(buf)

    def release(self, buf: Buffer) -> None:
        """Give up a held buffer; an unreferenced buffer moves to the front."""
        if not buf.holding:
            raise BufferError_("release of a buffer not held")
        buf._release()
        with self._lock:
            buf.refcnt -= 1
            if buf.refcnt == 0:
                self._lru.remove(buf)
                self._lru.insert(0, buf)

    @contextmanager
    def block(self, dev: int, blockno: int) -> Iterator[Buffer]:
        """Hold a block's buffer for the duration of a ``with`` block."""
        buf = self.read(dev, blockno)
        try:
            yield buf
        finally:
            self.release(buf)

    def lru_order(self) -> list[Buffer]:
        """Buffers from most to least recently used."""
        with self._lock:
            return list(self._lru)