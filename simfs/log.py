"""Write-ahead redo log that makes groups of block updates atomic."""

from __future__ import annotations

import struct
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from simfs.bufcache import Buffer, BufferCache
from simfs.layout import BSIZE, LOGSIZE, MAXOPBLOCKS, ROOTDEV, Superblock

_INT = struct.Struct("<i")


class LogError(Exception):
    """Misuse of the log or a transaction that does not fit in it."""


class Log:
    """Physical redo log of whole disk blocks.

    The on-disk log is a header block holding the count and the home block
    numbers of the logged blocks, followed by the copies of those blocks.
    A transaction commits only when no file-system operation is in progress.
    """

    def __init__(self, cache: BufferCache, dev: int = ROOTDEV) -> None:
        if _INT.size * (1 + LOGSIZE) >= BSIZE:
            raise LogError("log header too big")
        self.cache = cache
        self.dev = dev
        with cache.block(dev, 1) as buf:
            sb = Superblock.unpack(bytes(buf.data))
        self.start = sb.logstart
        self.size = sb.nlog
        self.outstanding = 0
        self.committing = False
        self._blocks: list[int] = []
        self._cond = threading.Condition()
        self.recover()

    @property
    def pending(self) -> tuple[int, ...]:
        """Home block numbers logged in the current transaction."""
        with self._cond:
            return tuple(self._blocks)

    def _read_head(self) -> None:
        with self.cache.block(self.dev, self.start) as buf:
            (n,) = _INT.unpack_from(buf.data, 0)
            if not 0 <= n <= LOGSIZE:
                raise LogError(f"corrupt log header: {n} blocks")
            self._blocks = list(struct.unpack_from(f"<{n}i", buf.data, _INT.size))

    def _write_head(self) -> None:
        """Write the in-memory header to disk: the true commit point."""
        with self.cache.block(self.dev, self.start) as buf:
            _INT.pack_into(buf.data, 0, len(self._blocks))
            struct.pack_into(
                f"<{len(self._blocks)}i", buf.data, _INT.size, *self._blocks
            )
            self.cache.write(buf)

    def _install(self) -> None:
        """Copy committed blocks from the log to their home locations."""
        for tail, blockno in enumerate(self._blocks):
            lbuf = self.cache.read(self.dev, self.start + tail + 1)
            dbuf = self.cache.read(self.dev, blockno)
            dbuf.data[:] = lbuf.data
            self.cache.write(dbuf)
            self.cache.release(lbuf)
            self.cache.release(dbuf)

    def _write_log(self) -> None:
        """Copy modified blocks from the cache into the log."""
        for tail, blockno in enumerate(self._blocks):
            to = self.cache.read(self.dev, self.start + tail + 1)
            src = self.cache.read(self.dev, blockno)
            to.data[:] = src.data
            self.cache.write(to)
            self.cache.release(src)
            self.cache.release(to)

    def recover(self) -> None:
        """Replay a committed transaction found on disk, then clear the log."""
        self._read_head()
        self._install()
        self._blocks = []
        self._write_head()

    def _commit(self) -> None:
        if self._blocks:
            self._write_log()
            self._write_head()
            self._install()
            self._blocks = []
            self._write_head()

    def begin_op(self) -> None:
        """Start a file-system operation, waiting while the log is busy or full."""
        with self._cond:
            while (
                self.committing
                or len(self._blocks) + (self.outstanding + 1) * MAXOPBLOCKS > LOGSIZE
            ):
                self._cond.wait()
            self.outstanding += 1

    def end_op(self) -> None:
        """Finish an operation; the last one to finish commits."""
        with self._cond:
            self.outstanding -= 1
            if self.committing:
                raise LogError("end of operation while committing")
            do_commit = self.outstanding == 0
            if do_commit:
                self.committing = True
            else:
                # Fewer outstanding operations means more reserved space is free.
                self._cond.notify_all()
        if do_commit:
            try:
                self._commit()
            finally:
                with self._cond:
                    self.committing = False
                    self._cond.notify_all()

    @contextmanager
    def transaction(self) -> Iterator[Log]:
        """Run the body of a ``with`` block as one file-system operation."""
        self.begin_op()
        try:
            yield self
        finally:
            self.end_op()

    def log_write(self, buf: Buffer) -> None:
        """Record a modified buffer in the transaction and pin it in the cache."""
        with self._cond:
            if len(self._blocks) >= LOGSIZE or len(self._blocks) >= self.size - 1:
                raise LogError("too big a transaction")
            if self.outstanding < 1:
                raise LogError("log write outside of a transaction")
            if buf.blockno not in self._blocks:
                self._blocks.append(buf.blockno)
            buf.dirty = True