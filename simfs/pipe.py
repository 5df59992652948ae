"""In-memory pipes with a fixed-size ring buffer."""

from __future__ import annotations

import threading

PIPESIZE = 512


class PipeError(Exception):
    """A pipe operation that cannot complete."""


class Pipe:
    """A one-way byte channel with a 512-byte buffer.

    Writers block while the buffer is full. Readers block while it is empty
    and the write end is still open.
    """

    def __init__(self) -> None:
        self._data = bytearray(PIPESIZE)
        self.nread = 0
        self.nwrite = 0
        self.readopen = True
        self.writeopen = True
        self._cond = threading.Condition()

    @property
    def available(self) -> int:
        """Bytes written but not yet read."""
        with self._cond:
            return self.nwrite - self.nread

    @property
    def closed(self) -> bool:
        """True once both ends are closed."""
        with self._cond:
            return not self.readopen and not self.writeopen

    def write(self, data: bytes) -> int:
        """Write all of ``data``, waiting for room; return the count written."""
        data = bytes(data)
        with self._cond:
            for byte in data:
                while self.nwrite == self.nread + PIPESIZE:
                    if not self.readopen:
                        raise PipeError("write to a pipe whose read end is closed")
                    self._cond.notify_all()
                    self._cond.wait()
                self._data[self.nwrite % PIPESIZE] = byte
                self.nwrite += 1
            self._cond.notify_all()
        return len(data)

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes; empty once the pipe is drained and the writer gone."""
        if n < 0:
            raise ValueError("negative read size")
        with self._cond:
            while self.nread == self.nwrite and self.writeopen:
                self._cond.wait()
            count = min(n, self.nwrite - self.nread)
            start = self.nread % PIPESIZE
            first = bytes(self._data[start : start + count])
            rest = bytes(self._data[: count - len(first)])
            self.nread += count
            self._cond.notify_all()
            return first + rest

    def close(self, writable: bool) -> None:
        """Close the write end if ``writable`` is true, otherwise the read end."""
        with self._cond:
            if writable:
                self.writeopen = False
            else:
                self.readopen = False
            self._cond.notify_all()