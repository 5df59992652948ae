"""Open files: a shared table of file objects backed by inodes or pipes."""

from __future__ import annotations

import enum
import threading
from dataclasses import dataclass
from typing import Optional, Tuple

from simfs.fs import FileSystem, Inode
from simfs.layout import BSIZE, LOGSIZE, NFILE, Stat
from simfs.pipe import Pipe

# Largest write done in one transaction: the inode, an indirect block,
# allocation blocks, and two blocks of slop for unaligned writes.
MAX_WRITE_CHUNK = ((LOGSIZE - 1 - 1 - 2) // 2) * BSIZE


class FileKind(enum.Enum):
    NONE = 0
    PIPE = 1
    INODE = 2


class FileError(Exception):
    """Misuse of an open file, or no free file slot."""


@dataclass(eq=False)
class OpenFile:
    """An entry of the file table."""

    kind: FileKind = FileKind.NONE
    ref: int = 0
    readable: bool = False
    writable: bool = False
    pipe: Optional[Pipe] = None
    ip: Optional[Inode] = None
    off: int = 0


class FileTable:
    """A fixed number of file slots shared by all users."""

    def __init__(self, fs: Optional[FileSystem] = None, nfile: int = NFILE) -> None:
        self.fs = fs
        self._lock = threading.Lock()
        self._files = [OpenFile() for _ in range(nfile)]

    def _require_fs(self) -> FileSystem:
        if self.fs is None:
            raise FileError("file table has no file system")
        return self.fs

    def alloc(self) -> OpenFile:
        """Claim a free slot with one reference."""
        with self._lock:
            f = next((f for f in self._files if f.ref == 0), None)
            if f is None:
                raise FileError("file table full")
            f.ref = 1
            return f

    def open_inode(self, ip: Inode, readable: bool, writable: bool) -> OpenFile:
        """Open a referenced inode; the file takes over that reference."""
        self._require_fs()
        f = self.alloc()
        f.kind = FileKind.INODE
        f.ip = ip
        f.off = 0
        f.readable = bool(readable)
        f.writable = bool(writable)
        return f

    def open_pipe(self) -> Tuple[OpenFile, OpenFile]:
        """Create a pipe and return its read end and write end."""
        f0 = self.alloc()
        try:
            f1 = self.alloc()
        except FileError:
            self.close(f0)
            raise
        p = Pipe()
        f0.kind, f0.readable, f0.writable, f0.pipe = FileKind.PIPE, True, False, p
        f1.kind, f1.readable, f1.writable, f1.pipe = FileKind.PIPE, False, True, p
        return f0, f1

    def dup(self, f: OpenFile) -> OpenFile:
        """Add a reference to an open file."""
        with self._lock:
            if f.ref < 1:
                raise FileError("dup of a closed file")
            f.ref += 1
        return f

    def close(self, f: OpenFile) -> None:
        """Drop a reference; release the pipe end or inode with the last one."""
        with self._lock:
            if f.ref < 1:
                raise FileError("close of a closed file")
            f.ref -= 1
            if f.ref > 0:
                return
            kind, pipe, ip, writable = f.kind, f.pipe, f.ip, f.writable
            f.kind = FileKind.NONE
            f.pipe = None
            f.ip = None
        if kind is FileKind.PIPE and pipe is not None:
            pipe.close(writable)
        elif kind is FileKind.INODE and ip is not None:
            fs = self._require_fs()
            with fs.log.transaction():
                fs.put(ip)

    def stat(self, f: OpenFile) -> Stat:
        """Metadata of the inode behind an open file."""
        if f.kind is not FileKind.INODE or f.ip is None:
            raise FileError("stat of a file that is not an inode")
        fs = self._require_fs()
        fs.lock(f.ip)
        try:
            return fs.stat(f.ip)
        finally:
            fs.unlock(f.ip)

    def read(self, f: OpenFile, n: int) -> bytes:
        """Read up to ``n`` bytes at the file's offset and advance it."""
        if not f.readable:
            raise FileError("file not open for reading")
        if f.kind is FileKind.PIPE and f.pipe is not None:
            return f.pipe.read(n)
        if f.kind is FileKind.INODE and f.ip is not None:
            fs = self._require_fs()
            fs.lock(f.ip)
            try:
                data = fs.read(f.ip, f.off, n)
                f.off += len(data)
            finally:
                fs.unlock(f.ip)
            return data
        raise FileError("read of a file with no backing object")

    def write(self, f: OpenFile, data: bytes) -> int:
        """Write all of ``data`` at the file's offset and advance it."""
        if not f.writable:
            raise FileError("file not open for writing")
        data = bytes(data)
        if f.kind is FileKind.PIPE and f.pipe is not None:
            return f.pipe.write(data)
        if f.kind is FileKind.INODE and f.ip is not None:
            fs = self._require_fs()
            for start in range(0, len(data), MAX_WRITE_CHUNK):
                chunk = data[start : start + MAX_WRITE_CHUNK]
                with fs.log.transaction():
                    fs.lock(f.ip)
                    try:
                        written = fs.write(f.ip, chunk, f.off)
                        f.off += written
                    finally:
                        fs.unlock(f.ip)
                if written != len(chunk):
                    raise FileError("short file write")
            return len(data)
        raise FileError("write of a file with no backing object")