"""File system: block allocation, inodes, directories and path names.

Layers, from the bottom: the free-block bitmap, the inode table with its
in-memory cache, inode contents, directories, and path-name lookup. Every
change goes through the log, so callers that modify the file system must
run inside ``fs.log.transaction()``.
"""

from __future__ import annotations

import struct
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Optional, Tuple

from simfs.bufcache import BufferCache
from simfs.disk import MemDisk
from simfs.layout import (
    BPB,
    BSIZE,
    DIRENT_SIZE,
    DIRSIZ,
    INODE_SIZE,
    IPB,
    MAXFILE,
    NDEV,
    NDIRECT,
    NINDIRECT,
    NINODE,
    ROOTINO,
    Dirent,
    DiskInode,
    FileType,
    Stat,
    Superblock,
)
from simfs.log import Log

_UINT = struct.Struct("<I")
_INDIRECT = struct.Struct(f"<{NINDIRECT}I")


class FsError(Exception):
    """A file-system request that cannot be carried out, or misuse of an inode."""


def _empty_addrs() -> list[int]:
    return [0] * (NDIRECT + 1)


@dataclass(eq=False)
class Inode:
    """In-memory copy of an inode.

    ``dev``, ``inum`` and ``ref`` are managed by the inode cache; the other
    fields may only be examined or changed while the inode is locked.
    """

    dev: int
    inum: int
    ref: int = 0
    valid: bool = False
    type: int = 0
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: list[int] = field(default_factory=_empty_addrs)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _owner: Optional[int] = field(default=None, init=False, repr=False)

    @property
    def holding(self) -> bool:
        """True if the calling thread holds this inode's lock."""
        return self._lock.locked() and self._owner == threading.get_ident()

    def _acquire(self) -> None:
        if self.holding:
            raise FsError(f"inode {self.inum} already locked by this thread")
        self._lock.acquire()
        self._owner = threading.get_ident()

    def _release(self) -> None:
        self._owner = None
        self._lock.release()


DeviceRead = Callable[[Inode, int], bytes]
DeviceWrite = Callable[[Inode, bytes], int]


def skip_elem(path: str) -> Optional[Tuple[str, str]]:
    """Split off the first element of a path.

    Returns the element, cut to DIRSIZ characters, and the rest of the path
    without leading slashes; None if the path holds no element.
    """
    path = path.lstrip("/")
    if not path:
        return None
    elem, _, rest = path.partition("/")
    return elem[:DIRSIZ], rest.lstrip("/")


def _dinode_offset(inum: int) -> int:
    return (inum % IPB) * INODE_SIZE


class FileSystem:
    """A file system on one disk, with its buffer cache, log and inode cache."""

    def __init__(self, disk: MemDisk, ninode: int = NINODE) -> None:
        if ninode < 1:
            raise ValueError("the inode cache needs at least one entry")
        self.disk = disk
        self.dev = disk.dev
        self.cache = BufferCache(disk)
        with self.cache.block(self.dev, 1) as buf:
            self.sb = Superblock.unpack(bytes(buf.data))
        self.log = Log(self.cache, self.dev)
        self._icache_lock = threading.Lock()
        self._inodes = [Inode(dev=0, inum=0) for _ in range(ninode)]
        self._devices: dict[int, tuple[Optional[DeviceRead], Optional[DeviceWrite]]] = {}

    # Blocks.

    def _zero_block(self, blockno: int) -> None:
        with self.cache.block(self.dev, blockno) as buf:
            buf.data[:] = bytes(BSIZE)
            self.log.log_write(buf)

    def _claim_free_bit(self, data: bytearray, base: int) -> Optional[int]:
        for bi in range(min(BPB, self.sb.size - base)):
            mask = 1 << (bi % 8)
            if not data[bi // 8] & mask:
                data[bi // 8] |= mask
                return base + bi
        return None

    def alloc_block(self) -> int:
        """Allocate a zeroed disk block and return its number."""
        for base in range(0, self.sb.size, BPB):
            with self.cache.block(self.dev, self.sb.bitmap_block(base)) as buf:
                blockno = self._claim_free_bit(buf.data, base)
                if blockno is not None:
                    self.log.log_write(buf)
            if blockno is not None:
                self._zero_block(blockno)
                return blockno
        raise FsError("out of blocks")

    def free_block(self, blockno: int) -> None:
        """Mark a disk block free in the bitmap."""
        with self.cache.block(self.dev, self.sb.bitmap_block(blockno)) as buf:
            bi = blockno % BPB
            mask = 1 << (bi % 8)
            if not buf.data[bi // 8] & mask:
                raise FsError(f"freeing free block {blockno}")
            buf.data[bi // 8] &= ~mask
            self.log.log_write(buf)

    # Inodes.

    def alloc_inode(self, file_type: FileType) -> Inode:
        """Allocate an inode of the given type; return it referenced but unlocked."""
        for inum in range(1, self.sb.ninodes):
            with self.cache.block(self.dev, self.sb.inode_block(inum)) as buf:
                off = _dinode_offset(inum)
                free = DiskInode.unpack(buf.data[off : off + INODE_SIZE]).type == 0
                if free:
                    buf.data[off : off + INODE_SIZE] = DiskInode(type=int(file_type)).pack()
                    self.log.log_write(buf)
            if free:
                return self.get_inode(inum)
        raise FsError("no free inodes")

    def update(self, ip: Inode) -> None:
        """Copy a modified in-memory inode to disk. The caller holds its lock."""
        dinode = DiskInode(ip.type, ip.major, ip.minor, ip.nlink, ip.size, ip.addrs)
        with self.cache.block(ip.dev, self.sb.inode_block(ip.inum)) as buf:
            off = _dinode_offset(ip.inum)
            buf.data[off : off + INODE_SIZE] = dinode.pack()
            self.log.log_write(buf)

    def get_inode(self, inum: int) -> Inode:
        """Return the cached inode, referenced; neither locked nor read from disk."""
        with self._icache_lock:
            empty = None
            for ip in self._inodes:
                if ip.ref > 0 and ip.dev == self.dev and ip.inum == inum:
                    ip.ref += 1
                    return ip
                if empty is None and ip.ref == 0:
                    empty = ip
            if empty is None:
                raise FsError("no free inode cache entries")
            empty.dev = self.dev
            empty.inum = inum
            empty.ref = 1
            empty.valid = False
            return empty

    def dup(self, ip: Inode) -> Inode:
        """Add a reference to an inode and return it."""
        with self._icache_lock:
            ip.ref += 1
        return ip

    def lock(self, ip: Inode) -> None:
        """Lock an inode, reading it from disk if needed."""
        if ip is None or ip.ref < 1:
            raise FsError("lock of an unreferenced inode")
        ip._acquire()
        if ip.valid:
            return
        with self.cache.block(ip.dev, self.sb.inode_block(ip.inum)) as buf:
            off = _dinode_offset(ip.inum)
            din = DiskInode.unpack(buf.data[off : off + INODE_SIZE])
        ip.type = din.type
        ip.major = din.major
        ip.minor = din.minor
        ip.nlink = din.nlink
        ip.size = din.size
        ip.addrs = list(din.addrs)
        ip.valid = True
        if ip.type == 0:
            ip._release()
            raise FsError(f"inode {ip.inum} has no type")

    def unlock(self, ip: Inode) -> None:
        if ip is None or not ip.holding or ip.ref < 1:
            raise FsError("unlock of an inode not held")
        ip._release()

    def put(self, ip: Inode) -> None:
        """Drop a reference; free the inode on disk if it was the last and unlinked."""
        ip._acquire()
        try:
            if ip.valid and ip.nlink == 0:
                with self._icache_lock:
                    last = ip.ref == 1
                if last:
                    self._truncate(ip)
                    ip.type = 0
                    self.update(ip)
                    ip.valid = False
        finally:
            ip._release()
        with self._icache_lock:
            ip.ref -= 1

    def unlock_put(self, ip: Inode) -> None:
        self.unlock(ip)
        self.put(ip)

    # Inode content.

    def _bmap(self, ip: Inode, bn: int) -> int:
        """Disk block holding block ``bn`` of the inode, allocated if missing."""
        if bn < NDIRECT:
            if ip.addrs[bn] == 0:
                ip.addrs[bn] = self.alloc_block()
            return ip.addrs[bn]
        bn -= NDIRECT
        if bn < NINDIRECT:
            if ip.addrs[NDIRECT] == 0:
                ip.addrs[NDIRECT] = self.alloc_block()
            with self.cache.block(ip.dev, ip.addrs[NDIRECT]) as buf:
                (addr,) = _UINT.unpack_from(buf.data, bn * _UINT.size)
                if addr == 0:
                    addr = self.alloc_block()
                    _UINT.pack_into(buf.data, bn * _UINT.size, addr)
                    self.log.log_write(buf)
            return addr
        raise FsError("block index out of range")

    def _truncate(self, ip: Inode) -> None:
        for i in range(NDIRECT):
            if ip.addrs[i]:
                self.free_block(ip.addrs[i])
                ip.addrs[i] = 0
        if ip.addrs[NDIRECT]:
            with self.cache.block(ip.dev, ip.addrs[NDIRECT]) as buf:
                entries = _INDIRECT.unpack_from(buf.data)
            for addr in entries:
                if addr:
                    self.free_block(addr)
            self.free_block(ip.addrs[NDIRECT])
            ip.addrs[NDIRECT] = 0
        ip.size = 0
        self.update(ip)

    def stat(self, ip: Inode) -> Stat:
        """Metadata of a locked inode."""
        return Stat(type=ip.type, dev=ip.dev, ino=ip.inum, nlink=ip.nlink, size=ip.size)

    def _driver(self, ip: Inode, index: int) -> Callable:
        handlers = self._devices.get(ip.major) if 0 <= ip.major < NDEV else None
        handler = handlers[index] if handlers else None
        if handler is None:
            raise FsError(f"no driver for device {ip.major}")
        return handler

    def read(self, ip: Inode, off: int, n: int) -> bytes:
        """Read up to ``n`` bytes at ``off`` from a locked inode."""
        if ip.type == FileType.DEV:
            return self._driver(ip, 0)(ip, n)
        if off < 0 or n < 0 or off > ip.size:
            raise FsError(f"read at {off} outside file of {ip.size} bytes")
        n = min(n, ip.size - off)
        chunks = []
        tot = 0
        while tot < n:
            with self.cache.block(ip.dev, self._bmap(ip, off // BSIZE)) as buf:
                start = off % BSIZE
                m = min(n - tot, BSIZE - start)
                chunks.append(bytes(buf.data[start : start + m]))
            tot += m
            off += m
        return b"".join(chunks)

    def write(self, ip: Inode, data: bytes, off: int) -> int:
        """Write ``data`` at ``off`` into a locked inode; return the count written."""
        data = bytes(data)
        if ip.type == FileType.DEV:
            return self._driver(ip, 1)(ip, data)
        n = len(data)
        if off < 0 or off > ip.size:
            raise FsError(f"write at {off} outside file of {ip.size} bytes")
        if off + n > MAXFILE * BSIZE:
            raise FsError("write past the maximum file size")
        pos = 0
        while pos < n:
            with self.cache.block(ip.dev, self._bmap(ip, off // BSIZE)) as buf:
                start = off % BSIZE
                m = min(n - pos, BSIZE - start)
                buf.data[start : start + m] = data[pos : pos + m]
                self.log.log_write(buf)
            pos += m
            off += m
        if n > 0 and off > ip.size:
            ip.size = off
            self.update(ip)
        return n

    # Directories.

    def dir_lookup(self, dp: Inode, name: str) -> Optional[Tuple[Inode, int]]:
        """Find ``name`` in a locked directory: the inode and the entry's offset."""
        if dp.type != FileType.DIR:
            raise FsError("lookup in something that is not a directory")
        key = name[:DIRSIZ]
        for off in range(0, dp.size, DIRENT_SIZE):
            raw = self.read(dp, off, DIRENT_SIZE)
            if len(raw) != DIRENT_SIZE:
                raise FsError("short directory read")
            de = Dirent.unpack(raw)
            if de.inum != 0 and de.name == key:
                return self.get_inode(de.inum), off
        return None

    def dir_link(self, dp: Inode, name: str, inum: int) -> None:
        """Add the entry (name, inum) to a locked directory."""
        found = self.dir_lookup(dp, name)
        if found is not None:
            self.put(found[0])
            raise FsError(f"{name!r} already exists")
        slot = next(
            (
                off
                for off in range(0, dp.size, DIRENT_SIZE)
                if Dirent.unpack(self.read(dp, off, DIRENT_SIZE)).inum == 0
            ),
            None,
        )
        if slot is None:
            slot = -(-dp.size // DIRENT_SIZE) * DIRENT_SIZE
        if self.write(dp, Dirent(inum, name).pack(), slot) != DIRENT_SIZE:
            raise FsError("short directory write")

    # Path names.

    def _namex(
        self, path: str, want_parent: bool, cwd: Optional[Inode]
    ) -> Optional[Tuple[Inode, str]]:
        if path.startswith("/"):
            ip = self.get_inode(ROOTINO)
        else:
            if cwd is None:
                raise FsError("relative path without a current directory")
            ip = self.dup(cwd)
        name = ""
        while (elem := skip_elem(path)) is not None:
            name, path = elem
            self.lock(ip)
            if ip.type != FileType.DIR:
                self.unlock_put(ip)
                return None
            if want_parent and path == "":
                self.unlock(ip)
                return ip, name
            found = self.dir_lookup(ip, name)
            self.unlock_put(ip)
            if found is None:
                return None
            ip = found[0]
        if want_parent:
            self.put(ip)
            return None
        return ip, name

    def namei(self, path: str, cwd: Optional[Inode] = None) -> Optional[Inode]:
        """Inode for a path, referenced and unlocked; None if there is none."""
        result = self._namex(path, False, cwd)
        return None if result is None else result[0]

    def namei_parent(
        self, path: str, cwd: Optional[Inode] = None
    ) -> Optional[Tuple[Inode, str]]:
        """Parent directory of a path and the path's final element."""
        return self._namex(path, True, cwd)

    def register_device(
        self, major: int, read: Optional[DeviceRead], write: Optional[DeviceWrite]
    ) -> None:
        """Install the read and write handlers for a major device number."""
        if not 0 <= major < NDEV:
            raise ValueError(f"major device number {major} out of range")
        self._devices[major] = (read, write)