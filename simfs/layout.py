"""On-disk layout: system parameters, superblock, inodes and directory entries."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass, field

# System parameters.
NPROC = 64
KSTACKSIZE = 4096
NCPU = 8
NOFILE = 16
NFILE = 100
NINODE = 50
NDEV = 10
ROOTDEV = 1
MAXARG = 32
MAXOPBLOCKS = 10
LOGSIZE = MAXOPBLOCKS * 3
NBUF = MAXOPBLOCKS * 3
FSSIZE = 1000

# File system format.
ROOTINO = 1
BSIZE = 512
NDIRECT = 12
_UINT_SIZE = 4
NINDIRECT = BSIZE // _UINT_SIZE
MAXFILE = NDIRECT + NINDIRECT
DIRSIZ = 14

_SUPERBLOCK = struct.Struct("<7I")
_DINODE = struct.Struct(f"<4hI{NDIRECT + 1}I")
_DIRENT = struct.Struct(f"<H{DIRSIZ}s")

SUPERBLOCK_SIZE = _SUPERBLOCK.size
INODE_SIZE = _DINODE.size
DIRENT_SIZE = _DIRENT.size
IPB = BSIZE // INODE_SIZE  # inodes per block
BPB = BSIZE * 8  # bitmap bits per block


class FileType(enum.IntEnum):
    """Type of an inode; zero on disk means the inode is free."""

    DIR = 1
    FILE = 2
    DEV = 3


@dataclass
class Superblock:
    """Describes the disk layout."""

    size: int
    nblocks: int
    ninodes: int
    nlog: int
    logstart: int
    inodestart: int
    bmapstart: int

    def pack(self) -> bytes:
        return _SUPERBLOCK.pack(
            self.size,
            self.nblocks,
            self.ninodes,
            self.nlog,
            self.logstart,
            self.inodestart,
            self.bmapstart,
        )

    @classmethod
    def unpack(cls, data: bytes) -> Superblock:
        return cls(*_SUPERBLOCK.unpack_from(data))

    def inode_block(self, inum: int) -> int:
        """Block that holds inode ``inum``."""
        return inum // IPB + self.inodestart

    def bitmap_block(self, blockno: int) -> int:
        """Bitmap block that holds the bit for ``blockno``."""
        return blockno // BPB + self.bmapstart


def _empty_addrs() -> list[int]:
    return [0] * (NDIRECT + 1)


@dataclass
class DiskInode:
    """On-disk inode."""

    type: int = 0
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: list[int] = field(default_factory=_empty_addrs)

    def __post_init__(self) -> None:
        if len(self.addrs) != NDIRECT + 1:
            raise ValueError(f"an inode holds exactly {NDIRECT + 1} block addresses")
        self.addrs = list(self.addrs)

    def pack(self) -> bytes:
        return _DINODE.pack(
            self.type, self.major, self.minor, self.nlink, self.size, *self.addrs
        )

    @classmethod
    def unpack(cls, data: bytes) -> DiskInode:
        type_, major, minor, nlink, size, *addrs = _DINODE.unpack_from(data)
        return cls(type_, major, minor, nlink, size, addrs)


@dataclass
class Dirent:
    """Directory entry: an inode number and a name of at most DIRSIZ bytes."""

    inum: int = 0
    name: str = ""

    def pack(self) -> bytes:
        # struct pads with zero bytes and truncates, as strncpy would.
        return _DIRENT.pack(self.inum, self.name.encode("latin-1")[:DIRSIZ])

    @classmethod
    def unpack(cls, data: bytes) -> Dirent:
        inum, raw = _DIRENT.unpack_from(data)
        return cls(inum, raw.split(b"\0", 1)[0].decode("latin-1"))


@dataclass
class Stat:
    """Metadata of a file as returned to callers."""

    type: int
    dev: int
    ino: int
    nlink: int
    size: int