"""Build a file system image holding a root directory and a set of files."""

from __future__ import annotations

import os
import struct
import sys
from collections.abc import Iterable, Sequence

from simfs.layout import (
    BPB,
    BSIZE,
    FSSIZE,
    INODE_SIZE,
    IPB,
    LOGSIZE,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    ROOTINO,
    Dirent,
    DiskInode,
    FileType,
    Superblock,
)

NINODES = 200

_INDIRECT = struct.Struct(f"<{NINDIRECT}I")


class ImageBuilder:
    """Lays out an empty file system with a root directory and adds files to it.

    Disk layout: boot block, superblock, log, inode blocks, free bitmap,
    data blocks.
    """

    def __init__(
        self, fssize: int = FSSIZE, ninodes: int = NINODES, nlog: int = LOGSIZE
    ) -> None:
        self.fssize = fssize
        self.ninodes = ninodes
        self.nlog = nlog
        self.nbitmap = fssize // BPB + 1
        self.ninodeblocks = ninodes // IPB + 1
        self.nmeta = 2 + nlog + self.ninodeblocks + self.nbitmap
        self.nblocks = fssize - self.nmeta
        if self.nblocks <= 0:
            raise ValueError("image too small for its metadata")
        self.sb = Superblock(
            size=fssize,
            nblocks=self.nblocks,
            ninodes=ninodes,
            nlog=nlog,
            logstart=2,
            inodestart=2 + nlog,
            bmapstart=2 + nlog + self.ninodeblocks,
        )
        self.freeblock = self.nmeta
        self.freeinode = 1
        self._finished = False
        self._image = bytearray(fssize * BSIZE)
        self._write_block(1, self.sb.pack().ljust(BSIZE, b"\0"))

        self.rootino = self.alloc_inode(FileType.DIR)
        if self.rootino != ROOTINO:
            raise ValueError("root directory did not get the root inode number")
        self.append(self.rootino, Dirent(self.rootino, ".").pack())
        self.append(self.rootino, Dirent(self.rootino, "..").pack())

    def _read_block(self, blockno: int) -> bytes:
        if not 0 <= blockno < self.fssize:
            raise ValueError(f"block {blockno} out of range")
        start = blockno * BSIZE
        return bytes(self._image[start : start + BSIZE])

    def _write_block(self, blockno: int, data: bytes) -> None:
        if not 0 <= blockno < self.fssize:
            raise ValueError(f"block {blockno} out of range")
        start = blockno * BSIZE
        self._image[start : start + BSIZE] = data

    def _alloc_block(self) -> int:
        if self.freeblock >= self.fssize:
            raise ValueError("out of blocks")
        blockno = self.freeblock
        self.freeblock += 1
        return blockno

    def alloc_inode(self, file_type: FileType) -> int:
        """Allocate the next inode with one link and no content."""
        inum = self.freeinode
        if inum >= self.ninodes:
            raise ValueError("out of inodes")
        self.freeinode += 1
        self.write_inode(inum, DiskInode(type=int(file_type), nlink=1))
        return inum

    def read_inode(self, inum: int) -> DiskInode:
        block = self._read_block(self.sb.inode_block(inum))
        offset = (inum % IPB) * INODE_SIZE
        return DiskInode.unpack(block[offset : offset + INODE_SIZE])

    def write_inode(self, inum: int, dinode: DiskInode) -> None:
        blockno = self.sb.inode_block(inum)
        block = bytearray(self._read_block(blockno))
        offset = (inum % IPB) * INODE_SIZE
        block[offset : offset + INODE_SIZE] = dinode.pack()
        self._write_block(blockno, bytes(block))

    def _block_for(self, din: DiskInode, fbn: int) -> int:
        """Block holding file block ``fbn``, allocated if it has none yet."""
        if fbn < NDIRECT:
            if din.addrs[fbn] == 0:
                din.addrs[fbn] = self._alloc_block()
            return din.addrs[fbn]
        if din.addrs[NDIRECT] == 0:
            din.addrs[NDIRECT] = self._alloc_block()
        indirect = list(_INDIRECT.unpack(self._read_block(din.addrs[NDIRECT])))
        index = fbn - NDIRECT
        if indirect[index] == 0:
            indirect[index] = self._alloc_block()
            self._write_block(din.addrs[NDIRECT], _INDIRECT.pack(*indirect))
        return indirect[index]

    def append(self, inum: int, data: bytes) -> None:
        """Append bytes to the end of an inode's content."""
        din = self.read_inode(inum)
        off = din.size
        pos = 0
        while pos < len(data):
            fbn = off // BSIZE
            if fbn >= MAXFILE:
                raise ValueError("file too large")
            blockno = self._block_for(din, fbn)
            n1 = min(len(data) - pos, (fbn + 1) * BSIZE - off)
            block = bytearray(self._read_block(blockno))
            start = off - fbn * BSIZE
            block[start : start + n1] = data[pos : pos + n1]
            self._write_block(blockno, bytes(block))
            pos += n1
            off += n1
        din.size = off
        self.write_inode(inum, din)

    def add_file(self, name: str, data: bytes) -> int:
        """Add a file to the root directory; a leading underscore is dropped."""
        if self._finished:
            raise RuntimeError("image already finished")
        if "/" in name:
            raise ValueError(f"file name may not contain '/': {name!r}")
        if name.startswith("_"):
            name = name[1:]
        inum = self.alloc_inode(FileType.FILE)
        self.append(self.rootino, Dirent(inum, name).pack())
        self.append(inum, data)
        return inum

    def finish(self) -> None:
        """Round the root directory up to whole blocks and write the bitmap."""
        if self._finished:
            raise RuntimeError("image already finished")
        din = self.read_inode(self.rootino)
        din.size = (din.size // BSIZE + 1) * BSIZE
        self.write_inode(self.rootino, din)

        used = self.freeblock
        if used >= BPB:
            raise ValueError("too many blocks in use for one bitmap block")
        bitmap = bytearray(BSIZE)
        for i in range(used):
            bitmap[i // 8] |= 1 << (i % 8)
        self._write_block(self.sb.bmapstart, bytes(bitmap))
        self._finished = True

    def image(self) -> bytes:
        return bytes(self._image)


def make_image(
    output: str | os.PathLike[str], paths: Iterable[str | os.PathLike[str]]
) -> ImageBuilder:
    """Write an image holding the given files to ``output``."""
    builder = ImageBuilder()
    for path in paths:
        with open(path, "rb") as fh:
            builder.add_file(os.path.basename(os.fspath(path)), fh.read())
    builder.finish()
    with open(output, "wb") as fh:
        fh.write(builder.image())
    return builder


def main(argv: Sequence[str] | None = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        print("Usage: mkfs fs.img files...", file=sys.stderr)
        return 1
    try:
        builder = make_image(args[0], args[1:])
    except OSError as exc:
        print(f"{exc.filename}: {exc.strerror}", file=sys.stderr)
        return 1
    except ValueError as exc:
        print(f"mkfs: {exc}", file=sys.stderr)
        return 1
    print(
        f"nmeta {builder.nmeta} (boot, super, log blocks {builder.nlog} "
        f"inode blocks {builder.ninodeblocks}, bitmap blocks {builder.nbitmap}) "
        f"blocks {builder.nblocks} total {builder.fssize}"
    )
    print(f"balloc: first {builder.freeblock} blocks have been allocated")
    print(f"balloc: write bitmap block at sector {builder.sb.bmapstart}")
    return 0


if __name__ == "__main__":
    sys.exit(main())