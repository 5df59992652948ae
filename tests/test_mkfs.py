import struct

import pytest

from simfs.layout import (
    BSIZE,
    DIRENT_SIZE,
    DIRSIZ,
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
from simfs.mkfs import NINODES, ImageBuilder, main, make_image


def _block(image, blockno):
    return image[blockno * BSIZE : (blockno + 1) * BSIZE]


def _inode(image, sb, inum):
    block = _block(image, sb.inode_block(inum))
    off = (inum % IPB) * INODE_SIZE
    return DiskInode.unpack(block[off : off + INODE_SIZE])


def _content(image, sb, inum):
    din = _inode(image, sb, inum)
    nblocks = (din.size + BSIZE - 1) // BSIZE
    addrs = din.addrs[:NDIRECT]
    if din.addrs[NDIRECT]:
        addrs += list(struct.unpack(f"<{NINDIRECT}I", _block(image, din.addrs[NDIRECT])))
    data = b"".join(_block(image, a) for a in addrs[:nblocks])
    return data[: din.size]


def _entries(image, sb, inum):
    data = _content(image, sb, inum)
    entries = [
        Dirent.unpack(data[i : i + DIRENT_SIZE]) for i in range(0, len(data), DIRENT_SIZE)
    ]
    return [(e.name, e.inum) for e in entries if e.inum]


def test_superblock_describes_layout():
    builder = ImageBuilder()
    builder.finish()
    image = builder.image()
    sb = Superblock.unpack(_block(image, 1))
    assert len(image) == FSSIZE * BSIZE
    assert sb.size == FSSIZE
    assert sb.ninodes == NINODES
    assert sb.nlog == LOGSIZE
    assert sb.logstart == 2
    assert sb.nblocks + builder.nmeta == sb.size
    assert builder.nmeta == 59
    assert sb.logstart < sb.inodestart < sb.bmapstart < builder.nmeta


def test_root_directory_has_dot_entries():
    builder = ImageBuilder()
    builder.finish()
    image = builder.image()
    sb = builder.sb
    root = _inode(image, sb, ROOTINO)
    assert root.type == FileType.DIR
    assert root.nlink == 1
    assert root.size % BSIZE == 0
    assert _entries(image, sb, ROOTINO) == [(".", ROOTINO), ("..", ROOTINO)]


def test_files_round_trip():
    builder = ImageBuilder()
    small = b"hello, world\n"
    large = bytes(range(256)) * 28  # spills into the indirect block
    a = builder.add_file("small", small)
    b = builder.add_file("large", large)
    builder.finish()
    image = builder.image()
    sb = builder.sb
    assert _content(image, sb, a) == small
    assert _content(image, sb, b) == large
    assert _inode(image, sb, b).addrs[NDIRECT] != 0
    assert _inode(image, sb, a).type == FileType.FILE
    assert _entries(image, sb, ROOTINO)[2:] == [("small", a), ("large", b)]


def test_leading_underscore_is_dropped():
    builder = ImageBuilder()
    inum = builder.add_file("_cat", b"x")
    builder.finish()
    assert ("cat", inum) in _entries(builder.image(), builder.sb, ROOTINO)


def test_long_names_are_truncated():
    builder = ImageBuilder()
    name = "a_rather_long_file_name"
    inum = builder.add_file(name, b"")
    builder.finish()
    assert (name[:DIRSIZ], inum) in _entries(builder.image(), builder.sb, ROOTINO)


def test_name_with_slash_is_rejected():
    builder = ImageBuilder()
    with pytest.raises(ValueError):
        builder.add_file("dir/file", b"")


def test_bitmap_marks_exactly_the_used_blocks():
    builder = ImageBuilder()
    builder.add_file("data", b"z" * 3000)
    builder.finish()
    # 59 metadata blocks, one root directory block, six data blocks.
    assert builder.freeblock == 66
    bitmap = _block(builder.image(), builder.sb.bmapstart)
    bits = [(bitmap[i // 8] >> (i % 8)) & 1 for i in range(FSSIZE)]
    assert bits.count(1) == 66
    assert bits[:66] == [1] * 66
    assert bits[66:] == [0] * (FSSIZE - 66)


def test_append_grows_size():
    builder = ImageBuilder()
    inum = builder.alloc_inode(FileType.FILE)
    builder.append(inum, b"abc")
    builder.append(inum, b"def")
    assert builder.read_inode(inum).size == 6
    assert _content(builder.image(), builder.sb, inum) == b"abcdef"


def test_inode_round_trip():
    builder = ImageBuilder()
    din = DiskInode(type=int(FileType.DEV), major=1, minor=1, nlink=2, size=0)
    builder.write_inode(5, din)
    assert builder.read_inode(5) == din


def test_file_too_large():
    builder = ImageBuilder()
    with pytest.raises(ValueError):
        builder.add_file("huge", b"\1" * (MAXFILE * BSIZE + 1))


def test_out_of_inodes():
    builder = ImageBuilder(ninodes=3)
    builder.add_file("one", b"")
    with pytest.raises(ValueError):
        builder.add_file("two", b"")


def test_finish_twice_is_an_error():
    builder = ImageBuilder()
    builder.finish()
    with pytest.raises(RuntimeError):
        builder.finish()
    with pytest.raises(RuntimeError):
        builder.add_file("late", b"")


def test_make_image_writes_file(tmp_path):
    src = tmp_path / "_notes"
    src.write_bytes(b"remember this")
    out = tmp_path / "fs.img"
    builder = make_image(out, [src])
    image = out.read_bytes()
    assert image == builder.image()
    entries = dict(_entries(image, builder.sb, ROOTINO))
    assert _content(image, builder.sb, entries["notes"]) == b"remember this"


def test_main_success(tmp_path, capsys):
    src = tmp_path / "readme"
    src.write_bytes(b"text")
    out = tmp_path / "fs.img"
    assert main([str(out), str(src)]) == 0
    assert len(out.read_bytes()) == FSSIZE * BSIZE
    printed = capsys.readouterr().out
    assert printed.startswith("nmeta ")
    assert "balloc: first" in printed


def test_main_usage(capsys):
    assert main([]) == 1
    assert "Usage: mkfs fs.img files..." in capsys.readouterr().err


def test_main_missing_input(tmp_path, capsys):
    missing = tmp_path / "nothing"
    assert main([str(tmp_path / "fs.img"), str(missing)]) == 1
    assert str(missing) in capsys.readouterr().err