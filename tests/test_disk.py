from dataclasses import dataclass, field

import pytest

from simfs.disk import DiskError, MemDisk
from simfs.layout import BSIZE, ROOTDEV


def _disk(n):
    return MemDisk(b"".join(bytes([i]) * BSIZE for i in range(n)))


@dataclass
class FakeBuf:
    dev: int = ROOTDEV
    blockno: int = 0
    data: bytearray = field(default_factory=lambda: bytearray(BSIZE))
    valid: bool = False
    dirty: bool = False
    holding: bool = True


def test_nblocks_and_default_dev():
    disk = _disk(5)
    assert disk.nblocks == 5
    assert disk.dev == ROOTDEV


def test_read_block():
    disk = _disk(4)
    assert disk.read_block(3) == bytes([3]) * BSIZE


def test_write_then_read():
    disk = _disk(4)
    disk.write_block(2, b"z" * BSIZE)
    assert disk.read_block(2) == b"z" * BSIZE
    assert disk.read_block(1) == bytes([1]) * BSIZE


def test_out_of_range():
    disk = _disk(2)
    with pytest.raises(DiskError):
        disk.read_block(2)
    with pytest.raises(DiskError):
        disk.read_block(-1)
    with pytest.raises(DiskError):
        disk.write_block(5, bytes(BSIZE))


def test_write_wrong_size():
    with pytest.raises(ValueError):
        _disk(2).write_block(0, b"short")


def test_sync_reads_invalid_buffer():
    disk = _disk(3)
    buf = FakeBuf(blockno=2)
    disk.sync(buf)
    assert buf.valid
    assert bytes(buf.data) == bytes([2]) * BSIZE


def test_sync_writes_dirty_buffer():
    disk = _disk(3)
    buf = FakeBuf(blockno=1, data=bytearray(b"q" * BSIZE), valid=True, dirty=True)
    disk.sync(buf)
    assert disk.read_block(1) == b"q" * BSIZE
    assert buf.valid and not buf.dirty


def test_sync_requires_lock():
    with pytest.raises(DiskError):
        _disk(2).sync(FakeBuf(holding=False))


def test_sync_nothing_to_do():
    with pytest.raises(DiskError):
        _disk(2).sync(FakeBuf(valid=True))


def test_sync_wrong_device():
    with pytest.raises(DiskError):
        _disk(2).sync(FakeBuf(dev=ROOTDEV + 1))


def test_sync_block_out_of_range():
    with pytest.raises(DiskError):
        _disk(2).sync(FakeBuf(blockno=9))


def test_save_and_load(tmp_path):
    disk = _disk(3)
    disk.write_block(0, b"a" * BSIZE)
    path = tmp_path / "fs.img"
    disk.save(path)
    loaded = MemDisk.from_file(path)
    assert loaded.image == disk.image
    assert loaded.read_block(0) == b"a" * BSIZE