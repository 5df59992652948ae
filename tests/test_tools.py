import io
import sys

import pytest

from simfs.disk import MemDisk
from simfs.fs import FileSystem
from simfs.layout import DIRSIZ, FileType
from simfs.mkfs import ImageBuilder
from simfs.tools import cat, echo, fmt_name, ls

HELLO = b"hello world\n"
NOTE = b"a short note"


@pytest.fixture
def fs():
    builder = ImageBuilder()
    builder.add_file("hello", HELLO)
    builder.add_file("_note", NOTE)
    builder.finish()
    return FileSystem(MemDisk(builder.image()))


def _parse(line):
    name = line[:DIRSIZ].rstrip()
    type_, ino, size = (int(x) for x in line[DIRSIZ:].split())
    return name, type_, ino, size


def test_cat_single_file(fs):
    out = io.BytesIO()
    cat(fs, ["hello"], out)
    assert out.getvalue() == HELLO


def test_cat_concatenates_in_order(fs):
    out = io.BytesIO()
    cat(fs, ["/note", "hello"], out)
    assert out.getvalue() == NOTE + HELLO


def test_cat_missing_file_raises(fs):
    with pytest.raises(FileNotFoundError):
        cat(fs, ["missing"], io.BytesIO())


def test_cat_without_paths_copies_stdin(fs, monkeypatch):
    monkeypatch.setattr(sys, "stdin", io.TextIOWrapper(io.BytesIO(b"from stdin")))
    out = io.BytesIO()
    cat(fs, [], out)
    assert out.getvalue() == b"from stdin"


def test_echo_joins_arguments():
    assert echo(["a", "b", "c"]) == "a b c\n"


def test_echo_without_arguments_prints_nothing():
    assert echo([]) == ""


def test_fmt_name_pads_last_element():
    name = fmt_name("dir/sub/name")
    assert len(name) == DIRSIZ
    assert name.rstrip() == "name"


def test_fmt_name_keeps_long_names():
    long_name = "x" * (DIRSIZ + 3)
    assert fmt_name("/" + long_name) == long_name


def test_ls_file(fs):
    lines = ls(fs, "/hello")
    assert len(lines) == 1
    name, type_, _, size = _parse(lines[0])
    assert (name, type_, size) == ("hello", FileType.FILE, len(HELLO))


def test_ls_root_lists_every_entry(fs):
    entries = {name: (type_, ino, size) for name, type_, ino, size in map(_parse, ls(fs, "/"))}
    assert set(entries) == {".", "..", "hello", "note"}
    assert entries["."][0] == FileType.DIR
    assert entries["."] == entries[".."]
    assert entries["note"][0] == FileType.FILE
    assert entries["note"][2] == len(NOTE)


def test_ls_default_is_root(fs):
    assert [_parse(x)[0] for x in ls(fs)] == [_parse(x)[0] for x in ls(fs, "/")]


def test_ls_missing_raises(fs):
    with pytest.raises(FileNotFoundError):
        ls(fs, "/nope")


def test_ls_path_too_long(fs):
    with pytest.raises(ValueError):
        ls(fs, "/" * 600)


def test_repeated_ls_does_not_leak_inodes(fs):
    first = ls(fs, "/")
    for _ in range(80):
        assert ls(fs, "/") == first