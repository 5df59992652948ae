"""User tools over a file system: cat, echo and ls."""

from __future__ import annotations

import sys
from collections.abc import Iterable
from typing import BinaryIO, Optional

from simfs.file import FileError, FileTable, OpenFile
from simfs.fs import FileSystem, FsError, Inode
from simfs.layout import DIRENT_SIZE, DIRSIZ, ROOTINO, Dirent, FileType, Stat

_CHUNK = 512
_PATH_BUF = 512


def _lookup(fs: FileSystem, path: str) -> Optional[Inode]:
    """Resolve a path, relative ones from the root directory."""
    root = fs.get_inode(ROOTINO)
    try:
        return fs.namei(path, root)
    except FsError:
        return None
    finally:
        fs.put(root)


def _open(fs: FileSystem, table: FileTable, path: str) -> Optional[OpenFile]:
    ip = _lookup(fs, path)
    if ip is None:
        return None
    try:
        return table.open_inode(ip, True, False)
    except FileError:
        with fs.log.transaction():
            fs.put(ip)
        raise


def _stat_path(fs: FileSystem, table: FileTable, path: str) -> Optional[Stat]:
    f = _open(fs, table, path)
    if f is None:
        return None
    try:
        return table.stat(f)
    finally:
        table.close(f)


def cat(fs: FileSystem, paths: Iterable[str], out: BinaryIO) -> None:
    """Copy the named files, or standard input if none are named, to ``out``."""
    paths = list(paths)
    if not paths:
        while chunk := sys.stdin.buffer.read(_CHUNK):
            out.write(chunk)
        return
    table = FileTable(fs)
    for path in paths:
        f = _open(fs, table, path)
        if f is None:
            raise FileNotFoundError(f"cat: cannot open {path}")
        try:
            while chunk := table.read(f, _CHUNK):
                out.write(chunk)
        finally:
            table.close(f)


def echo(args: Iterable[str]) -> str:
    """The arguments separated by spaces and ended by a newline; empty if none."""
    args = list(args)
    return " ".join(args) + "\n" if args else ""


def fmt_name(path: str) -> str:
    """Last element of a path, padded with blanks to DIRSIZ characters."""
    name = path.rsplit("/", 1)[-1]
    if len(name) >= DIRSIZ:
        return name
    return name.ljust(DIRSIZ)


def _line(path: str, st: Stat) -> str:
    return f"{fmt_name(path)} {st.type} {st.ino} {st.size}"


def ls(fs: FileSystem, path: str = ".") -> list[str]:
    """Listing lines for a file, or for every entry of a directory."""
    table = FileTable(fs)
    f = _open(fs, table, path)
    if f is None:
        raise FileNotFoundError(f"ls: cannot open {path}")
    try:
        st = table.stat(f)
        if st.type == FileType.FILE:
            return [_line(path, st)]
        if st.type != FileType.DIR:
            return []
        if len(path) + 1 + DIRSIZ + 1 > _PATH_BUF:
            raise ValueError("ls: path too long")
        lines = []
        while len(raw := table.read(f, DIRENT_SIZE)) == DIRENT_SIZE:
            de = Dirent.unpack(raw)
            if de.inum == 0:
                continue
            child = f"{path}/{de.name}"
            child_st = _stat_path(fs, table, child)
            if child_st is None:
                lines.append(f"ls: cannot stat {child}")
            else:
                lines.append(_line(child, child_st))
        return lines
    finally:
        table.close(f)