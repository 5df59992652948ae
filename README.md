# simfs

`simfs` is a small Unix-style file system that lives in memory. Each layer
is its own module:

| Module           | What it provides                                                                  |
|------------------|-----------------------------------------------------------------------------------|
| `simfs.layout`   | Parameters and on-disk structures: `Superblock`, `DiskInode`, `Dirent`, `Stat`, `FileType` |
| `simfs.disk`     | `MemDisk`, a block device over a disk image held in memory                        |
| `simfs.bufcache` | `BufferCache` and `Buffer`, a fixed set of cached blocks recycled least-recently-used first |
| `simfs.log`      | `Log`, a redo log that makes groups of block writes atomic                        |
| `simfs.fs`       | `FileSystem` and `Inode`: block and inode allocation, file contents, directories, path lookup |
| `simfs.pipe`     | `Pipe`, a byte channel with a 512-byte ring buffer                                |
| `simfs.file`     | `FileTable` and `OpenFile`: reference-counted open files over inodes and pipes    |
| `simfs.mkfs`     | `ImageBuilder` and `make_image`, which build fresh disk images                    |
| `simfs.tools`    | `cat`, `echo`, `ls` and `fmt_name`, working against a `FileSystem`                |
| `simfs.grep`     | `match` and `grep`, a matcher for `^`, `.`, `*` and `$`                           |
| `simfs.fmt`      | `format_user` and `format_console`, minimal `%d %x %p %s` formatters              |
| `simfs.kbd`      | `KeyboardDecoder` and `decode`, turning PC scan codes into characters             |
| `simfs.console`  | `Console`, a line-edited input buffer, and `CgaScreen`, an 80×25 text screen      |

Blocks are 512 bytes. An image is laid out as boot block, superblock, log,
inode blocks, free-block bitmap and data blocks. An inode has twelve direct
block addresses and one indirect block. Directory entries hold names of up
to 14 bytes.

## Installing

```
pip install .
```

No third-party libraries are needed. To run the tests:

```
pip install ".[test]"
pytest
```

## Building a disk image

```
simfs-mkfs fs.img README.md notes.txt
```

This writes a 1000-block image to `fs.img`. The root directory holds `.`,
`..` and one entry per file, named after the file's base name. A leading
underscore is dropped, so `_cat` is stored as `cat`. The command prints the
layout and the number of blocks in use. It exits with status 1 when no image
name is given or a file cannot be read.

From Python:

```python
from simfs.mkfs import ImageBuilder, make_image

make_image("fs.img", ["README.md", "notes.txt"])

builder = ImageBuilder()
builder.add_file("hello.txt", b"hello\n")
builder.finish()
image = builder.image()
```

`ImageBuilder` also offers `alloc_inode`, `read_inode`, `write_inode` and
`append` for lower-level work. `finish` rounds the root directory up to whole
blocks and writes the free-block bitmap. It may be called only once.

## Working with an image

```python
from simfs.disk import MemDisk
from simfs.fs import FileSystem

fs = FileSystem(MemDisk(image))          # or MemDisk.from_file("fs.img")
ip = fs.namei("/hello.txt")
fs.lock(ip)
data = fs.read(ip, 0, 100)               # b"hello\n"
fs.unlock(ip)
with fs.log.transaction():
    fs.put(ip)
```

When it mounts, `FileSystem` reads the superblock and replays any committed
transaction left in the log. Any change to the disk must happen inside
`fs.log.transaction()`. Several operations may share one transaction. The
transaction commits when the last of them ends.

- `namei` returns the inode for a path, or `None` if there is none.
  `namei_parent` returns the parent directory and the final name. Relative
  paths need a `cwd` inode.
- `lock` and `unlock` hold an inode. `read`, `write`, `stat`, `dir_lookup` and
  `dir_link` work on a held inode.
- `get_inode`, `dup` and `put` manage references. The last `put` on an inode
  with no links frees it on disk.
- `alloc_block`, `free_block` and `alloc_inode` work on the bitmap and the
  inode table.
- `register_device` installs read and write handlers for inodes of type
  `FileType.DEV`.

Errors are raised as `FsError`, `LogError`, `BufferError_` and `DiskError`.

`FileTable` wraps inodes and pipes as `OpenFile` objects. Each one has an
offset, read and write permissions, and a reference count. `FileTable.write`
splits large writes into several transactions.

## Tools

```python
import sys
from simfs.tools import cat, echo, ls

ls(fs, "/")                            # list of lines: padded name, type, inode number, size
cat(fs, ["/hello.txt"], sys.stdout.buffer)
echo(["a", "b"])                       # "a b\n"
```

`cat` with no paths copies standard input. `cat` and `ls` raise
`FileNotFoundError` for a path that does not exist.

## Searching text

```
simfs-grep 'ab*c$' notes.txt
```

With no file names, `simfs-grep` reads standard input. Matching lines are
printed unchanged. A final line that has no newline is not examined. The
matcher understands only `^`, `$`, `.` and `*`:

```python
from simfs.grep import match

match("^h.*o$", "hello")   # True
match("x*y", "aaa")        # False
```

## Keyboard and console

```python
from simfs.kbd import decode

decode([0x2A, 0x23, 0xAA, 0x17])   # shift held for "H", then "i" -> "Hi"
```

`Console.interrupt` takes typed characters and handles the edit keys:

- Backspace and DEL erase a character.
- Ctrl-U erases the line.
- Carriage return becomes newline.
- Ctrl-D marks end of input.
- Ctrl-P calls the `on_procdump` callback.
- Ctrl-C calls the `on_interrupt` callback.

`Console.read` waits for a completed line and returns it. `Console.write`
echoes output to the attached `CgaScreen` and to the `serial` byte buffer.
`CgaScreen.text()` returns what is on the screen.

## What it does not do

There are no processes and no system-call layer. Nothing creates, renames or
unlinks files or directories by path: new entries go in through `ImageBuilder`
or through `alloc_inode` and `dir_link`. No shell is included. Only image
building and grep are available as commands; `cat`, `echo` and `ls` are Python
functions. The console and keyboard classes are not attached to a real
terminal.