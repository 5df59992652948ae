"""A small grep: regular expressions with only ``^``, ``.``, ``*`` and ``$``."""

from __future__ import annotations

import sys
from collections.abc import Sequence
from typing import BinaryIO

_BUF_SIZE = 1024


def _match_here(pattern: str, pi: int, text: str, ti: int) -> bool:
    """True if the pattern from ``pi`` matches at the start of ``text[ti:]``."""
    while True:
        if pi == len(pattern):
            return True
        if pi + 1 < len(pattern) and pattern[pi + 1] == "*":
            return _match_star(pattern[pi], pattern, pi + 2, text, ti)
        if pattern[pi] == "$" and pi + 1 == len(pattern):
            return ti == len(text)
        if ti < len(text) and pattern[pi] in (".", text[ti]):
            pi += 1
            ti += 1
            continue
        return False


def _match_star(c: str, pattern: str, pi: int, text: str, ti: int) -> bool:
    """True if ``c*`` followed by the pattern from ``pi`` matches at ``ti``."""
    while True:
        if _match_here(pattern, pi, text, ti):
            return True
        if ti < len(text) and (text[ti] == c or c == "."):
            ti += 1
        else:
            return False


def match(pattern: str, text: str) -> bool:
    """True if ``pattern`` matches anywhere in ``text``."""
    if pattern.startswith("^"):
        return _match_here(pattern, 1, text, 0)
    return any(_match_here(pattern, 0, text, ti) for ti in range(len(text) + 1))


def grep(pattern: str, stream: BinaryIO, out: BinaryIO) -> None:
    """Copy the newline-ended lines of ``stream`` that match ``pattern`` to ``out``.

    Input is read into a buffer of 1023 bytes; a read that brings no newline
    at all throws the buffered text away, and a last line without a newline
    is never printed.
    """
    pending = b""
    while chunk := stream.read(_BUF_SIZE - len(pending) - 1):
        pending += chunk
        *lines, rest = pending.split(b"\n")
        for line in lines:
            if match(pattern, line.decode("latin-1")):
                out.write(line + b"\n")
        pending = rest if lines else b""


def main(argv: Sequence[str] | None = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        print("usage: grep pattern [file ...]", file=sys.stderr)
        return 1
    pattern, paths = args[0], args[1:]
    out = sys.stdout.buffer
    if not paths:
        grep(pattern, sys.stdin.buffer, out)
        out.flush()
        return 0
    for path in paths:
        try:
            fh = open(path, "rb")
        except OSError:
            out.write(f"grep: cannot open {path}\n".encode())
            out.flush()
            return 1
        with fh:
            grep(pattern, fh, out)
    out.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main())