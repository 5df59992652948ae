"""Console: a text-mode screen for output and a line-edited input buffer."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from typing import Optional, Union

BACKSPACE = 0x100
COLS = 80
ROWS = 25
INPUT_BUF = 128
_ATTR = 0x0700  # light grey on black


def ctrl(ch: str) -> int:
    """Code of Control-``ch``."""
    return ord(ch) - ord("@")


class CgaScreen:
    """An 80x25 text screen with a cursor; scrolls before the last row."""

    def __init__(self) -> None:
        self.cells = [0] * (COLS * ROWS)
        self.pos = 0

    def putc(self, c: int) -> None:
        """Put one character at the cursor; BACKSPACE moves the cursor back."""
        pos = self.pos
        if c == ord("\n"):
            pos += COLS - pos % COLS
        elif c == BACKSPACE:
            if pos > 0:
                pos -= 1
        else:
            self.cells[pos] = (c & 0xFF) | _ATTR
            pos += 1
        if pos < 0 or pos > ROWS * COLS:
            raise RuntimeError("cursor position under/overflow")
        if pos // COLS >= ROWS - 1:
            self.cells[: (ROWS - 2) * COLS] = self.cells[COLS : (ROWS - 1) * COLS]
            pos -= COLS
            self.cells[pos : (ROWS - 1) * COLS] = [0] * ((ROWS - 1) * COLS - pos)
        self.pos = pos
        self.cells[pos] = ord(" ") | _ATTR

    def text(self) -> str:
        """Screen contents as lines without trailing blanks."""
        rows = (
            "".join(
                chr(cell & 0xFF) if cell & 0xFF else " "
                for cell in self.cells[row * COLS : (row + 1) * COLS]
            ).rstrip()
            for row in range(ROWS)
        )
        return "\n".join(rows).rstrip("\n")


class Console:
    """Keyboard input with line editing, echoed to the screen and serial line."""

    def __init__(
        self,
        screen: Optional[CgaScreen] = None,
        on_procdump: Optional[Callable[[], object]] = None,
        on_interrupt: Optional[Callable[[], object]] = None,
    ) -> None:
        self.screen = screen if screen is not None else CgaScreen()
        self.serial = bytearray()
        self.on_procdump = on_procdump
        self.on_interrupt = on_interrupt
        self._buf = bytearray(INPUT_BUF)
        self._r = 0  # read index
        self._w = 0  # write index
        self._e = 0  # edit index
        self._cond = threading.Condition()

    def _putc(self, c: int) -> None:
        if c == BACKSPACE:
            self.serial += b"\b \b"
        else:
            self.serial.append(c & 0xFF)
        self.screen.putc(c)

    def interrupt(self, chars: Union[str, bytes, Iterable[int]]) -> None:
        """Handle typed characters: edit the input line and echo it."""
        codes = chars.encode("latin-1") if isinstance(chars, str) else chars
        procdump = False
        fg_interrupt = False
        with self._cond:
            for c in codes:
                if c == ctrl("P"):
                    procdump = True
                elif c == ctrl("U"):
                    while (
                        self._e != self._w
                        and self._buf[(self._e - 1) % INPUT_BUF] != ord("\n")
                    ):
                        self._e -= 1
                        self._putc(BACKSPACE)
                elif c == ctrl("C"):
                    fg_interrupt = True
                elif c in (ctrl("H"), 0x7F):
                    if self._e != self._w:
                        self._e -= 1
                        self._putc(BACKSPACE)
                elif c != 0 and self._e - self._r < INPUT_BUF:
                    if c == ord("\r"):
                        c = ord("\n")
                    self._buf[self._e % INPUT_BUF] = c & 0xFF
                    self._e += 1
                    self._putc(c)
                    if (
                        c in (ord("\n"), ctrl("D"))
                        or self._e == self._r + INPUT_BUF
                    ):
                        self._w = self._e
                        self._cond.notify_all()
        # Callbacks run without the console lock held.
        if procdump and self.on_procdump is not None:
            self.on_procdump()
        if fg_interrupt and self.on_interrupt is not None:
            self.on_interrupt()

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes of committed input, stopping after a newline.

        Blocks until a line is available. Control-D ends the read; if bytes
        were already read it is kept, so the next read returns empty.
        """
        if n < 0:
            raise ValueError("negative read size")
        out = bytearray()
        with self._cond:
            while len(out) < n:
                while self._r == self._w:
                    self._cond.wait()
                c = self._buf[self._r % INPUT_BUF]
                self._r += 1
                if c == ctrl("D"):
                    if out:
                        self._r -= 1
                    break
                out.append(c)
                if c == ord("\n"):
                    break
        return bytes(out)

    def write(self, data: bytes) -> int:
        """Write bytes to the screen and serial line; return the count."""
        data = bytes(data)
        with self._cond:
            for c in data:
                self._putc(c)
        return len(data)