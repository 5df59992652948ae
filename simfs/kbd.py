"""Decoding of PC keyboard scan codes into characters."""

from __future__ import annotations

import enum
from collections.abc import Iterable


class Modifier(enum.IntFlag):
    """Modifier and lock state kept between scan codes."""

    SHIFT = 1 << 0
    CTL = 1 << 1
    ALT = 1 << 2
    CAPSLOCK = 1 << 3
    NUMLOCK = 1 << 4
    SCROLLLOCK = 1 << 5
    E0ESC = 1 << 6


# Special key codes.
KEY_HOME = 0xE0
KEY_END = 0xE1
KEY_UP = 0xE2
KEY_DN = 0xE3
KEY_LF = 0xE4
KEY_RT = 0xE5
KEY_PGUP = 0xE6
KEY_PGDN = 0xE7
KEY_INS = 0xE8
KEY_DEL = 0xE9


def _ctrl(ch: str) -> int:
    return (ord(ch) - ord("@")) & 0xFF


_SHIFTCODE = [0] * 256
for _code, _flag in (
    (0x1D, Modifier.CTL),
    (0x2A, Modifier.SHIFT),
    (0x36, Modifier.SHIFT),
    (0x38, Modifier.ALT),
    (0x9D, Modifier.CTL),
    (0xB8, Modifier.ALT),
):
    _SHIFTCODE[_code] = int(_flag)

_TOGGLECODE = [0] * 256
for _code, _flag in (
    (0x3A, Modifier.CAPSLOCK),
    (0x45, Modifier.NUMLOCK),
    (0x46, Modifier.SCROLLLOCK),
):
    _TOGGLECODE[_code] = int(_flag)

_SPECIAL = {
    0xC8: KEY_UP,
    0xD0: KEY_DN,
    0xC9: KEY_PGUP,
    0xD1: KEY_PGDN,
    0xCB: KEY_LF,
    0xCD: KEY_RT,
    0x97: KEY_HOME,
    0xCF: KEY_END,
    0xD2: KEY_INS,
    0xD3: KEY_DEL,
}

_NORMAL_BASE = (
    "\0\x1b1234567890-=\b\t"
    "qwertyuiop[]\n\0as"
    "dfghjkl;'`\0\\zxcv"
    "bnm,./\0*\0 \0\0\0\0\0\0"
    "\0\0\0\0\0\0\0789-456+1"
    "230.\0\0\0\0"
)

_SHIFT_BASE = (
    "\0\x1b!@#$%^&*()_+\b\t"
    "QWERTYUIOP{}\n\0AS"
    'DFGHJKL:"~\0|ZXCV'
    "BNM<>?\0*\0 \0\0\0\0\0\0"
    "\0\0\0\0\0\0\0789-456+1"
    "230.\0\0\0\0"
)


def _keymap(base: str, extra: dict[int, int]) -> tuple[int, ...]:
    table = [0] * 256
    for code, ch in enumerate(base):
        table[code] = ord(ch)
    for code, value in extra.items():
        table[code] = value
    return tuple(table)


def _ctl_map() -> tuple[int, ...]:
    table = [0] * 256
    for start, letters in ((0x10, "QWERTYUIOP"), (0x1E, "ASDFGHJKL"), (0x2C, "ZXCVBNM")):
        for offset, ch in enumerate(letters):
            table[start + offset] = _ctrl(ch)
    table[0x1C] = ord("\r")
    table[0x2B] = _ctrl("\\")
    table[0x35] = _ctrl("/")
    table[0x9C] = ord("\r")
    table[0xB5] = _ctrl("/")
    for code, value in _SPECIAL.items():
        table[code] = value
    return tuple(table)


_NORMALMAP = _keymap(_NORMAL_BASE, {0x9C: ord("\n"), 0xB5: ord("/"), **_SPECIAL})
_SHIFTMAP = _keymap(_SHIFT_BASE, {0x9C: ord("\n"), 0xB5: ord("/"), **_SPECIAL})
_CTLMAP = _ctl_map()
_CHARCODE = (_NORMALMAP, _SHIFTMAP, _CTLMAP, _CTLMAP)


class KeyboardDecoder:
    """Turns scan codes into character codes, tracking modifier keys."""

    def __init__(self) -> None:
        self._shift = 0

    @property
    def modifiers(self) -> Modifier:
        return Modifier(self._shift)

    def feed(self, scancode: int) -> int:
        """Process one scan code; return its character code, or 0 if none."""
        if not 0 <= scancode <= 0xFF:
            raise ValueError(f"scan code {scancode} out of range")
        data = scancode
        e0 = int(Modifier.E0ESC)
        if data == 0xE0:
            self._shift |= e0
            return 0
        if data & 0x80:
            # Key released.
            if not self._shift & e0:
                data &= 0x7F
            self._shift &= ~(_SHIFTCODE[data] | e0)
            return 0
        if self._shift & e0:
            # The last code was an E0 escape.
            data |= 0x80
            self._shift &= ~e0
        self._shift |= _SHIFTCODE[data]
        self._shift ^= _TOGGLECODE[data]
        c = _CHARCODE[self._shift & int(Modifier.CTL | Modifier.SHIFT)][data]
        if self._shift & Modifier.CAPSLOCK:
            if ord("a") <= c <= ord("z"):
                c += ord("A") - ord("a")
            elif ord("A") <= c <= ord("Z"):
                c += ord("a") - ord("A")
        return c


def decode(scancodes: Iterable[int]) -> str:
    """Characters produced by a sequence of scan codes."""
    decoder = KeyboardDecoder()
    return "".join(chr(c) for code in scancodes if (c := decoder.feed(code)))