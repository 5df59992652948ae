"""printf-style formatting understanding only %d, %x, %p, %s (and %c for users)."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any, Optional

_UPPER = "0123456789ABCDEF"
_LOWER = "0123456789abcdef"


def _int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - (1 << 32) if value & 0x80000000 else value


def _number(value: Any, base: int, signed: bool, digits: str) -> str:
    x = int(value)
    negative = False
    if signed:
        x = _int32(x)
        negative = x < 0
        x = abs(x)
    else:
        x &= 0xFFFFFFFF
    out = []
    while True:
        out.append(digits[x % base])
        x //= base
        if x == 0:
            break
    if negative:
        out.append("-")
    return "".join(reversed(out))


def _next(args: Iterator[Any]) -> Any:
    try:
        return next(args)
    except StopIteration:
        raise TypeError("not enough arguments for format string") from None


def _string(value: Any) -> str:
    if value is None:
        return "(null)"
    return str(value).split("\0", 1)[0]


def _char(value: Any) -> str:
    if isinstance(value, str):
        return value[:1]
    return chr(int(value) & 0xFF)


def _format(fmt: Optional[str], args: tuple, digits: str, with_char: bool) -> str:
    if fmt is None:
        raise ValueError("null format")
    values = iter(args)
    out = []
    chars = iter(fmt)
    for c in chars:
        if c != "%":
            out.append(c)
            continue
        c = next(chars, "")
        if not c:
            break
        if c == "d":
            out.append(_number(_next(values), 10, True, digits))
        elif c in ("x", "p"):
            out.append(_number(_next(values), 16, False, digits))
        elif c == "s":
            out.append(_string(_next(values)))
        elif c == "c" and with_char:
            out.append(_char(_next(values)))
        elif c == "%":
            out.append("%")
        else:
            # Unknown sequences are printed to draw attention.
            out.append("%" + c)
    return "".join(out)


def format_user(fmt: str, *args: Any) -> str:
    """Format as user programs print: upper-case hex, and %c is understood."""
    return _format(fmt, args, _UPPER, True)


def format_console(fmt: str, *args: Any) -> str:
    """Format as the kernel console prints: lower-case hex, no %c."""
    return _format(fmt, args, _LOWER, False)