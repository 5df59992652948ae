import threading

from simfs.console import BACKSPACE, COLS, INPUT_BUF, CgaScreen, Console


def test_write_shows_on_screen_and_serial():
    console = Console()
    assert console.write(b"hi") == 2
    assert console.screen.text() == "hi"
    assert bytes(console.serial) == b"hi"


def test_newline_moves_to_next_row():
    screen = CgaScreen()
    for c in b"abc\n":
        screen.putc(c)
    assert screen.pos == COLS
    screen.putc(ord("d"))
    assert screen.text().split("\n") == ["abc", "d"]


def test_backspace_at_start_stays():
    screen = CgaScreen()
    screen.putc(BACKSPACE)
    assert screen.pos == 0


def test_screen_scrolls():
    console = Console()
    for i in range(30):
        console.write(f"line {i}\n".encode())
    lines = console.screen.text().split("\n")
    assert lines[-1] == "line 29"
    assert "line 0" not in lines
    numbers = [int(line.split()[1]) for line in lines]
    assert numbers == list(range(numbers[0], 30))
    assert len(lines) < 25


def test_line_is_readable_after_newline():
    console = Console()
    console.interrupt("hello\n")
    assert console.read(100) == b"hello\n"


def test_backspace_edits_line():
    console = Console()
    console.interrupt("ab\x7fc\n")
    assert console.read(100) == b"ac\n"
    assert console.screen.text() == "ac"
    assert bytes(console.serial) == b"ab\b \bc\n"


def test_kill_line():
    console = Console()
    console.interrupt("abc\x15xy\n")
    assert console.read(100) == b"xy\n"


def test_carriage_return_becomes_newline():
    console = Console()
    console.interrupt("ok\r")
    assert console.read(100) == b"ok\n"


def test_control_d_ends_read_and_is_kept():
    console = Console()
    text = b"ab"
    console.interrupt(text + b"\x04")
    assert console.read(100) == text
    assert console.read(100) == b""


def test_read_stops_at_each_newline():
    console = Console()
    console.interrupt("a\nb\n")
    assert console.read(100) == b"a\n"
    assert console.read(100) == b"b\n"


def test_short_read_leaves_rest():
    console = Console()
    console.interrupt("abcd\n")
    first = console.read(2)
    assert first == b"ab"
    assert first + console.read(100) == b"abcd\n"


def test_full_buffer_commits_and_drops_extra():
    console = Console()
    console.interrupt("x" * (INPUT_BUF + 5))
    assert console.read(INPUT_BUF) == b"x" * INPUT_BUF
    assert len(console.serial) == INPUT_BUF


def test_callbacks_run_once_per_interrupt():
    dumps, interrupts = [], []
    console = Console(
        on_procdump=lambda: dumps.append(1), on_interrupt=lambda: interrupts.append(1)
    )
    console.interrupt("\x10\x10\x03")
    assert len(dumps) == 1
    assert len(interrupts) == 1
    assert bytes(console.serial) == b""


def test_read_waits_for_input():
    console = Console()
    results = {}

    def reader():
        results["data"] = console.read(100)

    t = threading.Thread(target=reader)
    t.start()
    console.interrupt("late\n")
    t.join(timeout=5)
    assert not t.is_alive()
    assert results["data"] == b"late\n"
    assert bytes(console.serial) == b"late\n"
    assert console.screen.text() == "late"