import pytest

from simfs.kbd import KEY_UP, KeyboardDecoder, Modifier, decode

A_PRESS, A_RELEASE = 0x1E, 0x9E
SHIFT_PRESS, SHIFT_RELEASE = 0x2A, 0xAA
CAPS_PRESS, CAPS_RELEASE = 0x3A, 0xBA
CTRL_PRESS, CTRL_RELEASE = 0x1D, 0x9D


def test_plain_keys():
    assert decode([0x10, 0x11, 0x12]) == "qwe"
    assert decode([0x02, 0x03]) == "12"


def test_release_produces_nothing():
    decoder = KeyboardDecoder()
    assert decoder.feed(A_PRESS) == ord("a")
    assert decoder.feed(A_RELEASE) == 0


def test_shift():
    assert decode([SHIFT_PRESS, A_PRESS, SHIFT_RELEASE, A_PRESS]) == "Aa"
    assert decode([SHIFT_PRESS, 0x02]) == "!"


def test_caps_lock_toggles():
    codes = [CAPS_PRESS, CAPS_RELEASE, A_PRESS, CAPS_PRESS, CAPS_RELEASE, A_PRESS]
    assert decode(codes) == "Aa"


def test_caps_lock_inverts_shift():
    assert decode([CAPS_PRESS, CAPS_RELEASE, SHIFT_PRESS, A_PRESS]) == "a"


def test_control_letters():
    assert decode([CTRL_PRESS, 0x2E]) == chr(ord("C") - ord("@"))
    assert decode([CTRL_PRESS, 0x1C]) == "\r"


def test_e0_escape_gives_special_key():
    assert decode([0xE0, 0x48]) == chr(KEY_UP)


def test_right_ctrl_via_escape():
    decoder = KeyboardDecoder()
    assert decoder.feed(0xE0) == 0
    assert decoder.feed(0x1D) == 0
    assert Modifier.CTL in decoder.modifiers
    assert decoder.feed(0x2E) == ord("C") - ord("@")
    decoder.feed(0xE0)
    decoder.feed(0x9D)
    assert Modifier.CTL not in decoder.modifiers
    assert decoder.feed(0x2E) == ord("c")


def test_escape_flag_cleared_after_key():
    decoder = KeyboardDecoder()
    decoder.feed(0xE0)
    assert Modifier.E0ESC in decoder.modifiers
    decoder.feed(0x48)
    assert Modifier.E0ESC not in decoder.modifiers


def test_unmapped_code_is_zero():
    decoder = KeyboardDecoder()
    assert decoder.feed(0x3B) == 0


def test_out_of_range_code():
    with pytest.raises(ValueError):
        KeyboardDecoder().feed(0x100)