"""Unit tests for terminal setup/teardown and key translation."""

import curses
from unittest.mock import MagicMock

import pytest

from s2tui.tui import terminal
from s2tui.tui.keys import Key, translate_key
from s2tui.tui.terminal import CursesTerminal


@pytest.fixture
def fake_curses(monkeypatch):
    """Replace the curses calls the terminal makes with recording mocks."""
    calls = []
    stdscr = MagicMock()
    stdscr.keypad.side_effect = lambda flag: calls.append(("keypad", flag))
    stdscr.nodelay.side_effect = lambda flag: calls.append(("nodelay", flag))

    def record(name):
        def fn(*args):
            calls.append((name,) + args)
        return fn

    for name in ("noecho", "raw", "noraw", "echo", "curs_set", "endwin"):
        monkeypatch.setattr(terminal.curses, name, record(name))
    monkeypatch.setattr(terminal.curses, "initscr", lambda: stdscr)
    monkeypatch.setattr(terminal, "_init_colors", lambda: {})
    return calls, stdscr


def test_enter_and_exit_restore_everything(fake_curses):
    calls, _ = fake_curses
    with CursesTerminal():
        assert ("raw",) in calls
        assert ("keypad", True) in calls
        calls.clear()

    assert [c[0] for c in calls] == ["keypad", "nodelay", "noraw", "echo", "curs_set", "endwin"]


def test_restore_continues_after_a_failing_step(fake_curses, monkeypatch, caplog):
    calls, _ = fake_curses

    def broken():
        raise curses.error("noraw failed")

    monkeypatch.setattr(terminal.curses, "noraw", broken)
    term = CursesTerminal().__enter__()
    calls.clear()

    failed = term.restore()

    assert failed == ["noraw"]
    assert [c[0] for c in calls] == ["keypad", "nodelay", "echo", "curs_set", "endwin"]
    assert "noraw failed" in caplog.text


def test_restore_after_exception_inside_dashboard(fake_curses):
    calls, _ = fake_curses
    with pytest.raises(RuntimeError):
        with CursesTerminal():
            calls.clear()
            raise RuntimeError("boom")
    assert ("endwin",) in calls


def test_read_key_ignores_no_input_and_resize(fake_curses):
    _, stdscr = fake_curses
    term = CursesTerminal().__enter__()

    stdscr.get_wch.side_effect = curses.error("no input")
    assert term.read_key() is None

    stdscr.get_wch.side_effect = None
    stdscr.get_wch.return_value = curses.KEY_RESIZE
    assert term.read_key() is None

    stdscr.get_wch.return_value = "j"
    assert term.read_key() == Key("j")


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("\n", Key("enter")),
        ("\r", Key("enter")),
        ("\x1b", Key("esc")),
        ("\x7f", Key("backspace")),
        ("\t", Key("tab")),
        ("\x03", Key("c", ctrl=True)),
        (curses.KEY_UP, Key("up")),
        (curses.KEY_BACKSPACE, Key("backspace")),
        ("é", Key("é")),
        (curses.KEY_F1, None),
        ("\x00", None),
    ],
)
def test_translate_key(raw, expected):
    assert translate_key(raw) == expected


def test_ctrl_letters_are_not_chars():
    assert Key("c", ctrl=True).is_char() is False
    assert Key("c").is_char() is True
    assert Key("enter").is_char() is False
