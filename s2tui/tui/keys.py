"""Terminal-independent key presses."""

import curses
from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class Key:
    """A single key press.

    name is either one printable character or one of: up, down, left, right,
    enter, esc, backspace, tab, home, end.
    """

    name: str
    ctrl: bool = False

    def is_char(self) -> bool:
        return len(self.name) == 1 and not self.ctrl and self.name.isprintable()


_SPECIAL_CHARS = {
    "\n": "enter",
    "\r": "enter",
    "\x1b": "esc",
    "\x7f": "backspace",
    "\b": "backspace",
    "\t": "tab",
}

_CURSES_KEYS = {
    curses.KEY_UP: "up",
    curses.KEY_DOWN: "down",
    curses.KEY_LEFT: "left",
    curses.KEY_RIGHT: "right",
    curses.KEY_ENTER: "enter",
    curses.KEY_BACKSPACE: "backspace",
    curses.KEY_HOME: "home",
    curses.KEY_END: "end",
}


def translate_key(raw: Union[str, int]) -> Optional[Key]:
    """Map a curses get_wch() result to a Key; None for keys we ignore."""
    if isinstance(raw, int):
        name = _CURSES_KEYS.get(raw)
        return Key(name) if name else None
    if raw in _SPECIAL_CHARS:
        return Key(_SPECIAL_CHARS[raw])
    code = ord(raw)
    if 1 <= code <= 26:
        return Key(chr(code + 96), ctrl=True)
    if raw.isprintable():
        return Key(raw)
    return None
