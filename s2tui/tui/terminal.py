"""Curses terminal: raw mode for the lifetime of the dashboard."""

from __future__ import annotations

import curses
import logging
import os
from typing import Optional

from .keys import Key, translate_key
from .ui import Dialog, Frame

logger = logging.getLogger(__name__)


def _init_colors() -> dict[str, int]:
    palette = {
        "normal": curses.A_NORMAL,
        "title": curses.A_BOLD,
        "header": curses.A_BOLD,
        "accent": curses.A_BOLD,
        "selected": curses.A_REVERSE | curses.A_BOLD,
        "muted": curses.A_DIM,
        "info": curses.A_BOLD,
        "success": curses.A_BOLD,
        "error": curses.A_BOLD,
        "dialog": curses.A_NORMAL,
    }

    if not curses.has_colors():
        return palette

    try:
        curses.start_color()
        curses.use_default_colors()
        curses.init_pair(1, curses.COLOR_CYAN, -1)
        curses.init_pair(2, curses.COLOR_GREEN, -1)
        curses.init_pair(3, curses.COLOR_YELLOW, -1)
        curses.init_pair(4, curses.COLOR_RED, -1)
        curses.init_pair(5, curses.COLOR_WHITE, -1)

        palette["title"] = curses.color_pair(2) | curses.A_BOLD
        palette["header"] = curses.color_pair(1) | curses.A_BOLD
        palette["accent"] = curses.color_pair(2) | curses.A_BOLD
        palette["muted"] = curses.color_pair(5) | curses.A_DIM
        palette["info"] = curses.color_pair(1) | curses.A_BOLD
        palette["success"] = curses.color_pair(2) | curses.A_BOLD
        palette["error"] = curses.color_pair(4) | curses.A_BOLD
        palette["dialog"] = curses.color_pair(3)
    except curses.error:
        return {k: curses.A_NORMAL for k in palette}

    return palette


class CursesTerminal:
    """Context manager owning raw mode, keypad and cursor state.

    Leaving the context restores every setting it changed; each restore step
    runs even if an earlier one fails, and failures are logged.
    """

    def __init__(self, escdelay_ms: int = 25):
        self.escdelay_ms = escdelay_ms
        self.stdscr = None
        self.palette: dict[str, int] = {}

    def __enter__(self) -> "CursesTerminal":
        # Esc must not wait a full second for a possible escape sequence.
        os.environ.setdefault("ESCDELAY", str(self.escdelay_ms))
        self.stdscr = curses.initscr()
        try:
            curses.noecho()
            curses.raw()
            self.stdscr.keypad(True)
            self.stdscr.nodelay(True)
            try:
                curses.curs_set(0)
            except curses.error:
                logger.debug("Terminal cannot hide the cursor")
            self.palette = _init_colors()
        except curses.error:
            self.restore()
            raise
        return self

    def __exit__(self, exc_type, exc, tb):
        self.restore()
        return False

    def restore(self) -> list[str]:
        """Undo terminal changes. Returns the names of steps that failed."""
        stdscr = self.stdscr
        steps = [
            ("keypad", lambda: stdscr.keypad(False)),
            ("nodelay", lambda: stdscr.nodelay(False)),
            ("noraw", curses.noraw),
            ("echo", curses.echo),
            ("curs_set", lambda: curses.curs_set(1)),
            ("endwin", curses.endwin),
        ]
        failed = []
        for name, step in steps:
            if stdscr is None and name in ("keypad", "nodelay"):
                continue
            try:
                step()
            except Exception as e:
                failed.append(name)
                logger.warning(f"Terminal restore step {name} failed: {e}")
        self.stdscr = None
        return failed

    def size(self) -> tuple[int, int]:
        """(height, width) of the screen."""
        return self.stdscr.getmaxyx()

    def read_key(self) -> Optional[Key]:
        """Non-blocking read of one key; None when no input is waiting."""
        try:
            raw = self.stdscr.get_wch()
        except curses.error:
            return None
        if raw == curses.KEY_RESIZE:
            return None
        return translate_key(raw)

    def draw(self, frame: Frame):
        stdscr = self.stdscr
        stdscr.erase()
        height, width = stdscr.getmaxyx()
        for y, line in enumerate(frame.lines[:height]):
            if not line.text:
                continue
            stdscr.addnstr(y, 0, line.text, max(0, width - 1), self.palette.get(line.style, 0))
        stdscr.noutrefresh()
        if frame.dialog is not None:
            self._draw_dialog(frame.dialog, height, width)
        curses.doupdate()

    def _draw_dialog(self, dialog: Dialog, height: int, width: int):
        content_width = max([len(dialog.title) + 4] + [len(line.text) for line in dialog.lines])
        box_width = min(width - 2, content_width + 4)
        box_height = min(height - 2, len(dialog.lines) + 2)
        if box_width < 6 or box_height < 3:
            return
        top = (height - box_height) // 2
        left = (width - box_width) // 2
        window = curses.newwin(box_height, box_width, top, left)
        window.erase()
        border = self.palette.get(dialog.style, 0)
        window.attron(border)
        window.box()
        window.attroff(border)
        window.addnstr(0, 2, f" {dialog.title} ", box_width - 4, self.palette.get("title", 0))
        for y, line in enumerate(dialog.lines[: box_height - 2], start=1):
            window.addnstr(y, 2, line.text, box_width - 4, self.palette.get(line.style, 0))
        window.noutrefresh()
