"""Curses front end: drawing canvases and reading keys.

:class:`Screen` wraps the standard screen handed out by
``curses.wrapper``. It owns the colour pairs used for the style roles,
copies a vertical slice of a rendered :class:`~termbrowser.layout.Canvas`
onto the terminal, paints the status bar on the bottom row and turns key
presses into :class:`~termbrowser.viewport.Command` values.
"""

from __future__ import annotations

import curses
from typing import Any, Dict, Optional, Tuple

from .layout import Canvas, Style
from .viewport import Command

HELP_TEXT = "q=quit  r=reload  Up/Down scroll  PgUp/PgDn"

# role -> (pair number, foreground, background); -1 is the terminal default
COLOR_ROLES: Dict[str, Tuple[int, int, int]] = {
    "header": (1, curses.COLOR_WHITE, -1),
    "link": (2, curses.COLOR_BLUE, -1),
    "bullet": (3, curses.COLOR_RED, -1),
    "mark": (4, curses.COLOR_BLACK, curses.COLOR_YELLOW),
    "image": (5, curses.COLOR_MAGENTA, -1),
}

KEY_COMMANDS: Dict[int, Command] = {
    ord("q"): Command.QUIT,
    ord("Q"): Command.QUIT,
    ord("r"): Command.RELOAD,
    ord("R"): Command.RELOAD,
    curses.KEY_UP: Command.LINE_UP,
    curses.KEY_DOWN: Command.LINE_DOWN,
    curses.KEY_PPAGE: Command.PAGE_UP,
    curses.KEY_NPAGE: Command.PAGE_DOWN,
    curses.KEY_RESIZE: Command.RESIZE,
}


def init_colors() -> bool:
    """Set up one colour pair per style role; return False without colour support."""
    if not curses.has_colors():
        return False
    curses.start_color()
    try:
        curses.use_default_colors()
        default_bg = -1
    except curses.error:
        default_bg = curses.COLOR_BLACK
    for pair, fg, bg in COLOR_ROLES.values():
        curses.init_pair(pair, fg, default_bg if bg == -1 else bg)
    return True


class Screen:
    """The terminal: all rows but the last show the page, the last is status."""
    def __init__(self, stdscr: Any) -> None:
        self.stdscr = stdscr
        self.stdscr.keypad(True)
        try:
            curses.curs_set(0)
        except curses.error:
            pass  # not every terminal can hide the cursor
        self.colors = init_colors()
        self.attrs: Dict[Style, int] = {}

    def size(self) -> Tuple[int, int]:
        """Return (height, width) of the terminal."""
        return self.stdscr.getmaxyx()

    def attr(self, style: Style) -> int:
        """Translate a :class:`Style` into a curses attribute mask."""
        cached = self.attrs.get(style)
        if cached is not None:
            return cached
        attr = curses.A_NORMAL
        if style.bold:
            attr |= curses.A_BOLD
        if style.dim:
            attr |= curses.A_DIM
        if style.italic:
            attr |= getattr(curses, "A_ITALIC", curses.A_DIM)
        if style.underline:
            attr |= curses.A_UNDERLINE
        if style.reverse:
            attr |= curses.A_REVERSE
        if style.role and self.colors:
            attr |= curses.color_pair(COLOR_ROLES[style.role][0])
        self.attrs[style] = attr
        return attr

    def addstr(self, y: int, x: int, text: str, attr: int) -> None:
        try:
            self.stdscr.addstr(y, x, text, attr)
        except curses.error:
            # Writing the bottom-right cell moves the cursor off screen
            pass

    def blit(self, canvas: Canvas, offset: int) -> None:
        """Copy canvas rows starting at ``offset`` onto every row but the last."""
        height, width = self.size()
        self.stdscr.erase()
        for y in range(max(0, height - 1)):
            for col, text, style in canvas.runs(offset + y):
                if col >= width:
                    break
                self.addstr(y, col, text[:width - col], self.attr(style))

    def draw_status(self, message: str = "") -> None:
        height, width = self.size()
        if height < 1 or width < 1:
            return
        text = HELP_TEXT
        if message:
            text += "  " + message
        self.addstr(height - 1, 0, text[:width].ljust(width), curses.A_REVERSE)

    def refresh(self) -> None:
        self.stdscr.refresh()

    def read_command(self) -> Optional[Command]:
        """Block for one key press; return its command or None if unbound."""
        key = self.stdscr.getch()
        return KEY_COMMANDS.get(key)
