"""Browser session and command line entry point.

A :class:`Tab` owns everything belonging to one page: the location it
came from, the parsed tree, the rendered canvas and the viewport scrolled
over it. The :class:`Browser` drives a tab from a
:class:`~termbrowser.terminal.Screen`: it draws the visible slice and the
status bar, reads one command at a time and applies it until the user
quits.

Run ``termbrowser <location>`` (or ``python -m termbrowser.browser``)
where the location is a URL, a file path or ``test`` for the built-in
page. ``--dump`` prints the rendered page instead of opening the
interactive view.
"""

from __future__ import annotations

import argparse
import curses
import logging
import sys
from typing import Any, List, Optional

from .dom import HTMLParser, extract_title, release_tree
from .layout import Canvas, RenderResult, render_document
from .networking import FetchError, fetch
from .sanitize import preprocess
from .terminal import Screen
from .viewport import Command, Viewport

logger = logging.getLogger(__name__)

DEFAULT_DUMP_WIDTH = 80


class Tab:
    """One page: its tree, its rendered canvas and its scroll position."""

    def __init__(self, location: str) -> None:
        self.location: str = location
        self.nodes: Any = None
        self.title: Optional[str] = None
        self.truncated: bool = False
        self.result: Optional[RenderResult] = None
        self.viewport: Viewport = Viewport()

    def load(self) -> None:
        """Fetch, clean and parse the page, replacing the current tree.

        :raises FetchError: If the page cannot be fetched; the current tree
                            is left untouched in that case.
        """
        body = fetch(self.location)
        parser = HTMLParser(preprocess(body))
        nodes = parser.parse()
        if parser.truncated:
            logger.info("%s: markup ended inside a tag or comment", self.location)
        # The old tree is released only once its replacement exists
        if self.nodes is not None:
            release_tree(self.nodes)
        self.nodes = nodes
        self.truncated = parser.truncated
        self.title = extract_title(nodes)
        self.result = None

    def render(self, width: int, viewport_height: int) -> None:
        """Lay the tree out at ``width`` columns, keeping the scroll offset."""
        self.result = render_document(self.nodes, max(1, width))
        if self.result.truncated:
            logger.info("%s: page cut at %d rows", self.location, self.result.height)
        self.viewport.resize(viewport_height, self.result.height)

    @property
    def canvas(self) -> Optional[Canvas]:
        return self.result.canvas if self.result is not None else None

    def lines(self) -> List[str]:
        """Rendered rows as plain text."""
        if self.result is None:
            return []
        return self.result.canvas.lines(self.result.height)

    def close(self) -> None:
        if self.nodes is not None:
            release_tree(self.nodes)
            self.nodes = None
        self.result = None


class Browser:
    """The interactive session: one tab shown on one screen."""

    def __init__(self, screen: Any, tab: Tab, width: Optional[int] = None) -> None:
        self.screen = screen
        self.tab = tab
        # Fixed layout width; None follows the terminal
        self.width = width
        self.status: str = ""

    def set_status(self, msg: str) -> None:
        self.status = msg

    def layout(self) -> None:
        height, width = self.screen.size()
        self.tab.render(self.width or width, height - 1)

    def reload(self) -> None:
        try:
            self.tab.load()
        except FetchError as e:
            logger.warning("reload failed: %s", e)
            self.set_status(f"Failed to fetch '{e.location}': {e.reason}")
            return
        self.set_status(self.tab.title or "")
        self.layout()
        self.tab.viewport.reset(self.tab.result.height)

    def handle(self, command: Command) -> bool:
        """Apply one command; return False once the session should end."""
        if command is Command.QUIT:
            return False
        if command is Command.RELOAD:
            self.reload()
        elif command is Command.RESIZE:
            self.layout()
        else:
            self.tab.viewport.apply(command)
        return True

    def draw(self) -> None:
        self.screen.blit(self.tab.canvas, self.tab.viewport.offset)
        self.screen.draw_status(self.status)
        self.screen.refresh()

    def run(self) -> None:
        """Show the already loaded tab and process commands until quit."""
        self.set_status(self.tab.title or "")
        self.layout()
        try:
            while True:
                self.draw()
                command = self.screen.read_command()
                if command is None:
                    continue
                if not self.handle(command):
                    break
        finally:
            self.tab.close()


def dump(tab: Tab, width: int = DEFAULT_DUMP_WIDTH) -> str:
    """Render ``tab`` at ``width`` and return the page as plain text."""
    try:
        tab.render(width, 1)
        return "\n".join(tab.lines())
    finally:
        tab.close()


def run_session(stdscr: Any, tab: Tab, width: Optional[int]) -> None:
    Browser(Screen(stdscr), tab, width).run()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="termbrowser",
        description="View HTML pages in the terminal.",
    )
    parser.add_argument("location", help="URL, file path, or 'test' for the built-in page")
    parser.add_argument("--width", type=int, default=None,
                        help="lay pages out at this many columns instead of the terminal width")
    parser.add_argument("--dump", action="store_true",
                        help="print the rendered page to stdout and exit")
    parser.add_argument("--log-file", default=None,
                        help="write debug logging to this file")
    args = parser.parse_args(argv)
    if args.width is not None and args.width < 1:
        parser.error("--width must be positive")
    return args


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the ``termbrowser`` command."""
    args = parse_args(argv)
    if args.log_file:
        logging.basicConfig(
            filename=args.log_file,
            level=logging.DEBUG,
            format="%(asctime)s %(name)s %(levelname)s %(message)s",
        )
    tab = Tab(args.location)
    try:
        tab.load()
        if args.dump:
            print(dump(tab, args.width or DEFAULT_DUMP_WIDTH))
        else:
            curses.wrapper(run_session, tab, args.width)
    except FetchError as e:
        print(f"Failed to fetch '{e.location}': {e.reason}", file=sys.stderr)
        return 1
    except MemoryError:
        print("Out of memory", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
