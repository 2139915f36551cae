"""Scroll state for the visible window onto a rendered page."""

from __future__ import annotations

import enum
from typing import Optional


class Command(enum.Enum):
    """User commands produced by the input loop."""
    QUIT = "quit"
    RELOAD = "reload"
    LINE_UP = "line-up"
    LINE_DOWN = "line-down"
    PAGE_UP = "page-up"
    PAGE_DOWN = "page-down"
    RESIZE = "resize"


class Viewport:
    """Vertical offset into a canvas of ``content_height`` rows.

    The offset always lies in ``[0, max(0, content_height - viewport_height)]``
    so the last page of content can be shown but never scrolled past.
    """

    def __init__(self, content_height: int = 0, viewport_height: int = 1) -> None:
        self.content_height = max(0, content_height)
        self.viewport_height = max(1, viewport_height)
        self.offset = 0

    @property
    def max_offset(self) -> int:
        return max(0, self.content_height - self.viewport_height)

    @property
    def page_step(self) -> int:
        # Keep two rows of overlap between pages
        return max(1, self.viewport_height - 2)

    def clamp(self) -> None:
        self.offset = min(max(self.offset, 0), self.max_offset)

    def scroll(self, delta: int) -> int:
        """Move by ``delta`` rows and return the new offset."""
        self.offset += delta
        self.clamp()
        return self.offset

    def apply(self, command: Command) -> bool:
        """Apply a scroll command; return False for commands it does not handle."""
        if command is Command.LINE_UP:
            self.scroll(-1)
        elif command is Command.LINE_DOWN:
            self.scroll(1)
        elif command is Command.PAGE_UP:
            self.scroll(-self.page_step)
        elif command is Command.PAGE_DOWN:
            self.scroll(self.page_step)
        else:
            return False
        return True

    def reset(self, content_height: int) -> None:
        """Start over at the top of new content."""
        self.content_height = max(0, content_height)
        self.offset = 0

    def resize(self, viewport_height: int, content_height: Optional[int] = None) -> None:
        """Change the visible height (and optionally the content height) keeping the offset."""
        self.viewport_height = max(1, viewport_height)
        if content_height is not None:
            self.content_height = max(0, content_height)
        self.clamp()

    def __repr__(self) -> str:
        return (
            f"Viewport(offset={self.offset}, content={self.content_height}, "
            f"visible={self.viewport_height})"
        )
