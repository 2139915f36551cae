"""Layout and drawing for the terminal browser.

The renderer walks a parsed tree once and writes characters onto a
:class:`Canvas`, a sparse grid much taller than the terminal that the
viewport later slices for display. Position is carried by an explicit
:class:`Cursor` threaded through the recursion together with the current
indent, so rendering holds no module state and can be repeated at a new
width after a resize.

Block elements (paragraphs, headers, lists, tables, boxes) start on a
fresh line; inline content (text, emphasis, links) flows and word-wraps
on the current one. Styling is layered with :meth:`Canvas.styled` so a
style applies for exactly the duration of one element.
"""

from __future__ import annotations

import contextlib
import dataclasses
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from .dom import Element, NodeKind, Text, gather_raw_text, gather_text

# Layout constants
CANVAS_HEIGHT = 20000
SAFETY_MARGIN = 50
MIN_BOX_WIDTH = 10
BULLET = "* "
LINK_PLACEHOLDER = "[link]"
QUOTE_MARGIN = " | "
FORM_INDENT = 2
DETAILS_INDENT = 2
DESCRIPTION_INDENT = 4
TAB_SIZE = 8

# Generic tags that still start and end a line of their own
BLOCK_ELEMENTS: List[str] = [
    "html", "body", "article", "section", "nav", "aside", "hgroup",
    "menu", "div", "fieldset", "legend", "center", "option", "noscript",
]

# Never displayed; the title goes to the status bar instead
HIDDEN_ELEMENTS: List[str] = ["title"]


@dataclasses.dataclass(frozen=True)
class Style:
    """Text attributes of one canvas cell; ``role`` picks a colour pair."""
    bold: bool = False
    dim: bool = False
    italic: bool = False
    underline: bool = False
    reverse: bool = False
    role: Optional[str] = None

    def merge(self, other: "Style") -> "Style":
        """Layer ``other`` on top of this style."""
        return Style(
            bold=self.bold or other.bold,
            dim=self.dim or other.dim,
            italic=self.italic or other.italic,
            underline=self.underline or other.underline,
            reverse=self.reverse or other.reverse,
            role=other.role or self.role,
        )


PLAIN = Style()
TEXT_STYLE = Style(dim=True)
BOLD_STYLE = Style(bold=True, role="header")
ITALIC_STYLE = Style(italic=True)
MARK_STYLE = Style(role="mark")
UNDERLINE_STYLE = Style(underline=True)
HEADER_STYLE = Style(bold=True, role="header")
LINK_STYLE = Style(underline=True, role="link")
BULLET_STYLE = Style(role="bullet")
IMAGE_STYLE = Style(role="image")
CAPTION_STYLE = Style(reverse=True)
TABLE_HEADER_STYLE = Style(bold=True)

BLANK = (" ", PLAIN)


class Canvas:
    """A sparse character grid of ``height`` rows by ``width`` columns.

    Rows are allocated on first write. Writes that fall outside the grid
    are clipped silently.
    """
    def __init__(self, height: int, width: int) -> None:
        self.height = height
        self.width = width
        self.rows: Dict[int, List[Tuple[str, Style]]] = {}
        self._styles: List[Style] = [PLAIN]

    @property
    def style(self) -> Style:
        return self._styles[-1]

    @contextlib.contextmanager
    def styled(self, style: Style) -> Iterator[Style]:
        """Layer ``style`` over the current one for the duration of the block."""
        self._styles.append(self._styles[-1].merge(style))
        try:
            yield self._styles[-1]
        finally:
            self._styles.pop()

    def put(self, row: int, col: int, text: str, style: Optional[Style] = None) -> int:
        """Write ``text`` at (row, col) in the current style; return columns written."""
        if row < 0 or row >= self.height:
            return 0
        if style is None:
            style = self.style
        written = 0
        for offset, ch in enumerate(text):
            c = col + offset
            if c < 0:
                continue
            if c >= self.width:
                break
            line = self.rows.get(row)
            if line is None:
                line = self.rows[row] = [BLANK] * self.width
            # Control characters would move the terminal cursor
            if ch < " ":
                ch = " "
            line[c] = (ch, style)
            written += 1
        return written

    def cell(self, row: int, col: int) -> Tuple[str, Style]:
        line = self.rows.get(row)
        if line is None or not 0 <= col < self.width:
            return BLANK
        return line[col]

    def style_at(self, row: int, col: int) -> Style:
        return self.cell(row, col)[1]

    def row_text(self, row: int) -> str:
        """The characters of ``row`` with trailing blanks removed."""
        line = self.rows.get(row)
        if line is None:
            return ""
        return "".join(ch for ch, _ in line).rstrip()

    def runs(self, row: int) -> List[Tuple[int, str, Style]]:
        """Split ``row`` into (column, text, style) runs of one style each."""
        line = self.rows.get(row)
        if line is None:
            return []
        runs: List[Tuple[int, str, Style]] = []
        start = 0
        for col in range(1, len(line) + 1):
            if col == len(line) or line[col][1] != line[start][1]:
                text = "".join(ch for ch, _ in line[start:col])
                if text.strip() or line[start][1] != PLAIN:
                    runs.append((start, text, line[start][1]))
                start = col
        return runs

    def lines(self, height: Optional[int] = None) -> List[str]:
        """Row texts from the top of the canvas down to ``height`` rows."""
        if height is None:
            height = max(self.rows, default=-1) + 1
        return [self.row_text(r) for r in range(height)]


class Cursor:
    """Write position in the canvas.

    ``dirty`` is set once something has been written on the current row, so
    block elements know whether they have to end a line before starting.
    """
    def __init__(self, row: int = 0, col: int = 0) -> None:
        self.row = row
        self.col = col
        self.dirty = False
        self.after_space = False

    def newline(self, indent: int) -> None:
        self.row += 1
        self.col = indent
        self.dirty = False
        self.after_space = False

    def start_block(self, indent: int) -> None:
        if self.dirty:
            self.newline(indent)
        else:
            self.col = indent

    def end_block(self, indent: int) -> None:
        if self.dirty:
            self.newline(indent)

    def __repr__(self) -> str:
        return f"Cursor(row={self.row}, col={self.col}, dirty={self.dirty})"


class RenderResult:
    """Outcome of one render: the canvas, rows used and whether the cap hit."""
    def __init__(self, canvas: Canvas, height: int, truncated: bool) -> None:
        self.canvas = canvas
        self.height = height
        self.truncated = truncated

    def __repr__(self) -> str:
        return f"RenderResult(height={self.height}, truncated={self.truncated})"


class TableGrid:
    """Cell texts of a table, row by row, and the resulting column widths."""
    def __init__(self, rows: List[List[Tuple[str, bool]]]) -> None:
        self.rows = rows
        self.columns = max((len(r) for r in rows), default=0)
        self.widths: List[int] = []
        for c in range(self.columns):
            longest = max((len(r[c][0]) for r in rows if c < len(r)), default=0)
            self.widths.append(max(1, longest) + 2)

    def border(self) -> str:
        return "+" + "".join("-" * w + "+" for w in self.widths)


def _table_rows(node: Element, out: List[Element]) -> List[Element]:
    for child in node.children:
        if isinstance(child, Text):
            continue
        if child.kind is NodeKind.TABLE_ROW:
            out.append(child)
        elif child.kind is not NodeKind.TABLE:
            # thead/tbody/tfoot and other wrappers are looked through
            _table_rows(child, out)
    return out


def table_grid(node: Element) -> TableGrid:
    """Collect the cells of ``node`` into a :class:`TableGrid`."""
    rows: List[List[Tuple[str, bool]]] = []
    for tr in _table_rows(node, []):
        cells = [
            (gather_text(cell), cell.kind is NodeKind.TABLE_HEADER_CELL)
            for cell in tr.children
            if isinstance(cell, Element)
            and cell.kind in (NodeKind.TABLE_CELL, NodeKind.TABLE_HEADER_CELL)
        ]
        if cells:
            rows.append(cells)
    return TableGrid(rows)


def box_lines(text: str, inner: int) -> List[str]:
    """Split preformatted ``text`` into box rows truncated to ``inner`` columns."""
    text = text.replace("\r", "")
    if text.startswith("\n"):
        text = text[1:]
    if text.endswith("\n"):
        text = text[:-1]
    return [line.expandtabs(TAB_SIZE)[:inner] for line in text.split("\n")]


def nested_in_list_item(node: Any) -> bool:
    parent = node.parent
    while parent is not None:
        if parent.kind is NodeKind.LIST_ITEM:
            return True
        parent = parent.parent
    return False


class DocumentLayout:
    """Renders one tree onto a canvas at a fixed width."""
    def __init__(self, node: Element, canvas: Canvas) -> None:
        self.node = node
        self.canvas = canvas
        self.width = canvas.width
        self.cursor = Cursor()
        self.limit = canvas.height - SAFETY_MARGIN
        self.truncated = False
        self.handlers: Dict[NodeKind, Callable[[Any, int], None]] = {
            NodeKind.TEXT: self.text,
            NodeKind.LINE_BREAK: self.line_break,
            NodeKind.HORIZONTAL_RULE: self.rule,
            NodeKind.HEADER: self.header,
            NodeKind.PARAGRAPH: self.paragraph,
            NodeKind.PREFORMATTED: self.preformatted,
            NodeKind.CODE: self.code,
            NodeKind.BOLD: self.inline(BOLD_STYLE),
            NodeKind.ITALIC: self.inline(ITALIC_STYLE),
            NodeKind.MARK: self.inline(MARK_STYLE),
            NodeKind.UNDERLINE: self.inline(UNDERLINE_STYLE),
            NodeKind.STRIKE: self.strike,
            NodeKind.BLOCKQUOTE: self.blockquote,
            NodeKind.UNORDERED_LIST: self.list_block,
            NodeKind.ORDERED_LIST: self.list_block,
            NodeKind.LIST_ITEM: self.list_item,
            NodeKind.DEFINITION_LIST: self.definition_list,
            NodeKind.DEFINITION_TERM: self.definition_term,
            NodeKind.DEFINITION_DESCRIPTION: self.definition_description,
            NodeKind.IMAGE: self.image,
            NodeKind.FIGURE: self.block_container,
            NodeKind.FIGURE_CAPTION: self.figure_caption,
            NodeKind.DETAILS: self.details,
            NodeKind.TABLE: self.table,
            NodeKind.LINK: self.link,
            NodeKind.FORM: self.form,
            NodeKind.INPUT: self.input,
            NodeKind.TEXTAREA: self.textarea,
            NodeKind.BUTTON: self.button,
            NodeKind.MAIN_REGION: self.block_container,
            NodeKind.HEADER_BAR: self.block_container,
            NodeKind.FOOTER_BAR: self.block_container,
        }

    def layout(self) -> int:
        """Render the whole tree; return the number of rows used."""
        self.recurse(self.node, 0)
        height = self.cursor.row + (1 if self.cursor.dirty else 0)
        return min(height, self.canvas.height)

    def recurse(self, node: Any, indent: int) -> None:
        if self.cursor.row >= self.limit:
            self.truncated = True
            return
        handler = self.handlers.get(node.kind, self.transparent)
        handler(node, indent)

    def children(self, node: Any, indent: int) -> None:
        for child in node.children:
            self.recurse(child, indent)

    # --- Inline flow ---

    def emit(self, text: str) -> None:
        self.canvas.put(self.cursor.row, self.cursor.col, text)
        self.cursor.col += len(text)
        self.cursor.dirty = True
        self.cursor.after_space = False

    def space(self, indent: int) -> None:
        cursor = self.cursor
        if not cursor.dirty or cursor.after_space:
            return
        if cursor.col + 1 >= self.width:
            cursor.newline(indent)
            return
        self.canvas.put(cursor.row, cursor.col, " ")
        cursor.col += 1
        cursor.after_space = True

    def word(self, word: str, indent: int) -> None:
        cursor = self.cursor
        if cursor.dirty and cursor.col + len(word) >= self.width:
            cursor.newline(indent)
        while True:
            room = self.width - cursor.col - 1
            if len(word) <= room or room < 1:
                self.emit(word)
                return
            # Longer than a whole line: break it where the line ends
            self.emit(word[:room])
            word = word[room:]
            cursor.newline(indent)

    def flow(self, text: str, indent: int) -> None:
        if not self.cursor.dirty:
            self.cursor.col = indent
        for i, word in enumerate(text.split(" ")):
            if self.cursor.row >= self.limit:
                self.truncated = True
                return
            if i > 0:
                self.space(indent)
            if word:
                self.word(word, indent)

    def text(self, node: Text, indent: int) -> None:
        # Unstyled body text is dimmed; emphasis keeps its own look
        style = TEXT_STYLE if self.canvas.style == PLAIN else PLAIN
        with self.canvas.styled(style):
            self.flow(node.text, indent)

    def inline(self, style: Style) -> Callable[[Any, int], None]:
        def render(node: Element, indent: int) -> None:
            with self.canvas.styled(style):
                self.children(node, indent)
        return render

    def link(self, node: Element, indent: int) -> None:
        cursor = self.cursor
        label = gather_text(node) or LINK_PLACEHOLDER
        if cursor.dirty and cursor.col + len(label) >= self.width:
            cursor.newline(indent)
        if not cursor.dirty:
            cursor.col = indent
        with self.canvas.styled(LINK_STYLE):
            self.emit(label)

    # --- Containers ---

    def transparent(self, node: Element, indent: int) -> None:
        if node.tag in HIDDEN_ELEMENTS:
            return
        if node.tag in BLOCK_ELEMENTS:
            self.block_container(node, indent)
        else:
            self.children(node, indent)

    def block_container(self, node: Element, indent: int) -> None:
        self.cursor.start_block(indent)
        self.children(node, indent)
        self.cursor.end_block(indent)

    def line_break(self, node: Element, indent: int) -> None:
        self.cursor.newline(indent)

    def rule(self, node: Element, indent: int) -> None:
        self.line(indent, "-" * (self.width - indent))

    def line(self, indent: int, text: str, style: Optional[Style] = None) -> None:
        """Write ``text`` on a line of its own at ``indent``."""
        self.cursor.start_block(indent)
        if style is None:
            self.canvas.put(self.cursor.row, indent, text)
        else:
            with self.canvas.styled(style):
                self.canvas.put(self.cursor.row, indent, text)
        self.cursor.newline(indent)

    def paragraph(self, node: Element, indent: int) -> None:
        self.block_container(node, indent)
        self.cursor.newline(indent)

    def header(self, node: Element, indent: int) -> None:
        text = gather_text(node)
        if not text:
            return
        self.line(indent, text, HEADER_STYLE)
        self.cursor.newline(indent)

    def preformatted(self, node: Element, indent: int) -> None:
        self.box(gather_raw_text(node), indent)

    def code(self, node: Element, indent: int) -> None:
        text = "\n".join(c.text for c in node.children if isinstance(c, Text))
        self.box(text, indent)

    def box(self, text: str, indent: int) -> None:
        inner = max(MIN_BOX_WIDTH, self.width - indent - 4)
        border = "+" + "-" * (inner + 2) + "+"
        self.line(indent, border)
        for line in box_lines(text, inner):
            if self.cursor.row >= self.limit:
                self.truncated = True
                return
            self.line(indent, "| " + line.ljust(inner) + " |")
        self.line(indent, border)

    def strike(self, node: Element, indent: int) -> None:
        self.cursor.start_block(indent)
        start = self.cursor.row
        self.children(node, indent)
        self.cursor.end_block(indent)
        for row in range(start, self.cursor.row):
            self.canvas.put(row, indent, "-" * (self.width - indent))

    def blockquote(self, node: Element, indent: int) -> None:
        self.cursor.start_block(indent)
        start = self.cursor.row
        inner = indent + len(QUOTE_MARGIN)
        self.cursor.col = inner
        self.children(node, inner)
        self.cursor.end_block(indent)
        for row in range(start, self.cursor.row):
            self.canvas.put(row, indent, QUOTE_MARGIN)

    def list_block(self, node: Element, indent: int) -> None:
        self.cursor.start_block(indent)
        number = 0
        for child in node.children:
            if isinstance(child, Element) and child.kind is NodeKind.LIST_ITEM:
                number += 1
                child.ordinal = number if node.kind is NodeKind.ORDERED_LIST else 0
            self.recurse(child, indent)
        self.cursor.end_block(indent)
        if not nested_in_list_item(node):
            self.cursor.newline(indent)

    def list_item(self, node: Element, indent: int) -> None:
        cursor = self.cursor
        cursor.start_block(indent)
        start = cursor.row
        if node.ordinal:
            marker = f"{node.ordinal}. "
            self.canvas.put(cursor.row, indent, marker)
        else:
            marker = BULLET
            self.canvas.put(cursor.row, indent, marker, self.canvas.style.merge(BULLET_STYLE))
        inner = indent + len(marker)
        cursor.col = inner
        self.children(node, inner)
        # An empty item still owns the row its marker sits on
        if cursor.dirty or cursor.row == start:
            cursor.newline(indent)

    def definition_list(self, node: Element, indent: int) -> None:
        self.block_container(node, indent)
        self.cursor.newline(indent)

    def definition_term(self, node: Element, indent: int) -> None:
        with self.canvas.styled(BOLD_STYLE):
            self.block_container(node, indent)

    def definition_description(self, node: Element, indent: int) -> None:
        self.block_container(node, indent + DESCRIPTION_INDENT)

    def image(self, node: Element, indent: int) -> None:
        src = node.attributes.get("src") or "(no-src)"
        alt = node.attributes.get("alt") or ""
        self.line(indent, f"[img: {src}] {alt}".rstrip(), IMAGE_STYLE)

    def figure_caption(self, node: Element, indent: int) -> None:
        text = gather_text(node)
        if text:
            self.line(indent, text, CAPTION_STYLE)

    def details(self, node: Element, indent: int) -> None:
        summary = None
        for child in node.children:
            if isinstance(child, Element) and child.kind is NodeKind.SUMMARY:
                summary = child
                break
        label = gather_text(summary) if summary is not None else ""
        if not label:
            self.block_container(node, indent)
            return
        marker = "(v)" if node.expanded else "(>)"
        self.line(indent, f"> {label} {marker}", BOLD_STYLE)
        if not node.expanded:
            return
        inner = indent + DETAILS_INDENT
        self.cursor.col = inner
        for child in node.children:
            if child is not summary:
                self.recurse(child, inner)
        self.cursor.end_block(indent)

    def table(self, node: Element, indent: int) -> None:
        grid = table_grid(node)
        if not grid.rows:
            return
        border = grid.border()
        self.line(indent, border)
        for row in grid.rows:
            if self.cursor.row >= self.limit:
                self.truncated = True
                return
            self.cursor.start_block(indent)
            col = indent
            self.canvas.put(self.cursor.row, col, "|")
            col += 1
            for c, width in enumerate(grid.widths):
                text, header = row[c] if c < len(row) else ("", False)
                style = TABLE_HEADER_STYLE if header else None
                self.canvas.put(self.cursor.row, col, " " + text.ljust(width - 2) + " ", style)
                col += width
                self.canvas.put(self.cursor.row, col, "|")
                col += 1
            self.cursor.newline(indent)
            self.line(indent, border)

    # --- Forms ---

    def form(self, node: Element, indent: int) -> None:
        self.line(indent, "Form:")
        self.block_container(node, indent + FORM_INDENT)

    def input(self, node: Element, indent: int) -> None:
        attrs = node.attributes
        kind = (attrs.get("type") or "text").lower()
        name = attrs.get("name") or "field"
        if kind == "hidden":
            return
        if kind in ("submit", "reset", "button"):
            label = f"[ {attrs.get('value') or kind.capitalize()} ]"
        elif kind in ("checkbox", "radio"):
            label = f"[{'x' if 'checked' in attrs else ' '}] {name}"
        else:
            label = f"{name}: __________"
        self.line(indent, label)

    def textarea(self, node: Element, indent: int) -> None:
        name = node.attributes.get("name") or "textarea"
        self.line(indent, f"{name}:")
        self.line(indent, "[" + "_" * max(0, self.width - indent - 4) + "]")

    def button(self, node: Element, indent: int) -> None:
        self.line(indent, f"[ {node.attributes.get('value') or 'Button'} ]")


def render_document(
    root: Element,
    width: int,
    canvas: Optional[Canvas] = None,
    height: int = CANVAS_HEIGHT,
) -> RenderResult:
    """Render the tree under ``root`` at ``width`` columns.

    A fresh canvas of ``height`` rows is created unless one is given.
    """
    if canvas is None:
        canvas = Canvas(height, width)
    layout = DocumentLayout(root, canvas)
    used = layout.layout()
    return RenderResult(canvas, used, layout.truncated)
