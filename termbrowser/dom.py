"""DOM definitions for the terminal browser.

This module contains the node classes (:class:`Text` and :class:`Element`)
and the tolerant HTML parser that builds a tree from sanitized markup. The
parser keeps an explicit stack of open elements; closing tags pop the
nearest compatible element and are ignored when nothing matches, so
unbalanced or unknown markup still yields a well-formed tree.

Which tag opens which kind of node, and which closing names a node accepts,
are both driven by tables (:data:`TAG_KINDS` and :data:`CLOSE_NAMES`) so the
recovery rules can be inspected and tested without running the parser.
"""

from __future__ import annotations

import enum
import logging
import re
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

logger = logging.getLogger(__name__)


class NodeKind(enum.Enum):
    """Every variant a node in the tree can take."""
    TEXT = "text"
    LINE_BREAK = "line-break"
    HORIZONTAL_RULE = "horizontal-rule"
    GENERIC = "generic"
    HEADER = "header"
    PARAGRAPH = "paragraph"
    PREFORMATTED = "preformatted"
    CODE = "code"
    BOLD = "bold"
    ITALIC = "italic"
    MARK = "mark"
    UNDERLINE = "underline"
    STRIKE = "strike"
    BLOCKQUOTE = "blockquote"
    UNORDERED_LIST = "unordered-list"
    ORDERED_LIST = "ordered-list"
    LIST_ITEM = "list-item"
    DEFINITION_LIST = "definition-list"
    DEFINITION_TERM = "definition-term"
    DEFINITION_DESCRIPTION = "definition-description"
    IMAGE = "image"
    FIGURE = "figure"
    FIGURE_CAPTION = "figure-caption"
    DETAILS = "details"
    SUMMARY = "summary"
    TABLE = "table"
    TABLE_ROW = "table-row"
    TABLE_CELL = "table-cell"
    TABLE_HEADER_CELL = "table-header-cell"
    LINK = "link"
    FORM = "form"
    INPUT = "input"
    TEXTAREA = "textarea"
    SELECT = "select"
    BUTTON = "button"
    MAIN_REGION = "main-region"
    HEADER_BAR = "header-bar"
    FOOTER_BAR = "footer-bar"


# Tag name -> node kind. Anything missing becomes a GENERIC container.
TAG_KINDS: Dict[str, NodeKind] = {
    "br": NodeKind.LINE_BREAK,
    "hr": NodeKind.HORIZONTAL_RULE,
    "div": NodeKind.GENERIC,
    "main": NodeKind.MAIN_REGION,
    "header": NodeKind.HEADER_BAR,
    "footer": NodeKind.FOOTER_BAR,
    "p": NodeKind.PARAGRAPH,
    "pre": NodeKind.PREFORMATTED,
    "code": NodeKind.CODE,
    "samp": NodeKind.CODE,
    "strong": NodeKind.BOLD,
    "b": NodeKind.BOLD,
    "em": NodeKind.ITALIC,
    "i": NodeKind.ITALIC,
    "cite": NodeKind.ITALIC,
    "dfn": NodeKind.ITALIC,
    "address": NodeKind.ITALIC,
    "mark": NodeKind.MARK,
    "u": NodeKind.UNDERLINE,
    "ins": NodeKind.UNDERLINE,
    "abbr": NodeKind.UNDERLINE,
    "del": NodeKind.STRIKE,
    "s": NodeKind.STRIKE,
    "strike": NodeKind.STRIKE,
    "blockquote": NodeKind.BLOCKQUOTE,
    "q": NodeKind.BLOCKQUOTE,
    "ul": NodeKind.UNORDERED_LIST,
    "ol": NodeKind.ORDERED_LIST,
    "li": NodeKind.LIST_ITEM,
    "dl": NodeKind.DEFINITION_LIST,
    "dt": NodeKind.DEFINITION_TERM,
    "dd": NodeKind.DEFINITION_DESCRIPTION,
    "img": NodeKind.IMAGE,
    "figure": NodeKind.FIGURE,
    "figcaption": NodeKind.FIGURE_CAPTION,
    "details": NodeKind.DETAILS,
    "summary": NodeKind.SUMMARY,
    "table": NodeKind.TABLE,
    "tr": NodeKind.TABLE_ROW,
    "td": NodeKind.TABLE_CELL,
    "th": NodeKind.TABLE_HEADER_CELL,
    "a": NodeKind.LINK,
    "form": NodeKind.FORM,
    "input": NodeKind.INPUT,
    "textarea": NodeKind.TEXTAREA,
    "select": NodeKind.SELECT,
    "button": NodeKind.BUTTON,
}
for _level in range(1, 7):
    TAG_KINDS[f"h{_level}"] = NodeKind.HEADER

# Kinds that never take children
VOID_KINDS: Set[NodeKind] = {
    NodeKind.LINE_BREAK,
    NodeKind.HORIZONTAL_RULE,
    NodeKind.IMAGE,
    NodeKind.INPUT,
    NodeKind.BUTTON,
}

# Remaining HTML void elements; they become GENERIC leaves
VOID_TAGS: Set[str] = {
    "area", "base", "col", "embed", "param", "source", "track", "wbr",
}


def _build_close_names() -> Dict[NodeKind, Set[str]]:
    names: Dict[NodeKind, Set[str]] = {}
    for tag, kind in TAG_KINDS.items():
        if kind in VOID_KINDS or kind is NodeKind.GENERIC:
            continue
        names.setdefault(kind, set()).add(tag)
    return names


# Node kind -> closing tag names that pop it. GENERIC containers are
# matched on the tag they were opened with instead.
CLOSE_NAMES: Dict[NodeKind, Set[str]] = _build_close_names()

# Opening one of these closes an open element of the same family first,
# unless one of the boundary kinds sits in between (e.g. a nested list).
IMPLICIT_CLOSE: Dict[NodeKind, Tuple[Set[NodeKind], Set[NodeKind]]] = {
    NodeKind.LIST_ITEM: (
        {NodeKind.LIST_ITEM},
        {NodeKind.UNORDERED_LIST, NodeKind.ORDERED_LIST},
    ),
    NodeKind.PARAGRAPH: (
        {NodeKind.PARAGRAPH},
        {NodeKind.LIST_ITEM, NodeKind.BLOCKQUOTE, NodeKind.TABLE_CELL,
         NodeKind.TABLE_HEADER_CELL, NodeKind.DETAILS, NodeKind.FORM},
    ),
    NodeKind.DEFINITION_TERM: (
        {NodeKind.DEFINITION_TERM, NodeKind.DEFINITION_DESCRIPTION},
        {NodeKind.DEFINITION_LIST},
    ),
    NodeKind.DEFINITION_DESCRIPTION: (
        {NodeKind.DEFINITION_TERM, NodeKind.DEFINITION_DESCRIPTION},
        {NodeKind.DEFINITION_LIST},
    ),
    NodeKind.TABLE_ROW: ({NodeKind.TABLE_ROW}, {NodeKind.TABLE}),
    NodeKind.TABLE_CELL: (
        {NodeKind.TABLE_CELL, NodeKind.TABLE_HEADER_CELL},
        {NodeKind.TABLE_ROW, NodeKind.TABLE},
    ),
    NodeKind.TABLE_HEADER_CELL: (
        {NodeKind.TABLE_CELL, NodeKind.TABLE_HEADER_CELL},
        {NodeKind.TABLE_ROW, NodeKind.TABLE},
    ),
}

# Whitespace-only text directly under these is layout noise and dropped
STRUCTURAL_KINDS: Set[NodeKind] = {
    NodeKind.TABLE,
    NodeKind.TABLE_ROW,
    NodeKind.UNORDERED_LIST,
    NodeKind.ORDERED_LIST,
    NodeKind.DEFINITION_LIST,
    NodeKind.SELECT,
}

PREFORMATTED_KINDS: Set[NodeKind] = {NodeKind.PREFORMATTED, NodeKind.CODE}

ROOT_TAG = "#document"

# Deeper containers are attached but not pushed, bounding recursion later on
MAX_DEPTH = 128

TAG_NAME_RE = re.compile(r"[A-Za-z0-9-]*")
WHITESPACE_RE = re.compile(r"\s+")


class HTMLSyntaxError(Exception):
    """Raised by a strict parser when a tag is never closed with ``>``."""
    def __init__(self, message: str, position: int) -> None:
        super().__init__(f"{message} at offset {position}")
        self.position = position


def collapse_whitespace(text: str) -> str:
    """Collapse whitespace runs to one space; ``\\r`` is dropped outright."""
    return WHITESPACE_RE.sub(" ", text.replace("\r", ""))


class Attributes:
    """Ordered attribute pairs with case-insensitive, first-wins lookup."""
    def __init__(self, pairs: Optional[List[Tuple[str, str]]] = None) -> None:
        self.pairs: List[Tuple[str, str]] = []
        for name, value in pairs or []:
            self.add(name, value)

    def add(self, name: str, value: str) -> None:
        self.pairs.append((name.casefold(), value))

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        key = name.casefold()
        for k, v in self.pairs:
            if k == key:
                return v
        return default

    def __getitem__(self, name: str) -> str:
        value = self.get(name)
        if value is None:
            raise KeyError(name)
        return value

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.get(name) is not None

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(self.pairs)

    def __len__(self) -> int:
        return len(self.pairs)

    def __repr__(self) -> str:
        return " ".join(f'{k}="{v}"' for k, v in self.pairs)


class AttributeScanner:
    """Scan the text after a tag name into :class:`Attributes`."""
    NAME_CHARS = "-:_."

    def __init__(self, s: str) -> None:
        self.s = s
        self.i = 0

    def whitespace(self) -> None:
        while self.i < len(self.s) and self.s[self.i].isspace():
            self.i += 1

    def name(self) -> str:
        start = self.i
        while self.i < len(self.s) and (
            self.s[self.i].isalnum() or self.s[self.i] in self.NAME_CHARS
        ):
            self.i += 1
        return self.s[start:self.i]

    def value(self) -> str:
        if self.i >= len(self.s):
            return ""
        quote = self.s[self.i]
        if quote in "\"'":
            self.i += 1
            end = self.s.find(quote, self.i)
            if end == -1:
                # Unterminated quote swallows the rest of the tag
                end = len(self.s)
            value = self.s[self.i:end]
            self.i = min(end + 1, len(self.s))
            return value
        start = self.i
        while self.i < len(self.s) and not self.s[self.i].isspace() and self.s[self.i] != ">":
            self.i += 1
        return self.s[start:self.i]

    def parse(self) -> Attributes:
        attributes = Attributes()
        while True:
            self.whitespace()
            if self.i >= len(self.s):
                break
            if self.s[self.i] == "/":
                self.i += 1
                continue
            name = self.name()
            if not name:
                break
            self.whitespace()
            value = ""
            if self.i < len(self.s) and self.s[self.i] == "=":
                self.i += 1
                self.whitespace()
                value = self.value()
            attributes.add(name, value)
        return attributes


def parse_attributes(text: str) -> Attributes:
    return AttributeScanner(text).parse()


class Text:
    """A leaf node holding a run of sanitized text."""
    kind = NodeKind.TEXT

    def __init__(self, text: str, parent: Optional['Element']) -> None:
        self.text: str = text
        self.children: List[Any] = []
        self.parent: Optional[Element] = parent
        self.released: bool = False

    def __repr__(self) -> str:
        return repr(self.text)


class Element:
    """A node for any non-text variant; ``tag`` keeps the source tag name."""
    def __init__(
        self,
        kind: NodeKind,
        tag: str,
        attributes: Optional[Attributes],
        parent: Optional['Element'],
    ) -> None:
        self.kind: NodeKind = kind
        self.tag: str = tag
        self.attributes: Attributes = attributes if attributes is not None else Attributes()
        self.children: List[Any] = []
        self.parent: Optional[Element] = parent
        self.released: bool = False
        # Render state: list item number (0 = bulleted) and details open flag
        self.ordinal: int = 0
        self.expanded: bool = kind is NodeKind.DETAILS and "open" in self.attributes

    @property
    def level(self) -> int:
        """Header level 1-6, or 0 for anything that is not a header."""
        if self.kind is NodeKind.HEADER:
            return int(self.tag[1])
        return 0

    def accepts_close(self, name: str) -> bool:
        """Whether a closing tag ``</name>`` may pop this element."""
        if self.kind is NodeKind.GENERIC:
            return name == self.tag
        return name in CLOSE_NAMES.get(self.kind, ())

    def append(self, child: Any) -> Any:
        self.children.append(child)
        child.parent = self
        return child

    def __repr__(self) -> str:
        if len(self.attributes):
            return f"<{self.tag} {self.attributes!r}>"
        return "<" + self.tag + ">"


def print_tree(node: Any, indent: int = 0) -> None:
    """Recursively print the tree starting at ``node``."""
    print("  " * indent + repr(node))
    for c in getattr(node, "children", []):
        print_tree(c, indent + 1)


def tree_to_list(tree: Any, out: List[Any]) -> List[Any]:
    """Flatten the tree into a list using preorder traversal."""
    out.append(tree)
    for c in getattr(tree, "children", []):
        tree_to_list(c, out)
    return out


def release_tree(root: Any) -> int:
    """Detach every node of the tree rooted at ``root``.

    A tree is released exactly once, when the page that owns it is
    replaced or closed; a second release is a bug in the owner and raises
    :class:`ValueError`. Returns the number of nodes released.
    """
    if root.released:
        raise ValueError("tree already released")
    count = 0
    stack = [root]
    while stack:
        node = stack.pop()
        stack.extend(node.children)
        node.children = []
        node.parent = None
        node.released = True
        count += 1
    return count


def gather_text(node: Any) -> str:
    """Concatenate descendant text with whitespace collapsed and trimmed."""
    parts: List[str] = []
    stack = [node]
    while stack:
        n = stack.pop()
        if isinstance(n, Text):
            parts.append(n.text)
        else:
            stack.extend(reversed(n.children))
    return collapse_whitespace("".join(parts)).strip()


def gather_raw_text(node: Any) -> str:
    """Concatenate descendant text verbatim."""
    if isinstance(node, Text):
        return node.text
    return "".join(gather_raw_text(c) for c in node.children)


class HTMLParser:
    """A forgiving HTML parser producing a tree of :class:`Element` nodes.

    The parser never fails on bad nesting: unknown tags become transparent
    containers, unmatched closing tags are dropped, and an unterminated
    comment or tag ends the document early. Only ``strict`` parsing turns
    an unterminated tag into an :class:`HTMLSyntaxError`.
    """

    def __init__(self, body: str, strict: bool = False) -> None:
        self.body: str = body
        self.strict: bool = strict
        self.root: Element = Element(NodeKind.GENERIC, ROOT_TAG, None, None)
        # Stack of open elements; the root is never popped
        self.unfinished: List[Element] = [self.root]
        self.truncated: bool = False
        self.pushes: int = 0
        self.matched_closes: int = 0

    def parse(self) -> Element:
        """Parse the markup and return the root node."""
        body = self.body
        pos = 0
        while pos < len(body):
            if body[pos] != "<":
                end = body.find("<", pos)
                if end == -1:
                    end = len(body)
                self.add_text(body[pos:end])
                pos = end
                continue
            if body.startswith("<!--", pos):
                end = body.find("-->", pos + 4)
                if end == -1:
                    self.truncate("unterminated comment", pos)
                    break
                pos = end + 3
                continue
            gt = body.find(">", pos + 1)
            if gt == -1:
                if self.strict:
                    raise HTMLSyntaxError("unterminated tag", pos)
                self.truncate("unterminated tag", pos)
                break
            self.add_tag(body[pos + 1:gt])
            pos = gt + 1
        return self.root

    def truncate(self, reason: str, pos: int) -> None:
        logger.debug("%s at offset %d; dropping %d characters", reason, pos, len(self.body) - pos)
        self.truncated = True

    def in_preformatted(self) -> bool:
        return any(n.kind in PREFORMATTED_KINDS for n in self.unfinished)

    def add_text(self, text: str) -> None:
        parent = self.unfinished[-1]
        if not self.in_preformatted():
            text = collapse_whitespace(text)
            if text == " " and parent.kind in STRUCTURAL_KINDS:
                return
        if text:
            parent.append(Text(text, parent))

    def add_tag(self, tagtext: str) -> None:
        tagtext = tagtext.strip()
        # Doctype, processing instructions and empty tags carry nothing
        if not tagtext or tagtext[0] in "!?":
            return
        closing = tagtext.startswith("/")
        if closing:
            tagtext = tagtext[1:].lstrip()
        match = TAG_NAME_RE.match(tagtext)
        tag = match.group(0).lower()
        if not tag:
            return
        if closing:
            self.close_tag(tag)
            return
        rest = tagtext[match.end():]
        kind = TAG_KINDS.get(tag, NodeKind.GENERIC)
        self.implicit_close(kind)
        parent = self.unfinished[-1]
        node = parent.append(Element(kind, tag, parse_attributes(rest), parent))
        if kind in VOID_KINDS or tag in VOID_TAGS:
            return
        # <foo/> only self-closes elements we have no rules for
        if kind is NodeKind.GENERIC and rest.endswith("/"):
            return
        if len(self.unfinished) >= MAX_DEPTH:
            return
        self.unfinished.append(node)
        self.pushes += 1

    def implicit_close(self, kind: NodeKind) -> None:
        rule = IMPLICIT_CLOSE.get(kind)
        if rule is None:
            return
        family, boundary = rule
        for i in range(len(self.unfinished) - 1, 0, -1):
            open_kind = self.unfinished[i].kind
            if open_kind in boundary:
                return
            if open_kind in family:
                del self.unfinished[i:]
                return

    def close_tag(self, tag: str) -> None:
        for i in range(len(self.unfinished) - 1, 0, -1):
            if self.unfinished[i].accepts_close(tag):
                del self.unfinished[i:]
                self.matched_closes += 1
                return
        # No compatible open element: the closing tag is ignored


def extract_title(root: Any) -> Optional[str]:
    """Return the text of the first ``<title>`` element, if present."""
    for node in tree_to_list(root, []):
        if isinstance(node, Element) and node.tag == "title":
            return gather_text(node) or None
    return None
