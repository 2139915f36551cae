"""Byte-level cleanup applied to a page before it is parsed.

Two passes run over every fetched document:

* :func:`sanitize_bytes` maps the raw bytes onto printable ASCII so the
  rest of the pipeline can index the text freely and the terminal never
  receives control sequences from the page;
* :func:`strip_non_content` removes ``<script>`` and ``<style>`` blocks
  together with ``<meta>`` and ``<link>`` tags, none of which produce
  anything visible in a text view.
"""

from __future__ import annotations

from typing import List, Tuple

KEPT_CONTROLS = b"\n\t\r"

# (prefix, terminator); a missing terminator drops the rest of the input
SKIP_BLOCKS: List[Tuple[str, str]] = [
    ("<script", "</script>"),
    ("</script", "</script>"),
    ("<style", "</style>"),
    ("</style", "</style>"),
]

SKIP_TAGS: Tuple[str, ...] = ("<meta", "<link")


def _translate_table() -> bytes:
    table = bytearray(range(256))
    for b in range(32):
        if b not in KEPT_CONTROLS:
            table[b] = ord(" ")
    table[127] = ord(" ")
    for b in range(128, 256):
        table[b] = ord("?")
    return bytes(table)


TRANSLATE = _translate_table()


def sanitize_bytes(data: bytes) -> str:
    """Replace non-ASCII bytes with ``?`` and control bytes (DEL included) with spaces."""
    return data.translate(TRANSLATE).decode("ascii")


def strip_non_content(text: str) -> str:
    """Remove script and style blocks and meta/link tags from ``text``.

    Matching is case-insensitive. Everything else, comments included, is
    passed through untouched for the parser to deal with.
    """
    # Only ASCII reaches here, so offsets into the lowered copy line up
    lowered = text.lower()
    out: List[str] = []
    i = 0
    start = 0
    n = len(text)
    while i < n:
        i = text.find("<", i)
        if i == -1:
            break
        skip_to = None
        for prefix, terminator in SKIP_BLOCKS:
            if lowered.startswith(prefix, i):
                end = lowered.find(terminator, i)
                skip_to = n if end == -1 else end + len(terminator)
                break
        else:
            if lowered.startswith(SKIP_TAGS, i):
                end = text.find(">", i)
                if end != -1:
                    skip_to = end + 1
        if skip_to is None:
            i += 1
            continue
        out.append(text[start:i])
        start = i = skip_to
    out.append(text[start:])
    return "".join(out)


def preprocess(data: bytes) -> str:
    return strip_non_content(sanitize_bytes(data))
