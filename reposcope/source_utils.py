"""Small text helpers shared by the regex-driven extractors.

The extractors work on raw source text rather than a syntax tree, so they
need a few primitives that regexes alone cannot express: balanced-block
scanning, splitting on top-level separators and mapping offsets to lines.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

_OPEN_TO_CLOSE = {"{": "}", "(": ")", "[": "]"}
_QUOTES = ("'", '"', "`")


def line_number(content: str, offset: int) -> int:
    """1-based line number of character *offset* in *content*."""
    return content.count("\n", 0, offset) + 1


def extract_block(content: str, open_index: int) -> Optional[Tuple[str, int]]:
    """Return the text between the bracket at *open_index* and its match.

    The scan keeps a depth counter and ignores brackets inside string
    literals.  Returns ``(body, close_index)`` or ``None`` when the bracket
    is never closed.
    """
    if open_index >= len(content) or content[open_index] not in _OPEN_TO_CLOSE:
        return None
    opener = content[open_index]
    closer = _OPEN_TO_CLOSE[opener]

    depth = 0
    quote: Optional[str] = None
    i = open_index
    while i < len(content):
        ch = content[i]
        if quote is not None:
            if ch == "\\":
                i += 2
                continue
            if ch == quote:
                quote = None
        elif ch in _QUOTES:
            quote = ch
        elif ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                return content[open_index + 1:i], i
        i += 1
    return None


def split_top_level(text: str, separator: str = ",") -> List[str]:
    """Split *text* on *separator* only where no bracket or quote is open.

    ``DECIMAL(10, 2)`` or ``{ a: 1, b: 2 }`` stay in one piece.  Empty
    segments are dropped and the rest are stripped.
    """
    parts: List[str] = []
    depth = 0
    quote: Optional[str] = None
    current: List[str] = []
    i = 0
    while i < len(text):
        ch = text[i]
        if quote is not None:
            current.append(ch)
            if ch == "\\" and i + 1 < len(text):
                current.append(text[i + 1])
                i += 2
                continue
            if ch == quote:
                quote = None
        elif ch in _QUOTES:
            quote = ch
            current.append(ch)
        elif ch in "([{":
            depth += 1
            current.append(ch)
        elif ch in ")]}":
            depth = max(0, depth - 1)
            current.append(ch)
        elif ch == separator and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(ch)
        i += 1
    parts.append("".join(current))
    return [p.strip() for p in parts if p.strip()]


def strip_quotes(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in _QUOTES:
        return value[1:-1]
    return value


def strip_comments(line: str) -> str:
    """Drop a trailing ``//`` or ``#`` comment that is not inside a string."""
    quote: Optional[str] = None
    for i, ch in enumerate(line):
        if quote is not None:
            if ch == quote:
                quote = None
            continue
        if ch in _QUOTES:
            quote = ch
        elif ch == "#" or (ch == "/" and line[i + 1:i + 2] == "/"):
            return line[:i].rstrip()
    return line
