"""Offset-annotated markdown event stream built on markdown-it-py.

Only fenced code blocks are broken up into structured events; everything in
between is carried as verbatim ``markdown`` slices, so serializing an
untouched event list gives back the chapter byte for byte.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, List

from markdown_it import MarkdownIt
from markdown_it.token import Token

MARKDOWN = "markdown"
CODE_START = "code_start"
TEXT = "text"
CODE_END = "code_end"
HTML = "html"

# markdown-it splits lines the same way
_LINE_BREAK_RE = re.compile(r"\r\n?|\n")

_MARKDOWN = MarkdownIt("commonmark").enable(["table", "strikethrough"])


@dataclass(frozen=True)
class Event:
    kind: str
    # exact text written back when serializing
    source: str
    # info string for code_start, code for text, markup for html
    text: str = ""
    offset: int = 0
    # container markers before a code_start fence, e.g. "> " or list indentation
    prefix: str = ""
    # the fence is the first line of a list item
    opens_item: bool = False

    @classmethod
    def blank(cls, text: str = "\n\n") -> "Event":
        return cls(TEXT, text, text)

    @classmethod
    def html(cls, markup: str) -> "Event":
        return cls(HTML, markup, markup)


def parse_events(content: str) -> List[Event]:
    """Split ``content`` into pass-through slices and fenced code block events."""
    starts = _line_starts(content)
    length = len(content)
    events: List[Event] = []
    position = 0

    for token in _MARKDOWN.parse(content):
        if token.type != "fence" or not token.map:
            continue
        first, last = token.map
        line_begin = _line_start(starts, first, length)
        line_end = _line_start(starts, first + 1, length)
        column = max(content.find(token.markup, line_begin, line_end), line_begin)

        if column > position:
            events.append(Event(MARKDOWN, content[position:column], offset=position))
        lead = content[line_begin:column]
        events.append(
            Event(
                CODE_START,
                content[column:line_end],
                token.info.strip(),
                column,
                _container_prefix(lead),
                bool(lead.strip(" \t>")),
            )
        )

        closed = last > first + 1 and _is_closing_fence(
            content[_line_start(starts, last - 1, length) : _line_start(starts, last, length)],
            token,
        )
        body_end = _line_start(starts, last - 1 if closed else last, length)
        if body_end > line_end or token.content:
            events.append(Event(TEXT, content[line_end:body_end], token.content, line_end))

        fence_end = _line_start(starts, last, length)
        if closed or fence_end < length:
            # a fence cut short by its container still ends there
            events.append(Event(CODE_END, content[body_end:fence_end], offset=body_end))
        position = fence_end

    if position < length:
        events.append(Event(MARKDOWN, content[position:], offset=position))
    return events


def serialize_events(events: Iterable[Event]) -> str:
    return "".join(event.source for event in events)


def _line_starts(content: str) -> List[int]:
    return [0] + [match.end() for match in _LINE_BREAK_RE.finditer(content)]


def _line_start(starts: List[int], line: int, length: int) -> int:
    if line < len(starts):
        return starts[line]
    return length


def _is_closing_fence(line: str, token: Token) -> bool:
    # container prefixes (block quotes, list indentation) come first
    marker = line.lstrip(" \t>").rstrip()
    return len(marker) >= len(token.markup) and marker == token.markup[0] * len(marker)


def _container_prefix(lead: str) -> str:
    # block quote markers and tabs stay, list markers become indentation
    return "".join(ch if ch in ">\t" else " " for ch in lead)
