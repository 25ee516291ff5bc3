"""The seam where concrete diagram renderers attach."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .block import Block
from .config import RendererConfig
from .output import RenderedOutput


@dataclass(frozen=True)
class Position:
    line: int
    column: int
    byte: int


@dataclass(frozen=True)
class SourceRange:
    path: str
    start: Position
    end: Position


@dataclass(frozen=True)
class Diagnostic:
    range: SourceRange
    message: str


@dataclass(eq=False)
class RenderError(Exception):
    """A renderer rejected a block; ``diagnostics`` is empty for opaque failures."""

    message: str
    diagnostics: List[Diagnostic] = field(default_factory=list)

    def __str__(self) -> str:
        return self.message

    @classmethod
    def from_diagnostics(
        cls,
        block: Block,
        renderer: str,
        diagnostics: Sequence[Diagnostic],
        summary: str = "Parse Error",
    ) -> "RenderError":
        lines = [
            f"{block.location_string(item.range.start.line, item.range.end.line)}: {renderer} {item.message}"
            for item in diagnostics
        ]
        return cls("\n".join([summary, *lines]), list(diagnostics))


class SvgRenderer:
    """Turns one block into one or more SVG outputs.

    Implementations must not block the event loop: long external calls go
    through asyncio subprocesses or ``asyncio.to_thread``.
    """

    def __init__(self, config: RendererConfig) -> None:
        self.config = config

    @property
    def info_string(self) -> str:
        return self.config.info_string

    async def render_svgs(self, block: Block) -> List[RenderedOutput]:
        raise NotImplementedError


def output_title(*candidates: Optional[str]) -> str:
    """First non-empty candidate, falling back to ``"index"``."""
    for candidate in candidates:
        if candidate:
            return candidate
    return "index"
