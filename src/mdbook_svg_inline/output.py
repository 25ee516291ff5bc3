"""Rendered diagram outputs and the HTML that replaces their source fence."""
from __future__ import annotations

import asyncio
import functools
import html
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

from .block import Block, sanitize_html_id
from .events import Event
from .svg_inline import format_for_inline

logger = logging.getLogger(__name__)

CONTAINER_CLASS = "svg-container"
TAB_HEADER_ID_PREFIX = "svg-tabs"
TAB_CONTENT_CLASS = "svg-content"
OUTPUT_CLASS = "mdbook-graphviz-output"

INDEX = "index"
LAYERS = "layers"
SCENARIOS = "scenarios"
STEPS = "steps"

# an index sorts before any named grouping
_COMPONENT_ORDER = {INDEX: 0, LAYERS: 1, SCENARIOS: 2, STEPS: 3}


@dataclass(frozen=True)
class PathComponent:
    kind: str
    index: int = 0

    def sort_key(self) -> Tuple[int, int]:
        return _COMPONENT_ORDER[self.kind], self.index if self.kind == INDEX else 0

    def __str__(self) -> str:
        return f"[{self.index}]" if self.kind == INDEX else self.kind


@functools.total_ordering
@dataclass(frozen=True)
class GraphPath:
    """Where an output sits inside a diagram that fans out, e.g. ``layers[0].steps[2]``."""

    components: Tuple[PathComponent, ...] = ()

    @classmethod
    def of(cls, *parts: Union[str, int]) -> "GraphPath":
        return cls(
            tuple(
                PathComponent(INDEX, part) if isinstance(part, int) else PathComponent(part)
                for part in parts
            )
        )

    def child(self, *parts: Union[str, int]) -> "GraphPath":
        return GraphPath(self.components + GraphPath.of(*parts).components)

    def sort_key(self) -> Tuple[Tuple[int, int], ...]:
        return tuple(component.sort_key() for component in self.components)

    def __lt__(self, other: "GraphPath") -> bool:
        if not isinstance(other, GraphPath):
            return NotImplemented
        return self.sort_key() < other.sort_key()

    def __str__(self) -> str:
        text = ""
        for component in self.components:
            if text and component.kind != INDEX:
                text += "."
            text += str(component)
        return text


@dataclass(frozen=True)
class RenderedOutput:
    relative_id: Optional[GraphPath]
    title: str
    content: str


def sort_outputs(outputs: Sequence[RenderedOutput]) -> List[RenderedOutput]:
    return sorted(
        outputs,
        key=lambda output: (
            output.relative_id is not None,
            output.relative_id.sort_key() if output.relative_id is not None else (),
        ),
    )


class OutputComposer:
    """Builds the replacement events for one rendered block."""

    def __init__(self, *, output_to_file: bool = False, link_to_file: bool = False) -> None:
        self.output_to_file = output_to_file
        self.link_to_file = link_to_file

    async def compose(self, block: Block, outputs: Sequence[RenderedOutput]) -> List[Event]:
        uid = block.uid_for_chapter()
        ordered = sort_outputs(outputs) if len(outputs) > 1 else list(outputs)
        tabbed = len(ordered) > 1

        headers: List[str] = []
        contents: List[str] = []
        for position, output in enumerate(ordered):
            relative_id = str(output.relative_id) if output.relative_id is not None else ""
            html_id = sanitize_html_id(
                f"{TAB_CONTENT_CLASS}-{uid}" + (f"-{relative_id}" if relative_id else "")
            )
            if tabbed:
                default = " data-tabby-default" if position == 0 else ""
                headers.append(
                    f'<li><a{default} href="#{html_id}">{html.escape(output.title)}</a></li>'
                )

            if self.output_to_file:
                body = await self._write_image(block, output, relative_id or None)
            else:
                body = format_for_inline(output.content, html_id)
            contents.append(
                f'<div id="{html_id}" class="{TAB_CONTENT_CLASS} {OUTPUT_CLASS}">{body}</div>'
            )

        tab_header = ""
        if tabbed:
            header_id = sanitize_html_id(f"{TAB_HEADER_ID_PREFIX}-{uid}")
            tab_header = f'<ul id="{header_id}">{"".join(headers)}</ul>'

        markup = f'<div class="{CONTAINER_CLASS}"><div>{tab_header}{"".join(contents)}</div></div>'
        # blank text on both sides keeps the html a block of its own; the
        # fence line already carries the prefix and the next line brings its own
        prefix = block.container_prefix
        # a list item may start with one blank line, not two
        leading = f"\n{prefix}" if block.opens_item else f"\n{prefix}\n{prefix}"
        return [
            Event.blank(leading),
            Event.html(markup.replace("\n", f"\n{prefix}")),
            Event.blank(f"\n{prefix}\n"),
        ]

    async def _write_image(
        self, block: Block, output: RenderedOutput, relative_id: Optional[str]
    ) -> str:
        file_name = block.svg_file_name(relative_id)
        output_path = block.chapter_dir() / file_name
        await asyncio.to_thread(_write_text, output_path, output.content)
        logger.debug("Wrote %s", output_path)

        name = html.escape(block.graph_name or "", quote=True)
        target = html.escape(file_name, quote=True)
        image = f'<img src="{target}" alt="{name}" title="{name}">'
        if self.link_to_file:
            image = f'<a href="{target}" title="{name}">{image}</a>'
        return image


def _write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
