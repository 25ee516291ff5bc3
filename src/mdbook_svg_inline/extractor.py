"""Two-state machine that pulls matching diagram fences out of an event stream."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path, PurePath
from typing import Iterable, List, Optional, Union

from .block import Block, BlockBuilder
from .events import CODE_END, CODE_START, TEXT, Event

logger = logging.getLogger(__name__)

# the fence line itself plus 1-based numbering
_SOURCE_LINE_OFFSET = 2

Segment = Union[List[Event], Block]


@dataclass
class PassingEvents:
    events: List[Event] = field(default_factory=list)


@dataclass
class BuildingBlock:
    builder: BlockBuilder


ParsingState = Union[PassingEvents, BuildingBlock]


class BlockExtractor:
    """Splits one chapter's events into pass-through lists and ``Block``s.

    A fence matches when the UTF-8 bytes of its info string start with the
    configured prefix; whatever follows the prefix (trimmed) becomes the
    graph name.
    """

    def __init__(
        self,
        info_string: str,
        *,
        renderer_name: str,
        document_root: Path,
        chapter_name: str,
        chapter_path: PurePath,
        content: str,
    ) -> None:
        self.info_string = info_string
        self.renderer_name = renderer_name
        self.document_root = document_root
        self.chapter_name = chapter_name.strip()
        self.chapter_path = chapter_path
        self.content = content
        self._prefix = info_string.encode("utf-8")

    def extract(self, events: Iterable[Event]) -> List[Segment]:
        segments: List[Segment] = []
        state: ParsingState = PassingEvents()
        index = 0

        for event in events:
            if isinstance(state, BuildingBlock):
                if event.kind == TEXT:
                    state.builder.append_source_code(event.text)
                elif event.kind == CODE_END:
                    segments.append(state.builder.build(index))
                    index += 1
                    state = PassingEvents()
                continue

            if event.kind == CODE_START:
                graph_name = self._match(event.text)
                if graph_name is not None:
                    if state.events:
                        segments.append(state.events)
                    state = BuildingBlock(self._builder(event, graph_name))
                    continue
            state.events.append(event)

        if isinstance(state, BuildingBlock):
            block = state.builder.build(index)
            logger.warning("%s: Found unclosed %s block", block.location_string(), self.renderer_name)
            segments.append(block)
        elif state.events:
            segments.append(state.events)
        return segments

    def _match(self, info_string: str) -> Optional[str]:
        raw = info_string.encode("utf-8")
        # bytes must be equal to match, so the split never lands inside a character
        split = min(len(raw), len(self._prefix))
        if raw[:split] != self._prefix:
            return None
        return raw[split:].decode("utf-8").strip()

    def _builder(self, event: Event, graph_name: str) -> BlockBuilder:
        line = self.content.count("\n", 0, event.offset) + _SOURCE_LINE_OFFSET
        return BlockBuilder(
            chapter_name=self.chapter_name,
            document_root=self.document_root,
            chapter_relative_path=self.chapter_path,
            renderer_name=self.renderer_name,
            graph_name=graph_name or None,
            source_line=line,
            container_prefix=event.prefix,
            opens_item=event.opens_item,
        )
