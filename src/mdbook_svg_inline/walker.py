"""Concurrent, order-preserving rendering of a whole chapter tree."""
from __future__ import annotations

import asyncio
import dataclasses
import logging
from pathlib import Path, PurePath
from typing import Awaitable, List, Sequence, TypeVar

from .block import Block
from .book import BookItem, Chapter
from .events import Event, parse_events, serialize_events
from .extractor import BlockExtractor, Segment
from .output import OutputComposer
from .renderer import SvgRenderer

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def gather_in_order(awaitables: Sequence[Awaitable[T]]) -> List[T]:
    """Run ``awaitables`` concurrently; results keep their input positions.

    The first failure cancels the rest and surfaces as an ``ExceptionGroup``.
    """
    async with asyncio.TaskGroup() as group:
        tasks = [group.create_task(_await(item)) for item in awaitables]
    return [task.result() for task in tasks]


async def _await(awaitable: Awaitable[T]) -> T:
    return await awaitable


class ChapterTreeWalker:
    def __init__(
        self,
        renderer: SvgRenderer,
        composer: OutputComposer,
        *,
        renderer_name: str,
        document_root: Path,
    ) -> None:
        self.renderer = renderer
        self.composer = composer
        self.renderer_name = renderer_name
        self.document_root = document_root

    async def process_sub_items(self, items: Sequence[BookItem]) -> List[BookItem]:
        return await gather_in_order([self._process_item(item) for item in items])

    async def _process_item(self, item: BookItem) -> BookItem:
        if isinstance(item, Chapter):
            return await self.process_chapter(item)
        return item

    async def process_chapter(self, chapter: Chapter) -> Chapter:
        sub_items = await self.process_sub_items(chapter.sub_items)
        if chapter.is_draft:
            return dataclasses.replace(chapter, sub_items=sub_items)

        extractor = BlockExtractor(
            self.renderer.info_string,
            renderer_name=self.renderer_name,
            document_root=self.document_root,
            chapter_name=chapter.name,
            chapter_path=PurePath(chapter.path),
            content=chapter.content,
        )
        segments = extractor.extract(parse_events(chapter.content))
        if not any(isinstance(segment, Block) for segment in segments):
            return dataclasses.replace(chapter, sub_items=sub_items)

        rendered = await gather_in_order([self._render_segment(segment) for segment in segments])
        content = serialize_events(event for events in rendered for event in events)
        return dataclasses.replace(chapter, content=content, sub_items=sub_items)

    async def _render_segment(self, segment: Segment) -> List[Event]:
        if not isinstance(segment, Block):
            return segment
        logger.debug("Rendering %s", segment.location_string())
        outputs = await self.renderer.render_svgs(segment)
        if not outputs:
            logger.warning("%s: renderer produced no output", segment.location_string())
        return await self.composer.compose(segment, outputs)
