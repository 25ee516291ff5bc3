"""Shared driver for the SVG producing mdBook preprocessors."""
from __future__ import annotations

import asyncio
import dataclasses
import logging
from pathlib import Path
from typing import List

from .book import Book, PreprocessorContext, SUPPORTED_MDBOOK_VERSION
from .config import RendererConfig, load_renderer_config
from .output import OutputComposer
from .renderer import SvgRenderer
from .resources import load_svg_css, load_svg_js
from .walker import ChapterTreeWalker

logger = logging.getLogger(__name__)

VERSION = "0.1.0"
FILE_VERSION_HEADER = f"/* mdBook-svg:{VERSION}*/"


class PreprocessorError(Exception):
    """One or more blocks failed; ``causes`` holds every underlying error."""

    def __init__(self, message: str, causes: List[BaseException]) -> None:
        super().__init__(message)
        self.causes = causes


class SvgPreprocessor:
    name = ""
    default_info_string = ""

    def build_renderer(self, context: PreprocessorContext, config: RendererConfig) -> SvgRenderer:
        raise NotImplementedError

    def supports_renderer(self, renderer: str) -> bool:
        # html is the only consumer of inline svg, but mdBook treats "no" as a hard skip
        return True

    def run(self, context: PreprocessorContext, book: Book) -> Book:
        if not context.version_matches():
            logger.warning(
                "The %s preprocessor was built against mdbook %s, but we're being called from version %s",
                self.name,
                SUPPORTED_MDBOOK_VERSION,
                context.mdbook_version or "unknown",
            )
        config = load_renderer_config(
            context.preprocessor_config(self.name), self.default_info_string, context.renderer
        )
        renderer = self.build_renderer(context, config)
        return asyncio.run(self.process_book(context, renderer, book))

    async def process_book(
        self, context: PreprocessorContext, renderer: SvgRenderer, book: Book
    ) -> Book:
        config = renderer.config
        if config.copy_js is not None:
            await write_browser_asset(context.root / config.copy_js, load_svg_js())
        if config.copy_css is not None:
            await write_browser_asset(context.root / config.copy_css, load_svg_css())

        walker = ChapterTreeWalker(
            renderer,
            OutputComposer(output_to_file=config.output_to_file, link_to_file=config.link_to_file),
            renderer_name=self.name,
            document_root=context.source_dir,
        )
        try:
            sections = await walker.process_sub_items(book.sections)
        except ExceptionGroup as group:
            causes = leaf_exceptions(group)
            message = "\n".join(str(cause) or cause.__class__.__name__ for cause in causes)
            raise PreprocessorError(message, causes) from group
        return dataclasses.replace(book, sections=sections)


def leaf_exceptions(group: BaseExceptionGroup) -> List[BaseException]:
    leaves: List[BaseException] = []
    for exc in group.exceptions:
        if isinstance(exc, BaseExceptionGroup):
            leaves.extend(leaf_exceptions(exc))
        else:
            leaves.append(exc)
    return leaves


async def write_browser_asset(location: Path, content: str) -> None:
    if await asyncio.to_thread(_asset_is_current, location):
        logger.debug("File already up to date %s", location)
        return
    logger.info("Creating/Updating %s", location)
    await asyncio.to_thread(_write_asset, location, FILE_VERSION_HEADER + content)


def _asset_is_current(location: Path) -> bool:
    try:
        with location.open("r", encoding="utf-8") as fh:
            return fh.read(len(FILE_VERSION_HEADER)) == FILE_VERSION_HEADER
    except FileNotFoundError:
        return False


def _write_asset(location: Path, content: str) -> None:
    location.parent.mkdir(parents=True, exist_ok=True)
    location.write_text(content, encoding="utf-8")
