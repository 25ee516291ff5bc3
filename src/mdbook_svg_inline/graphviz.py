"""Graphviz ``dot`` as a block renderer."""
from __future__ import annotations

import asyncio
import contextlib
import logging
import shutil
from typing import List, Optional, Sequence

from .block import Block
from .book import PreprocessorContext
from .config import RendererConfig, positive_number_option, string_list_option
from .output import RenderedOutput
from .preprocessor import SvgPreprocessor
from .renderer import RenderError, SvgRenderer, output_title

logger = logging.getLogger(__name__)

PREPROCESSOR_NAME = "graphviz"
DEFAULT_INFO_STRING_PREFIX = "dot process"
DEFAULT_ARGUMENTS = ["-Tsvg"]
_STDERR_LIMIT = 240


class GraphvizRenderer(SvgRenderer):
    def __init__(
        self,
        config: RendererConfig,
        *,
        arguments: Optional[Sequence[str]] = None,
        timeout: Optional[float] = None,
        executable: str = "dot",
    ) -> None:
        super().__init__(config)
        self.arguments = list(arguments) if arguments is not None else list(DEFAULT_ARGUMENTS)
        self.timeout = timeout
        self.executable = executable

    async def render_svgs(self, block: Block) -> List[RenderedOutput]:
        location = block.location_string()
        dot_path = shutil.which(self.executable)
        if dot_path is None:
            raise RenderError(
                f"{location}: failed to execute Graphviz: {self.executable} was not found on PATH"
            )

        try:
            proc = await asyncio.create_subprocess_exec(
                dot_path,
                *self.arguments,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise RenderError(f"{location}: failed to execute Graphviz: {exc}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(block.source_code.encode("utf-8")), timeout=self.timeout
            )
        except asyncio.TimeoutError as exc:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
            raise RenderError(f"{location}: Graphviz timed out after {self.timeout:g}s") from exc

        if proc.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()
            if len(detail) > _STDERR_LIMIT:
                detail = detail[:_STDERR_LIMIT] + "..."
            raise RenderError(
                f"{location}: Error response from Graphviz: {detail or f'exit code {proc.returncode}'}"
            )

        logger.debug("%s: dot produced %d bytes", location, len(stdout))
        return [
            RenderedOutput(
                relative_id=None,
                title=output_title(block.graph_name),
                content=stdout.decode("utf-8", errors="replace"),
            )
        ]


class GraphvizPreprocessor(SvgPreprocessor):
    name = PREPROCESSOR_NAME
    default_info_string = DEFAULT_INFO_STRING_PREFIX

    def build_renderer(self, context: PreprocessorContext, config: RendererConfig) -> GraphvizRenderer:
        return GraphvizRenderer(
            config,
            arguments=string_list_option(config.options, "arguments", DEFAULT_ARGUMENTS),
            timeout=positive_number_option(config.options, "timeout"),
        )
