"""D2 diagrams, rendered by the compiled D2 library loaded through ctypes.

The library exports ``Render(GoString) -> char*``. The returned string is
either a JSON result tree or ``err:`` followed by a JSON error object. A
parse error carries ranges of the form ``path,line:col:byte-line:col:byte``
with 0-indexed lines.
"""
from __future__ import annotations

import asyncio
import ctypes
import json
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .block import Block
from .book import PreprocessorContext
from .config import ConfigError, RendererConfig, string_option
from .output import LAYERS, SCENARIOS, STEPS, GraphPath, RenderedOutput
from .preprocessor import SvgPreprocessor
from .renderer import Diagnostic, Position, RenderError, SourceRange, SvgRenderer, output_title

logger = logging.getLogger(__name__)

PREPROCESSOR_NAME = "d2-interactive"
DEFAULT_INFO_STRING_PREFIX = "d2"
DEFAULT_LIBRARY = "libd2.so"
LIBRARY_ENV = "MDBOOK_D2_LIBRARY"
ERROR_PREFIX = "err:"

_RANGE_RE = re.compile(r"^([^,]*),([\d:]+)-([\d:]+)$")
_POSITION_RE = re.compile(r"^(\d+):(\d+):(\d+)$")


class D2Error(Exception):
    pass


class D2ParseError(D2Error):
    def __init__(self, diagnostics: List[Diagnostic]) -> None:
        super().__init__("Parse Error")
        self.diagnostics = diagnostics


class _GoString(ctypes.Structure):
    _fields_ = [("p", ctypes.c_char_p), ("n", ctypes.c_longlong)]


class D2Library:
    def __init__(self, path: str) -> None:
        self.path = path
        try:
            self._lib = ctypes.CDLL(path)
            render = self._lib.Render
        except (OSError, AttributeError) as exc:
            raise ConfigError(f"failed to load D2 library {path}: {exc}") from exc
        render.argtypes = [_GoString]
        render.restype = ctypes.c_char_p
        self._render = render

    def render(self, content: str) -> str:
        data = content.encode("utf-8")
        raw = self._render(_GoString(data, len(data)))
        if raw is None:
            raise D2Error("D2 library returned no result")
        return raw.decode("utf-8")


@dataclass
class D2RenderResult:
    name: str = ""
    content: str = ""
    label: str = ""
    layers: List["D2RenderResult"] = field(default_factory=list)
    scenarios: List["D2RenderResult"] = field(default_factory=list)
    steps: List["D2RenderResult"] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "D2RenderResult":
        root = data.get("root") or {}
        label = ((root.get("attributes") or {}).get("label") or {}).get("value") or ""
        return cls(
            name=data.get("name") or "",
            content=data.get("content") or "",
            label=label,
            layers=[cls.from_json(item) for item in data.get("layers") or []],
            scenarios=[cls.from_json(item) for item in data.get("scenarios") or []],
            steps=[cls.from_json(item) for item in data.get("steps") or []],
        )

    def title(self) -> str:
        return output_title(self.label, self.name)


def parse_render_response(raw: str) -> D2RenderResult:
    if raw.startswith(ERROR_PREFIX):
        raise error_from_string(raw[len(ERROR_PREFIX):])
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise D2Error(f"Failed to parse Graph: {exc}") from exc
    if not isinstance(data, dict):
        raise D2Error("Failed to parse Graph: expected an object")
    return D2RenderResult.from_json(data)


def error_from_string(raw: str) -> D2Error:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        return D2Error(f"Failed to parse Error {exc}: {raw}")
    if not isinstance(data, dict):
        return D2Error(f"Failed to parse Error: {raw}")

    parse_error = data.get("parse_error")
    if parse_error:
        if not isinstance(parse_error, dict):
            return D2Error(f"Failed to parse Error: {raw}")
        errors = parse_error.get("errs") or parse_error.get("errors") or []
        if not isinstance(errors, list):
            return D2Error(f"Failed to parse Error: {raw}")
        diagnostics = []
        for item in errors:
            if not isinstance(item, dict) or not isinstance(item.get("range", ""), str):
                return D2Error(f"Failed to parse Error: {raw}")
            try:
                source_range = parse_range(item.get("range", ""))
            except D2Error as exc:
                return D2Error(f"Failed to parse Error {exc}: {raw}")
            message = item.get("errmsg") or item.get("message") or ""
            diagnostics.append(Diagnostic(range=source_range, message=str(message)))
        return D2ParseError(diagnostics)
    return D2Error(data.get("message") or raw)


def parse_range(raw: str) -> SourceRange:
    match = _RANGE_RE.match(raw)
    if match is None:
        raise D2Error(f"Invalid Range String: {raw!r}")
    path, start, end = match.groups()
    return SourceRange(path=path, start=_parse_position(start), end=_parse_position(end))


def _parse_position(raw: str) -> Position:
    match = _POSITION_RE.match(raw)
    if match is None:
        raise D2Error(f"Invalid Position String: {raw!r}")
    line, column, byte = (int(part) for part in match.groups())
    return Position(line=line, column=column, byte=byte)


def flatten_results(
    result: D2RenderResult, path: Optional[GraphPath] = None
) -> List[Tuple[GraphPath, D2RenderResult]]:
    """Every board in the tree, children first, keyed by its path from the root."""
    path = path or GraphPath()
    flattened: List[Tuple[GraphPath, D2RenderResult]] = []
    for kind, children in ((LAYERS, result.layers), (SCENARIOS, result.scenarios), (STEPS, result.steps)):
        for index, child in enumerate(children):
            flattened.extend(flatten_results(child, path.child(kind, index)))
    flattened.append((path, result))
    return flattened


class D2Renderer(SvgRenderer):
    def __init__(self, config: RendererConfig, library: D2Library) -> None:
        super().__init__(config)
        self.library = library

    async def render_svgs(self, block: Block) -> List[RenderedOutput]:
        try:
            raw = await asyncio.to_thread(self.library.render, block.source_code)
            result = parse_render_response(raw)
        except D2ParseError as exc:
            raise RenderError.from_diagnostics(block, "D2", exc.diagnostics) from exc
        except D2Error as exc:
            raise RenderError(f"{block.location_string()}: D2 {exc}") from exc

        diagrams = sorted(flatten_results(result), key=lambda item: item[0].sort_key())
        single = len(diagrams) == 1
        return [
            RenderedOutput(
                relative_id=None if single else path,
                title=diagram.title(),
                content=diagram.content,
            )
            for path, diagram in diagrams
        ]


class D2Preprocessor(SvgPreprocessor):
    name = PREPROCESSOR_NAME
    default_info_string = DEFAULT_INFO_STRING_PREFIX

    def build_renderer(self, context: PreprocessorContext, config: RendererConfig) -> D2Renderer:
        path = string_option(config.options, "library") or os.environ.get(LIBRARY_ENV) or DEFAULT_LIBRARY
        logger.debug("Loading D2 library from %s", path)
        return D2Renderer(config, D2Library(path))
