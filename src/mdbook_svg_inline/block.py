"""Extracted diagram blocks and the naming rules derived from them."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path, PurePath
from typing import Optional

_HTML_ID_INVALID_RE = re.compile(r"[^A-Za-z0-9_-]")


def normalize_id(content: str) -> str:
    """Lower-case alphanumerics, map whitespace, ``_`` and ``-`` to ``_``, drop the rest."""
    chars = []
    for ch in content:
        if ch.isalnum():
            chars.append(ch.lower() if ch.isascii() else ch)
        elif ch.isspace() or ch in "_-":
            chars.append("_")
    return "".join(chars)


def sanitize_html_id(value: str) -> str:
    return _HTML_ID_INVALID_RE.sub("_", value.replace(".", "-"))


@dataclass(frozen=True)
class Block:
    """One diagram fence pulled out of a chapter."""

    source_code: str
    # line of the first source line, the fence itself sits one line above
    source_line: int
    document_root: Path
    chapter_relative_path: PurePath
    renderer_name: str
    chapter_name: str
    graph_name: Optional[str]
    index: int
    # repeated on every line written back in place of the fence
    container_prefix: str = ""
    opens_item: bool = False

    def uid_for_chapter(self) -> str:
        """Unique across every diagram of every preprocessor in the chapter."""
        return f"{normalize_id(self.renderer_name)}_{self.index}"

    def svg_file_name(self, relative_id: Optional[str] = None) -> str:
        """Unique (and readable) across the whole book."""
        graph_part = f"_{normalize_id(self.graph_name)}" if self.graph_name else ""
        relative_part = f"_{normalize_id(relative_id)}" if relative_id else ""
        return (
            f"{normalize_id(self.chapter_name)}{graph_part}"
            f"_{normalize_id(self.renderer_name)}_{self.index}{relative_part}.generated.svg"
        )

    def chapter_dir(self) -> Path:
        return (Path(self.document_root) / self.chapter_relative_path).parent

    def location_string(self, start: Optional[int] = None, end: Optional[int] = None) -> str:
        start_line = self.source_line + (start or 0)
        end_part = f":{self.source_line + end}" if end is not None else ""
        return f"{self.chapter_relative_path}({start_line}{end_part})"


@dataclass
class BlockBuilder:
    chapter_name: str
    document_root: Path
    chapter_relative_path: PurePath
    renderer_name: str
    graph_name: Optional[str]
    source_line: int
    container_prefix: str = ""
    opens_item: bool = False
    _source_parts: list[str] = field(default_factory=list)

    def append_source_code(self, code: str) -> None:
        self._source_parts.append(code)

    def build(self, index: int) -> Block:
        return Block(
            source_code="".join(self._source_parts),
            source_line=self.source_line,
            document_root=self.document_root,
            chapter_relative_path=self.chapter_relative_path,
            renderer_name=self.renderer_name,
            chapter_name=self.chapter_name,
            graph_name=self.graph_name,
            index=index,
            container_prefix=self.container_prefix,
            opens_item=self.opens_item,
        )
