"""mdBook preprocessor protocol: the ``[context, book]`` JSON pair."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

SUPPORTED_MDBOOK_VERSION = "0.4"

_CHAPTER_FIELDS = ("name", "content", "path", "sub_items")


class ProtocolError(ValueError):
    """Raised when the preprocessor input is not a valid ``[context, book]`` pair."""


@dataclass
class Chapter:
    name: str
    content: str
    # None for draft chapters
    path: Optional[str] = None
    sub_items: List["BookItem"] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_draft(self) -> bool:
        return self.path is None

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "Chapter":
        if not isinstance(data, dict):
            raise ProtocolError("chapter must be an object")
        return cls(
            name=data.get("name", ""),
            content=data.get("content", ""),
            path=data.get("path"),
            sub_items=[item_from_json(item) for item in data.get("sub_items") or []],
            extra={key: value for key, value in data.items() if key not in _CHAPTER_FIELDS},
        )

    def to_json(self) -> Dict[str, Any]:
        data = dict(self.extra)
        data.update(
            name=self.name,
            content=self.content,
            path=self.path,
            sub_items=[item_to_json(item) for item in self.sub_items],
        )
        return data


# separators and part titles are carried as their raw JSON
BookItem = Union[Chapter, Any]


def item_from_json(data: Any) -> BookItem:
    if isinstance(data, dict) and "Chapter" in data:
        return Chapter.from_json(data["Chapter"])
    return data


def item_to_json(item: BookItem) -> Any:
    if isinstance(item, Chapter):
        return {"Chapter": item.to_json()}
    return item


@dataclass
class Book:
    sections: List[BookItem] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "Book":
        if not isinstance(data, dict):
            raise ProtocolError("book must be an object")
        return cls(
            sections=[item_from_json(item) for item in data.get("sections") or []],
            extra={key: value for key, value in data.items() if key != "sections"},
        )

    def to_json(self) -> Dict[str, Any]:
        data = dict(self.extra)
        data["sections"] = [item_to_json(item) for item in self.sections]
        return data


@dataclass
class PreprocessorContext:
    root: Path
    config: Dict[str, Any] = field(default_factory=dict)
    renderer: str = ""
    mdbook_version: str = ""

    @property
    def source_dir(self) -> Path:
        book_config = self.config.get("book") or {}
        return self.root / book_config.get("src", "src")

    def preprocessor_config(self, name: str) -> Dict[str, Any]:
        preprocessors = self.config.get("preprocessor") or {}
        table = preprocessors.get(name) or {}
        if not isinstance(table, dict):
            raise ProtocolError(f"preprocessor.{name} must be a table")
        return table

    def version_matches(self) -> bool:
        parts = self.mdbook_version.split(".")
        return ".".join(parts[:2]) == SUPPORTED_MDBOOK_VERSION

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "PreprocessorContext":
        if not isinstance(data, dict):
            raise ProtocolError("context must be an object")
        return cls(
            root=Path(data.get("root") or "."),
            config=data.get("config") or {},
            renderer=data.get("renderer") or "",
            mdbook_version=data.get("mdbook_version") or "",
        )


def parse_input(text: str) -> Tuple[PreprocessorContext, Book]:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ProtocolError(f"failed to parse preprocessor input: {exc}") from exc
    if not isinstance(payload, list) or len(payload) != 2:
        raise ProtocolError("preprocessor input must be a [context, book] array")
    context_data, book_data = payload
    return PreprocessorContext.from_json(context_data), Book.from_json(book_data)


def dump_book(book: Book) -> str:
    return json.dumps(book.to_json())
