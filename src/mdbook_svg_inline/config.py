"""Preprocessor options from the book's ``[preprocessor.<name>]`` table."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

DEFAULT_JS_PATH = Path("js/svg.js")
DEFAULT_CSS_PATH = Path("css/svg.css")


class ConfigError(ValueError):
    """Raised when a preprocessor option has the wrong type or value."""


@dataclass
class RendererConfig:
    info_string: str
    renderer: str = ""
    copy_js: Optional[Path] = None
    copy_css: Optional[Path] = None
    output_to_file: bool = False
    link_to_file: bool = False
    # the raw table, for renderer specific options
    options: Dict[str, Any] = field(default_factory=dict)


def load_renderer_config(
    table: Optional[Mapping[str, Any]], default_info_string: str, renderer: str = ""
) -> RendererConfig:
    table = dict(table or {})
    config = RendererConfig(info_string=default_info_string, renderer=renderer, options=table)

    if "info-string" in table:
        value = table["info-string"]
        if not isinstance(value, str):
            raise ConfigError("info-string option is required to be a string")
        config.info_string = value

    config.copy_js = _asset_path(table, "copy-js", DEFAULT_JS_PATH)
    config.copy_css = _asset_path(table, "copy-css", DEFAULT_CSS_PATH)
    config.output_to_file = _bool_option(table, "output-to-file")
    config.link_to_file = _bool_option(table, "link-to-file")
    return config


def string_list_option(table: Mapping[str, Any], key: str, default: List[str]) -> List[str]:
    if key not in table:
        return list(default)
    value = table[key]
    if not isinstance(value, list):
        raise ConfigError(f"{key} option is required to be an array")
    if not all(isinstance(item, str) for item in value):
        raise ConfigError(f"{key} option is required to contain strings")
    return list(value)


def positive_number_option(table: Mapping[str, Any], key: str) -> Optional[float]:
    if key not in table:
        return None
    value = table[key]
    # bool is an int subclass
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigError(f"{key} option is required to be a positive number")
    return float(value)


def string_option(table: Mapping[str, Any], key: str) -> Optional[str]:
    if key not in table:
        return None
    value = table[key]
    if not isinstance(value, str):
        raise ConfigError(f"{key} option is required to be a string")
    return value


def _bool_option(table: Mapping[str, Any], key: str) -> bool:
    if key not in table:
        return False
    value = table[key]
    if not isinstance(value, bool):
        raise ConfigError(f"{key} option is required to be a boolean")
    return value


def _asset_path(table: Mapping[str, Any], key: str, default: Path) -> Optional[Path]:
    if key not in table:
        return None
    value = table[key]
    if isinstance(value, bool):
        return default if value else None
    if isinstance(value, str):
        return Path(value)
    raise ConfigError(f"{key} option is required to be a boolean or a string")
