"""Public API for mdbook_svg_inline."""
from .block import Block, normalize_id, sanitize_html_id
from .book import Book, Chapter, PreprocessorContext, ProtocolError, dump_book, parse_input
from .config import ConfigError, RendererConfig, load_renderer_config
from .d2 import D2Preprocessor, D2Renderer
from .extractor import BlockExtractor
from .graphviz import GraphvizPreprocessor, GraphvizRenderer
from .output import GraphPath, OutputComposer, RenderedOutput
from .preprocessor import VERSION, PreprocessorError, SvgPreprocessor
from .renderer import Diagnostic, RenderError, SvgRenderer
from .svg_inline import format_for_inline
from .walker import ChapterTreeWalker

__version__ = VERSION

__all__ = [
    "Block",
    "BlockExtractor",
    "Book",
    "Chapter",
    "ChapterTreeWalker",
    "ConfigError",
    "D2Preprocessor",
    "D2Renderer",
    "Diagnostic",
    "GraphPath",
    "GraphvizPreprocessor",
    "GraphvizRenderer",
    "OutputComposer",
    "PreprocessorContext",
    "PreprocessorError",
    "ProtocolError",
    "RenderError",
    "RenderedOutput",
    "RendererConfig",
    "SvgPreprocessor",
    "SvgRenderer",
    "dump_book",
    "format_for_inline",
    "load_renderer_config",
    "normalize_id",
    "parse_input",
    "sanitize_html_id",
]
