"""Command-line entry points: mdBook runs these as preprocessor commands."""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import traceback
from dataclasses import dataclass
from typing import Iterable, Optional

from .book import ProtocolError, dump_book, parse_input
from .config import ConfigError
from .d2 import D2Preprocessor
from .graphviz import GraphvizPreprocessor
from .preprocessor import PreprocessorError, SvgPreprocessor
from .renderer import RenderError

logger = logging.getLogger(__name__)

DEBUG_ENV = "MDBOOK_SVG_DEBUG"
LOG_ENV = "MDBOOK_SVG_LOG"
LOG_FORMAT = "%(asctime)s [%(levelname)s] (%(name)s): %(message)s"


@dataclass
class CliError(Exception):
    code: str
    message: str
    hint: Optional[str] = None
    exit_code: int = 1
    file: Optional[str] = None
    retryable: bool = True


class UsageError(Exception):
    pass


class FriendlyArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # pragma: no cover - argparse callback
        raise UsageError(message)


def _build_parser(prog: str, preprocessor: SvgPreprocessor) -> argparse.ArgumentParser:
    parser = FriendlyArgumentParser(
        prog=prog,
        description=(
            f"mdBook preprocessor that replaces `{preprocessor.default_info_string}` "
            "code blocks with rendered SVG. Reads [context, book] JSON on stdin."
        ),
    )
    parser.add_argument("--error-format", choices=["text", "json"], default="text")
    parser.add_argument("--debug", action="store_true")

    subparsers = parser.add_subparsers(dest="command")
    supports_parser = subparsers.add_parser(
        "supports", help="Check whether a renderer is supported by this preprocessor"
    )
    supports_parser.add_argument("renderer", help="mdBook renderer name, e.g. html")
    return parser


def configure_logging(*, debug: bool) -> None:
    if debug:
        level = logging.DEBUG
    else:
        level = logging.getLevelName(os.getenv(LOG_ENV, "INFO").upper())
        if not isinstance(level, int):
            level = logging.INFO
    # stdout carries the book JSON back to mdBook
    logging.basicConfig(level=level, stream=sys.stderr, format=LOG_FORMAT, force=True)


def _handle_supports(preprocessor: SvgPreprocessor, args: argparse.Namespace) -> int:
    supported = preprocessor.supports_renderer(args.renderer)
    logger.debug("%s supports %s: %s", preprocessor.name, args.renderer, supported)
    return 0 if supported else 1


def _handle_preprocess(preprocessor: SvgPreprocessor) -> int:
    data = sys.stdin.read()
    if not data.strip():
        raise CliError(
            "E_PROTOCOL",
            "stdin was empty",
            hint="mdBook pipes a [context, book] JSON array into stdin.",
            exit_code=2,
        )
    context, book = parse_input(data)
    processed = preprocessor.run(context, book)
    sys.stdout.write(dump_book(processed))
    return 0


def _error_from_exception(exc: Exception) -> CliError:
    if isinstance(exc, CliError):
        return exc
    if isinstance(exc, ProtocolError):
        return CliError(
            "E_PROTOCOL",
            str(exc),
            hint="Run this command through mdBook, or pipe a [context, book] JSON array.",
            exit_code=2,
            retryable=False,
        )
    if isinstance(exc, ConfigError):
        return CliError(
            "E_CONFIG",
            str(exc),
            hint="Check the [preprocessor] table in book.toml.",
            exit_code=3,
        )
    if isinstance(exc, PreprocessorError):
        if all(isinstance(cause, RenderError) for cause in exc.causes):
            return _error_from_exception(RenderError(str(exc)))
        for cause in exc.causes:
            if isinstance(cause, OSError):
                return _error_from_exception(cause)
        return CliError(
            "E_INTERNAL",
            str(exc),
            hint="Re-run with --debug to see traceback.",
            exit_code=1,
            retryable=False,
        )
    if isinstance(exc, RenderError):
        return CliError(
            "E_RENDER",
            str(exc),
            hint="Fix the diagram source at the reported location.",
            exit_code=4,
        )
    if isinstance(exc, OSError):
        return CliError(
            "E_IO_WRITE",
            f"failed to write output file: {exc.filename}" if exc.filename else str(exc),
            hint=exc.strerror or str(exc),
            exit_code=4,
            file=str(exc.filename) if exc.filename else None,
        )
    return CliError(
        "E_INTERNAL",
        str(exc) or exc.__class__.__name__,
        hint="Re-run with --debug to see traceback.",
        exit_code=1,
        retryable=False,
    )


def _emit_error(err: CliError, *, error_format: str) -> None:
    if error_format == "json":
        payload = {
            "ok": False,
            "code": err.code,
            "message": err.message,
            "file": err.file,
            "hint": err.hint,
            "retryable": err.retryable,
        }
        sys.stderr.write(json.dumps(payload) + "\n")
        return

    sys.stderr.write(f"error[{err.code}]: {err.message}\n")
    if err.hint:
        sys.stderr.write(f"hint: {err.hint}\n")


def run_preprocessor(
    preprocessor: SvgPreprocessor,
    argv: Optional[Iterable[str]] = None,
    *,
    prog: Optional[str] = None,
) -> int:
    raw_argv = list(argv) if argv is not None else sys.argv[1:]
    parser = _build_parser(prog or f"mdbook-{preprocessor.name}", preprocessor)

    debug_enabled = "--debug" in raw_argv or os.getenv(DEBUG_ENV) == "1"
    error_format = "text"
    if "--error-format" in raw_argv:
        idx = raw_argv.index("--error-format")
        if idx + 1 < len(raw_argv):
            error_format = raw_argv[idx + 1]

    try:
        args = parser.parse_args(raw_argv)
        error_format = args.error_format
        configure_logging(debug=debug_enabled)

        if args.command == "supports":
            return _handle_supports(preprocessor, args)
        return _handle_preprocess(preprocessor)
    except UsageError as exc:
        err = CliError(
            "E_ARGS",
            str(exc),
            hint="Use `supports <renderer>`, or no subcommand to preprocess stdin.",
            exit_code=2,
        )
        _emit_error(err, error_format=error_format)
        return err.exit_code
    except Exception as exc:  # pragma: no cover - exercised in integration tests
        err = _error_from_exception(exc)
        _emit_error(err, error_format=error_format)
        if debug_enabled:
            traceback.print_exc(file=sys.stderr)
        return err.exit_code


def graphviz_main(argv: Optional[Iterable[str]] = None) -> int:
    return run_preprocessor(GraphvizPreprocessor(), argv, prog="mdbook-graphviz")


def d2_main(argv: Optional[Iterable[str]] = None) -> int:
    return run_preprocessor(D2Preprocessor(), argv, prog="mdbook-d2")


if __name__ == "__main__":
    raise SystemExit(graphviz_main())
