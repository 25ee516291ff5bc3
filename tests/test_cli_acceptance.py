from __future__ import annotations

import io
import json
import sys
import tempfile
import unittest
from pathlib import Path
from unittest import mock

TESTS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = TESTS_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from mdbook_svg_inline import cli
from mdbook_svg_inline.graphviz import GraphvizRenderer
from mdbook_svg_inline.output import RenderedOutput
from mdbook_svg_inline.renderer import RenderError

SVG = '<svg xmlns="http://www.w3.org/2000/svg"><g id="graph0"><text>{}</text></g></svg>'


async def _fake_render(self, block):
    return [RenderedOutput(None, block.graph_name or "index", SVG.format(block.source_code.strip()))]


async def _failing_render(self, block):
    raise RenderError(f"{block.location_string()}: Error response from Graphviz: syntax error in line 1")


def _payload(root: str, chapters: list[dict], preprocessor: dict | None = None, version: str = "0.4.40") -> str:
    context = {
        "root": root,
        "config": {"book": {"src": "src"}, "preprocessor": {"graphviz": preprocessor or {}}},
        "renderer": "html",
        "mdbook_version": version,
    }
    book = {"sections": [{"Chapter": chapter} for chapter in chapters], "__non_exhaustive": None}
    return json.dumps([context, book])


def _chapter(content: str, name: str = "Intro", path: str | None = "intro.md") -> dict:
    return {
        "name": name,
        "content": content,
        "number": [1],
        "sub_items": [],
        "path": path,
        "source_path": path,
        "parent_names": [],
    }


class CLIAcceptanceTests(unittest.TestCase):
    def run_cli(self, argv: list[str], stdin_text: str = "", main=cli.graphviz_main) -> tuple[int, str, str]:
        stdout = io.StringIO()
        stderr = io.StringIO()
        stdin = io.StringIO(stdin_text)
        with mock.patch("sys.stdout", stdout), mock.patch("sys.stderr", stderr), mock.patch("sys.stdin", stdin):
            code = main(argv)
        return code, stdout.getvalue(), stderr.getvalue()

    def test_supports_any_renderer(self) -> None:
        for renderer in ("html", "epub", "markdown"):
            code, out, err = self.run_cli(["supports", renderer])
            self.assertEqual(code, 0, err)
            self.assertEqual(out, "")

    def test_supports_requires_renderer(self) -> None:
        code, _out, err = self.run_cli(["supports"])
        self.assertEqual(code, 2)
        self.assertIn("E_ARGS", err)

    def test_unknown_argument(self) -> None:
        code, _out, err = self.run_cli(["--bogus"])
        self.assertEqual(code, 2)
        self.assertIn("error[E_ARGS]", err)
        self.assertIn("hint:", err)

    def test_empty_stdin(self) -> None:
        code, out, err = self.run_cli([], "")
        self.assertEqual(code, 2)
        self.assertEqual(out, "")
        self.assertIn("E_PROTOCOL", err)

    def test_invalid_json_error_format(self) -> None:
        code, _out, err = self.run_cli(["--error-format", "json"], "{not json")
        self.assertEqual(code, 2)
        payload = json.loads(err.strip().splitlines()[-1])
        self.assertFalse(payload["ok"])
        self.assertEqual(payload["code"], "E_PROTOCOL")
        self.assertIn("failed to parse preprocessor input", payload["message"])

    def test_preprocess_replaces_dot_blocks(self) -> None:
        content = "# Intro\n\n```dot process flow\ndigraph\n```\n\nDone.\n"
        with tempfile.TemporaryDirectory() as td:
            with mock.patch.object(GraphvizRenderer, "render_svgs", _fake_render):
                code, out, err = self.run_cli([], _payload(td, [_chapter(content), _chapter("plain\n", "Other", "other.md")]))
        self.assertEqual(code, 0, err)

        book = json.loads(out)
        self.assertIn("__non_exhaustive", book)
        intro = book["sections"][0]["Chapter"]
        self.assertEqual(intro["number"], [1])
        self.assertEqual(intro["source_path"], "intro.md")
        self.assertTrue(intro["content"].startswith("# Intro\n\n\n\n<div class=\"svg-container\">"), intro["content"])
        self.assertIn('id="svg-content-graphviz_0-graph0"', intro["content"])
        self.assertIn("<text>digraph</text>", intro["content"])
        self.assertTrue(intro["content"].endswith("Done.\n"))
        self.assertEqual(book["sections"][1]["Chapter"]["content"], "plain\n")

    def test_draft_chapters_pass_through(self) -> None:
        content = "```dot process\ndigraph\n```\n"
        with tempfile.TemporaryDirectory() as td:
            with mock.patch.object(GraphvizRenderer, "render_svgs", _fake_render):
                code, out, err = self.run_cli([], _payload(td, [_chapter(content, "Draft", None)]))
        self.assertEqual(code, 0, err)
        draft = json.loads(out)["sections"][0]["Chapter"]
        self.assertEqual(draft["content"], content)
        self.assertIsNone(draft["path"])

    def test_output_to_file(self) -> None:
        content = "```dot process flow\ndigraph\n```\n"
        with tempfile.TemporaryDirectory() as td:
            with mock.patch.object(GraphvizRenderer, "render_svgs", _fake_render):
                code, out, err = self.run_cli(
                    [], _payload(td, [_chapter(content)], {"output-to-file": True, "link-to-file": True})
                )
            self.assertEqual(code, 0, err)
            written = Path(td) / "src" / "intro_flow_graphviz_0.generated.svg"
            self.assertTrue(written.exists())
        self.assertIn('<a href="intro_flow_graphviz_0.generated.svg"', json.loads(out)["sections"][0]["Chapter"]["content"])

    def test_render_error_exit_code(self) -> None:
        content = "# Intro\n\n```dot process\ndigraph {\n```\n"
        with tempfile.TemporaryDirectory() as td:
            with mock.patch.object(GraphvizRenderer, "render_svgs", _failing_render):
                code, out, err = self.run_cli([], _payload(td, [_chapter(content)]))
        self.assertEqual(code, 4)
        self.assertEqual(out, "")
        self.assertIn("error[E_RENDER]: intro.md(4): Error response from Graphviz: syntax error", err)

    def test_config_error_exit_code(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            code, _out, err = self.run_cli([], _payload(td, [], {"output-to-file": "yes"}))
        self.assertEqual(code, 3)
        self.assertIn("E_CONFIG", err)
        self.assertIn("output-to-file option is required to be a boolean", err)

    def test_version_mismatch_is_logged_to_stderr(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            code, out, err = self.run_cli([], _payload(td, [_chapter("text\n")], version="0.5.1"))
        self.assertEqual(code, 0, err)
        self.assertIn("0.5.1", err)
        self.assertEqual(json.loads(out)["sections"][0]["Chapter"]["content"], "text\n")

    def test_debug_prints_traceback(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            code, _out, err = self.run_cli(["--debug"], _payload(td, [], {"info-string": 1}))
        self.assertEqual(code, 3)
        self.assertIn("Traceback", err)

    def test_d2_entry_point_reports_missing_library(self) -> None:
        payload = json.dumps(
            [
                {
                    "root": ".",
                    "config": {"preprocessor": {"d2-interactive": {"library": "/nonexistent/libd2.so"}}},
                    "renderer": "html",
                    "mdbook_version": "0.4.40",
                },
                {"sections": []},
            ]
        )
        code, _out, err = self.run_cli([], payload, main=cli.d2_main)
        self.assertEqual(code, 3)
        self.assertIn("failed to load D2 library", err)


if __name__ == "__main__":
    unittest.main()
