from __future__ import annotations

import asyncio
import sys
import unittest
from pathlib import Path
from typing import Dict, List

from markdown_it import MarkdownIt

TESTS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = TESTS_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from mdbook_svg_inline.block import Block
from mdbook_svg_inline.book import Chapter
from mdbook_svg_inline.config import RendererConfig
from mdbook_svg_inline.output import OutputComposer, RenderedOutput
from mdbook_svg_inline.preprocessor import leaf_exceptions
from mdbook_svg_inline.renderer import RenderError, SvgRenderer
from mdbook_svg_inline.walker import ChapterTreeWalker, gather_in_order


class RecordingRenderer(SvgRenderer):
    def __init__(self, delays: Dict[str, float] | None = None, failing: tuple[str, ...] = ()) -> None:
        super().__init__(RendererConfig(info_string="dot process"))
        self.delays = delays or {}
        self.failing = failing
        self.started: List[str] = []
        self.finished: List[str] = []
        self.active = 0
        self.max_active = 0

    async def render_svgs(self, block: Block) -> List[RenderedOutput]:
        name = block.graph_name or ""
        self.started.append(name)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delays.get(name, 0))
            if name in self.failing:
                raise RenderError(f"{block.location_string()}: cannot render {name}")
        finally:
            self.active -= 1
        self.finished.append(name)
        svg = f'<svg xmlns="http://www.w3.org/2000/svg"><text>{name}</text></svg>'
        return [RenderedOutput(None, name, svg)]


def make_walker(renderer: SvgRenderer) -> ChapterTreeWalker:
    return ChapterTreeWalker(
        renderer, OutputComposer(), renderer_name="graphviz", document_root=Path("/book/src")
    )


def chapter_with(*names: str, path: str | None = "chapter.md", sub_items=None) -> Chapter:
    parts = ["# Title\n\n"]
    for name in names:
        parts.append(f"```dot process {name}\ndigraph {{ {name} }}\n```\n\nAfter {name}\n\n")
    return Chapter(name="Chapter", content="".join(parts), path=path, sub_items=sub_items or [])


class GatherInOrderTests(unittest.IsolatedAsyncioTestCase):
    async def test_results_keep_input_order(self) -> None:
        async def value(result: int, delay: float) -> int:
            await asyncio.sleep(delay)
            return result

        self.assertEqual(await gather_in_order([value(1, 0.03), value(2, 0), value(3, 0.01)]), [1, 2, 3])
        self.assertEqual(await gather_in_order([]), [])


class ChapterTreeWalkerTests(unittest.IsolatedAsyncioTestCase):
    async def test_blocks_render_concurrently_and_keep_document_order(self) -> None:
        renderer = RecordingRenderer(delays={"a": 0.05, "b": 0.0, "c": 0.02})
        chapter = await make_walker(renderer).process_chapter(chapter_with("a", "b", "c"))

        self.assertEqual(renderer.max_active, 3)
        self.assertEqual(renderer.finished, ["b", "c", "a"])
        content = chapter.content
        self.assertTrue(content.startswith("# Title\n\n"), content)
        self.assertTrue(content.endswith("After c\n\n"), content)
        positions = [content.index(f"<text>{name}</text>") for name in ("a", "b", "c")]
        self.assertEqual(positions, sorted(positions))
        self.assertLess(content.index("<text>a</text>"), content.index("After a"))
        self.assertNotIn("```", content)
        self.assertIn('id="svg-content-graphviz_2"', content)

    async def test_dot_process_block_is_replaced_by_one_container(self) -> None:
        renderer = RecordingRenderer()
        source = Chapter(name="Chapter", content="```dot process\ndigraph { a -> b }\n```", path="chapter.md")
        content = (await make_walker(renderer).process_chapter(source)).content

        self.assertTrue(
            content.startswith(
                '\n\n<div class="svg-container"><div>'
                '<div id="svg-content-graphviz_0" class="svg-content mdbook-graphviz-output"><svg'
            ),
            content,
        )
        self.assertTrue(content.endswith("</svg></div></div></div>\n\n"), content)
        self.assertEqual(content.count("svg-container"), 1)
        self.assertNotIn("dot process", content)

    async def test_sibling_chapters_keep_order_regardless_of_latency(self) -> None:
        renderer = RecordingRenderer(delays={"c0": 0.03, "c1": 0.0, "c2": 0.01})
        items = [chapter_with(name) for name in ("c0", "c1", "c2")]
        result = await make_walker(renderer).process_sub_items(items)

        self.assertEqual(renderer.finished, ["c1", "c2", "c0"])
        for name, chapter in zip(("c0", "c1", "c2"), result):
            self.assertIn(f"<text>{name}</text>", chapter.content)

    def token_types(self, content: str) -> list[str]:
        return [token.type for token in MarkdownIt("commonmark").parse(content)]

    async def test_block_in_list_item_stays_inside_the_item(self) -> None:
        renderer = RecordingRenderer()
        source = Chapter(
            name="Chapter",
            content="- one\n\n  ```dot process\n  a -> b\n  ```\n- two\n",
            path="chapter.md",
        )
        content = (await make_walker(renderer).process_chapter(source)).content

        self.assertTrue(content.startswith('- one\n\n  \n  \n  <div class="svg-container">'), content)
        self.assertTrue(content.endswith("</div></div></div>\n  \n- two\n"), content)
        types = self.token_types(content)
        self.assertEqual(types.count("bullet_list_open"), 1)
        self.assertEqual(types.count("list_item_open"), 2)
        self.assertLess(types.index("html_block"), types.index("list_item_close"))

    async def test_block_opening_a_list_item_stays_inside_the_item(self) -> None:
        renderer = RecordingRenderer()
        source = Chapter(name="Chapter", content="- ```dot process\n  a -> b\n  ```\n- two\n", path="chapter.md")
        content = (await make_walker(renderer).process_chapter(source)).content

        self.assertTrue(content.startswith('- \n  <div class="svg-container">'), content)
        types = self.token_types(content)
        self.assertEqual(types.count("list_item_open"), 2)
        self.assertLess(types.index("html_block"), types.index("list_item_close"))

    async def test_block_in_block_quote_stays_inside_the_quote(self) -> None:
        renderer = RecordingRenderer()
        source = Chapter(
            name="Chapter",
            content="> quote\n> ```dot process\n> a -> b\n> ```\n> more\n",
            path="chapter.md",
        )
        content = (await make_walker(renderer).process_chapter(source)).content

        self.assertTrue(content.startswith('> quote\n> \n> \n> <div class="svg-container">'), content)
        self.assertTrue(content.endswith("</div></div></div>\n> \n> more\n"), content)
        types = self.token_types(content)
        self.assertEqual(types.count("blockquote_open"), 1)
        self.assertLess(types.index("html_block"), types.index("blockquote_close"))

    async def test_chapter_without_blocks_is_unchanged(self) -> None:
        renderer = RecordingRenderer()
        source = Chapter(name="Plain", content="# Plain\n\n```rust\nfn main() {}\n```\n", path="plain.md")
        chapter = await make_walker(renderer).process_chapter(source)
        self.assertEqual(chapter.content, source.content)
        self.assertEqual(renderer.started, [])

    async def test_draft_chapter_content_is_untouched_but_children_are_processed(self) -> None:
        renderer = RecordingRenderer()
        child = chapter_with("child")
        draft = chapter_with("draft", path=None, sub_items=[child])
        result = await make_walker(renderer).process_chapter(draft)

        self.assertEqual(result.content, draft.content)
        self.assertEqual(renderer.started, ["child"])
        self.assertIn("<text>child</text>", result.sub_items[0].content)

    async def test_sub_items_and_separators(self) -> None:
        renderer = RecordingRenderer(delays={"first": 0.02})
        items = [
            chapter_with("first", sub_items=[chapter_with("nested")]),
            "Separator",
            {"PartTitle": "Part II"},
            chapter_with("second"),
        ]
        result = await make_walker(renderer).process_sub_items(items)

        self.assertEqual(result[1:3], ["Separator", {"PartTitle": "Part II"}])
        self.assertIn("<text>first</text>", result[0].content)
        self.assertIn("<text>nested</text>", result[0].sub_items[0].content)
        self.assertIn("<text>second</text>", result[3].content)
        self.assertEqual(sorted(renderer.finished), ["first", "nested", "second"])

    async def test_first_failure_cancels_remaining_work(self) -> None:
        renderer = RecordingRenderer(delays={"slow": 1.0}, failing=("bad",))
        items = [chapter_with("slow"), chapter_with("ok", "bad")]

        with self.assertRaises(ExceptionGroup) as ctx:
            await make_walker(renderer).process_sub_items(items)

        errors = leaf_exceptions(ctx.exception)
        self.assertEqual(len(errors), 1)
        self.assertIsInstance(errors[0], RenderError)
        self.assertIn("chapter.md(", str(errors[0]))
        self.assertIn("cannot render bad", str(errors[0]))
        self.assertNotIn("slow", renderer.finished)


if __name__ == "__main__":
    unittest.main()
