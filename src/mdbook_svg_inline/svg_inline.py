"""Prepare rendered SVG for inlining into an HTML page."""
from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from typing import Dict, Optional

logger = logging.getLogger(__name__)

SVG_NS = "http://www.w3.org/2000/svg"
XLINK_NS = "http://www.w3.org/1999/xlink"
ET.register_namespace("", SVG_NS)
ET.register_namespace("xlink", XLINK_NS)
XML_SPACE = "{http://www.w3.org/XML/1998/namespace}space"
_TEXT_TAGS = frozenset({"text", "tspan", "textPath"})

_DOCTYPE_RE = re.compile(r"<!DOCTYPE [^>]+>")
_XML_DECL_RE = re.compile(r"<\?xml [^>]+\?>")
_BETWEEN_TAGS_RE = re.compile(r">\s+<")
# a whitespace-only line ends an HTML block in markdown
_BLANK_LINES_RE = re.compile(r"\n\s*\n")


def format_for_inline(svg: str, id_prefix: str) -> str:
    """Prefix every element id with ``id_prefix`` and flatten the markup.

    SVG ids share the HTML document's id space, so two diagrams on the same
    page would otherwise clash. Unparseable input is still inlined, minus the
    id rewrite.
    """
    try:
        return _format_for_inline_advanced(svg, id_prefix)
    except (ET.ParseError, ValueError) as exc:
        logger.warning("Error parsing SVG for %s, inlining without id prefix: %s", id_prefix, exc)
        return _format_for_inline_simple(svg)


def _format_for_inline_advanced(svg: str, id_prefix: str) -> str:
    parser = ET.XMLParser(target=ET.TreeBuilder(insert_comments=True))
    root = ET.fromstring(svg, parser=parser)

    mapped_ids: Dict[str, str] = {}
    for node in root.iter():
        old_id = node.get("id")
        if old_id:
            new_id = f"{id_prefix}-{old_id}"
            node.set("id", new_id)
            mapped_ids[old_id] = new_id

    reference_re = _reference_pattern(mapped_ids)
    parents = {child: parent for parent in root.iter() for child in parent}
    preserved = set()
    for node in root.iter():
        parent = parents.get(node)
        inherited = parent is not None and parent in preserved and node.get(XML_SPACE) != "default"
        if _keeps_whitespace(node) or inherited:
            preserved.add(node)

    for node in root.iter():
        if node.tag is ET.Comment:
            node.text = _replace_references(node.text or "", reference_re, mapped_ids)
        else:
            for key, value in node.attrib.items():
                node.set(key, _replace_references(value, reference_re, mapped_ids))
            node.text = _clean_text(node.text, reference_re, mapped_ids, keep=node in preserved)
        parent = parents.get(node)
        node.tail = _clean_text(
            node.tail, reference_re, mapped_ids, keep=parent is not None and parent in preserved
        )

    output = ET.tostring(root, encoding="unicode")
    return _BLANK_LINES_RE.sub("\n", output).strip()


def _format_for_inline_simple(svg: str) -> str:
    output = _DOCTYPE_RE.sub("", svg, count=1)
    output = _XML_DECL_RE.sub("", output, count=1)
    # newlines between tags break commonmark's view of the html block
    output = _BETWEEN_TAGS_RE.sub("><", output)
    output = _BLANK_LINES_RE.sub("\n", output)
    return output.strip()


def _reference_pattern(mapped_ids: Dict[str, str]) -> Optional[re.Pattern[str]]:
    if not mapped_ids:
        return None
    alternatives = sorted(mapped_ids, key=len, reverse=True)
    # whole ids only: "#a" must not touch "#ab"
    return re.compile(r"#(" + "|".join(re.escape(old) for old in alternatives) + r")(?![\w-])")


def _replace_references(
    value: str, reference_re: Optional[re.Pattern[str]], mapped_ids: Dict[str, str]
) -> str:
    if reference_re is None or "#" not in value:
        return value
    return reference_re.sub(lambda match: "#" + mapped_ids[match.group(1)], value)


def _keeps_whitespace(node: ET.Element) -> bool:
    if not isinstance(node.tag, str):
        return False
    # spaces between tspans are rendered glyph spacing
    return node.tag.rsplit("}", 1)[-1] in _TEXT_TAGS or node.get(XML_SPACE) == "preserve"


def _clean_text(
    value: Optional[str],
    reference_re: Optional[re.Pattern[str]],
    mapped_ids: Dict[str, str],
    *,
    keep: bool = False,
) -> Optional[str]:
    if value is None:
        return None
    if not value.strip() and not keep:
        return None
    return _replace_references(value, reference_re, mapped_ids)

