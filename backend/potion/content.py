"""Readers for the editor's block documents.

The storage layer never interprets blocks beyond this module: it walks the
tree to pull out inline text for search and renders a lossy Markdown copy
for export.
"""

from __future__ import annotations

from typing import Any, Iterable, Iterator, Optional
from uuid import uuid4

from .config import BLOCK_CONTENT_VERSION
from .schemas import BlockContent

Block = dict[str, Any]


def create_empty_content() -> BlockContent:
    return BlockContent(version=BLOCK_CONTENT_VERSION, blocks=[])


def make_block(
    block_type: str,
    text: str = "",
    *,
    props: Optional[dict[str, Any]] = None,
    children: Optional[list[Block]] = None,
) -> Block:
    block: Block = {
        "id": str(uuid4()),
        "type": block_type,
        "content": [{"type": "text", "text": text}] if text else [],
    }
    if props:
        block["props"] = props
    if children:
        block["children"] = children
    return block


def _inline_runs(block: Block) -> list[dict[str, Any]]:
    runs = block.get("content")
    if not isinstance(runs, list):
        return []
    return [run for run in runs if isinstance(run, dict)]


def _children(block: Block) -> list[Block]:
    children = block.get("children")
    if not isinstance(children, list):
        return []
    return [child for child in children if isinstance(child, dict)]


def iter_text_runs(blocks: Iterable[Block]) -> Iterator[str]:
    """Yield every inline text run, depth-first, block before its children."""
    for block in blocks:
        if not isinstance(block, dict):
            continue
        for run in _inline_runs(block):
            text = run.get("text")
            if isinstance(text, str):
                yield text
        yield from iter_text_runs(_children(block))


def extract_text(content: Optional[BlockContent]) -> str:
    if content is None:
        return ""
    return " ".join(iter_text_runs(content.blocks))


def _inline_markdown(block: Block) -> str:
    parts: list[str] = []
    for run in _inline_runs(block):
        text = str(run.get("text") or "")
        if run.get("type") == "link":
            parts.append(f"[{text}]({run.get('href') or ''})")
            continue
        styles = run.get("styles") or {}
        if styles.get("bold"):
            text = f"**{text}**"
        if styles.get("italic"):
            text = f"*{text}*"
        if styles.get("code"):
            text = f"`{text}`"
        if styles.get("strikethrough"):
            text = f"~~{text}~~"
        parts.append(text)
    return "".join(parts)


def _block_markdown(block: Block) -> list[str]:
    text = _inline_markdown(block)
    props = block.get("props") or {}
    block_type = block.get("type")
    lines: list[str] = []

    if block_type == "heading":
        level = min(max(int(props.get("level") or 1), 1), 6)
        lines.extend([f"{'#' * level} {text}", ""])
    elif block_type == "bulletListItem":
        lines.append(f"- {text}")
    elif block_type == "numberedListItem":
        lines.append(f"1. {text}")
    elif block_type == "checkListItem":
        mark = "x" if props.get("checked") else " "
        lines.append(f"- [{mark}] {text}")
    elif block_type == "quote":
        lines.extend([f"> {text}", ""])
    elif block_type == "codeBlock":
        lines.extend([f"```{props.get('language') or ''}", text, "```", ""])
    elif block_type == "divider":
        lines.extend(["---", ""])
    elif block_type == "image":
        lines.extend([f"![{props.get('caption') or ''}]({props.get('url') or ''})", ""])
    elif text:
        lines.extend([text, ""])

    for child in _children(block):
        child_markdown = "\n".join(_block_markdown(child)).strip()
        if child_markdown:
            lines.extend(f"  {line}" if line else "" for line in child_markdown.split("\n"))
    return lines


def blocks_to_markdown(content: Optional[BlockContent]) -> str:
    """Lossy Markdown rendering of a block document."""
    if content is None or not content.blocks:
        return ""
    lines: list[str] = []
    for block in content.blocks:
        if isinstance(block, dict):
            lines.extend(_block_markdown(block))
    return "\n".join(lines).strip()
