from __future__ import annotations

from potion.content import blocks_to_markdown, extract_text, iter_text_runs, make_block
from potion.schemas import BlockContent, PageSummary
from potion.tree import build_page_tree, is_descendant, walk_descendants


def _summary(page_id: str, title: str, parent=None) -> PageSummary:
    return PageSummary(
        id=page_id,
        workspace_id="w1",
        parent_page_id=parent,
        title=title,
        created_at="2024-01-01T00:00:00Z",
        updated_at="2024-01-01T00:00:00Z",
    )


def test_text_runs_are_depth_first():
    blocks = [
        {
            "type": "paragraph",
            "content": [{"type": "text", "text": "a"}, {"type": "link", "text": "b", "href": "x"}],
            "children": [{"type": "paragraph", "content": [{"type": "text", "text": "c"}]}],
        },
        {"type": "paragraph", "content": [{"type": "text", "text": "d"}]},
        {"type": "divider", "content": "not a list"},
    ]

    assert list(iter_text_runs(blocks)) == ["a", "b", "c", "d"]
    assert extract_text(BlockContent(blocks=blocks)) == "a b c d"
    assert extract_text(None) == ""


def test_markdown_rendering_covers_block_types():
    content = BlockContent(
        blocks=[
            make_block("heading", "Title", props={"level": 1}),
            {"type": "paragraph", "content": [{"type": "text", "text": "bold", "styles": {"bold": True}}]},
            make_block("bulletListItem", "item", children=[make_block("bulletListItem", "nested")]),
            make_block("codeBlock", "print(1)", props={"language": "python"}),
            make_block("image", props={"url": "http://x/y.png", "caption": "pic"}),
        ]
    )

    assert blocks_to_markdown(content) == "\n".join(
        [
            "# Title",
            "",
            "**bold**",
            "",
            "- item",
            "  - nested",
            "```python",
            "print(1)",
            "```",
            "",
            "![pic](http://x/y.png)",
        ]
    )
    assert blocks_to_markdown(BlockContent()) == ""


def test_build_page_tree_handles_unknown_parents():
    pages = [
        _summary("b", "b"),
        _summary("a", "A"),
        _summary("c", "child", parent="a"),
        _summary("orphan", "Orphan", parent="missing"),
    ]

    tree = build_page_tree(pages)

    assert [node.page.id for node in tree] == ["a", "b", "orphan"]
    assert [node.page.id for node in tree[0].children] == ["c"]


def test_walk_and_descendant_checks_stop_on_cycles(adapter, make_workspace, make_page):
    make_workspace("w1")
    make_page("a", "w1", parent_page_id="c")
    make_page("b", "w1", parent_page_id="a")
    make_page("c", "w1", parent_page_id="b")

    assert sorted(page.id for page in walk_descendants(adapter, "a")) == ["b", "c"]
    assert is_descendant(adapter, "a", "c")
    assert not is_descendant(adapter, "zzz", "c")


def test_build_page_tree_lists_cycle_members_as_roots(caplog):
    pages = [
        _summary("a", "A", parent="b"),
        _summary("b", "B", parent="a"),
        _summary("c", "C", parent="a"),
        _summary("self", "Self", parent="self"),
    ]

    with caplog.at_level("WARNING", logger="potion.tree"):
        tree = build_page_tree(pages)

    assert [node.page.id for node in tree] == ["a", "b", "self"]
    assert [node.page.id for node in tree[0].children] == ["c"]
    assert tree[1].children == []
    assert tree[0].to_dict()["children"][0]["id"] == "c"
    assert "Cycle in page hierarchy" in caplog.text
