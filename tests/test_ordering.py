"""Tests for ordering.py - order and list-index maintenance."""

from __future__ import annotations

from pagecraft.editor.blocks_models import Block, BlockType
from pagecraft.editor.ordering import check_invariants, find_index, insert_at, move, renumber


def _blocks(*types: BlockType) -> list[Block]:
    return [Block(id=f"b{i}", type=t, order_index=99, list_index=7) for i, t in enumerate(types)]


class TestRenumber:
    """Test renumber()."""

    def test_order_index_follows_position(self) -> None:
        result = renumber(_blocks(BlockType.PARAGRAPH, BlockType.QUOTE, BlockType.DIVIDER))

        assert [b.order_index for b in result] == [0, 1, 2]

    def test_list_index_only_on_numbered_blocks(self) -> None:
        result = renumber(_blocks(BlockType.PARAGRAPH, BlockType.NUMBERED_LIST, BlockType.BULLETED_LIST))

        assert [b.list_index for b in result] == [None, 1, None]

    def test_numbered_count_continues_across_other_blocks(self) -> None:
        """Numbering runs on through interruptions rather than restarting."""
        result = renumber(_blocks(
            BlockType.PARAGRAPH,
            BlockType.NUMBERED_LIST,
            BlockType.NUMBERED_LIST,
            BlockType.HEADING_1,
            BlockType.NUMBERED_LIST,
        ))

        numbered = [b.list_index for b in result if b.type == BlockType.NUMBERED_LIST]
        assert numbered == [1, 2, 3]

    def test_is_idempotent(self) -> None:
        once = renumber(_blocks(BlockType.NUMBERED_LIST, BlockType.PARAGRAPH, BlockType.NUMBERED_LIST))
        twice = renumber(once)

        assert [b.to_dict() for b in twice] == [b.to_dict() for b in once]

    def test_does_not_mutate_input(self) -> None:
        blocks = _blocks(BlockType.PARAGRAPH, BlockType.NUMBERED_LIST)
        renumber(blocks)

        assert [b.order_index for b in blocks] == [99, 99]
        assert [b.list_index for b in blocks] == [7, 7]

    def test_children_are_numbered_as_their_own_list(self) -> None:
        toggle = Block(
            id="t",
            type=BlockType.TOGGLE_LIST,
            children=_blocks(BlockType.NUMBERED_LIST, BlockType.NUMBERED_LIST),
        )
        result = renumber([Block(id="n", type=BlockType.NUMBERED_LIST), toggle])

        assert result[0].list_index == 1
        assert [c.order_index for c in result[1].children] == [0, 1]
        assert [c.list_index for c in result[1].children] == [1, 2]

    def test_empty_list(self) -> None:
        assert renumber([]) == []


class TestSplices:
    """Test the splice helpers."""

    def test_find_index(self) -> None:
        blocks = _blocks(BlockType.PARAGRAPH, BlockType.QUOTE)

        assert find_index(blocks, "b1") == 1
        assert find_index(blocks, "missing") is None

    def test_insert_at_clamps(self) -> None:
        blocks = _blocks(BlockType.PARAGRAPH)
        new = Block(id="new", type=BlockType.QUOTE)

        assert [b.id for b in insert_at(blocks, 10, new)] == ["b0", "new"]
        assert [b.id for b in insert_at(blocks, -3, new)] == ["new", "b0"]

    def test_move_down_lands_after_target(self) -> None:
        blocks = _blocks(BlockType.PARAGRAPH, BlockType.PARAGRAPH, BlockType.PARAGRAPH)

        assert [b.id for b in move(blocks, 0, 2)] == ["b1", "b2", "b0"]

    def test_move_up_lands_before_target(self) -> None:
        blocks = _blocks(BlockType.PARAGRAPH, BlockType.PARAGRAPH, BlockType.PARAGRAPH)

        assert [b.id for b in move(blocks, 2, 0)] == ["b2", "b0", "b1"]


class TestCheckInvariants:
    """Test check_invariants()."""

    def test_renumbered_blocks_are_sound(self) -> None:
        blocks = renumber(_blocks(BlockType.NUMBERED_LIST, BlockType.QUOTE, BlockType.NUMBERED_LIST))

        assert check_invariants(blocks) == []

    def test_reports_problems(self) -> None:
        problems = check_invariants(_blocks(BlockType.PARAGRAPH, BlockType.NUMBERED_LIST))

        assert any("not dense" in p for p in problems)
        assert any("has a list index" in p for p in problems)
        assert any("expected 1" in p for p in problems)
