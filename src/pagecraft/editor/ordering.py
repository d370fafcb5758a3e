"""Order and list-index maintenance for block arrays.

Everything here is pure: functions take a block sequence and return a new
list, leaving their input untouched. ``renumber`` must run after every
insert, delete or move; positions are always recomputed from scratch.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace

from .blocks_models import Block, BlockType


def renumber(blocks: Sequence[Block]) -> list[Block]:
    """Recompute ``order_index`` and ``list_index`` for a block array.

    Order indexes become ``0..n-1`` by position. Numbered-list blocks then
    receive ``1, 2, 3, ...`` in encounter order; the count runs on across
    any intervening blocks of other types. Every other type has
    ``list_index`` cleared. Toggle-list children are renumbered as their own
    list.

    Args:
        blocks: Blocks in display order.

    Returns:
        New Block objects in the same order.
    """
    result = [
        replace(
            block,
            order_index=position,
            list_index=None,
            children=renumber(block.children) if block.children else [],
        )
        for position, block in enumerate(blocks)
    ]

    counter = 1
    for block in result:
        if block.type == BlockType.NUMBERED_LIST:
            block.list_index = counter
            counter += 1

    return result


def find_index(blocks: Sequence[Block], block_id: str) -> int | None:
    """Get the position of a block by id, or None if absent."""
    for position, block in enumerate(blocks):
        if block.id == block_id:
            return position
    return None


def insert_at(blocks: Sequence[Block], position: int, block: Block) -> list[Block]:
    """Splice a block in at a position (clamped to the array bounds)."""
    position = max(0, min(position, len(blocks)))
    return [*blocks[:position], block, *blocks[position:]]


def move(blocks: Sequence[Block], source: int, target: int) -> list[Block]:
    """Move a block from ``source`` to the target block's position.

    The dragged block is removed first and then reinserted at ``target``,
    so a block dragged downwards lands after the target block.
    """
    result = list(blocks)
    moved = result.pop(source)
    result.insert(target, moved)
    return result


def check_invariants(blocks: Sequence[Block]) -> list[str]:
    """Describe any ordering invariant violations (empty list when sound)."""
    problems = []
    order = [block.order_index for block in blocks]
    if order != list(range(len(blocks))):
        problems.append(f"order indexes not dense: {order}")

    expected = 1
    for block in blocks:
        if block.type == BlockType.NUMBERED_LIST:
            if block.list_index != expected:
                problems.append(
                    f"block {block.id} has list index {block.list_index}, expected {expected}"
                )
            expected += 1
        elif block.list_index is not None:
            problems.append(f"block {block.id} of type {block.type.value} has a list index")

    ids = [block.id for block in blocks]
    if len(set(ids)) != len(ids):
        problems.append("duplicate block ids")

    for block in blocks:
        if block.children:
            problems.extend(check_invariants(block.children))
    return problems
