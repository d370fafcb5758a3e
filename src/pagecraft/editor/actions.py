"""Editing actions and the reducer that applies them.

Every change to a document's block array is expressed as an action and
applied by ``reduce``. The reducer is the only place that renumbers, so
order and list indexes can never be skipped by a call site.

Actions address blocks by id. Top-level blocks and toggle-list children are
both reachable; structural operations act within the container that holds
the addressed block.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from copy import deepcopy
from dataclasses import dataclass, field, replace
from typing import Any

from ..config import TABLES
from ..errors import ValidationError
from .blocks_models import (
    FORMAT_FLAGS,
    FORMAT_VALUES,
    Block,
    BlockType,
    CalloutMetadata,
    MediaMetadata,
    TableMetadata,
    TodoMetadata,
    ToggleMetadata,
    convert_metadata,
    new_block_id,
)
from .commands import CommandItem
from .events import FocusRequest
from .legacy_parser import IMAGE_URL_RE, VIDEO_URL_RE
from .ordering import insert_at, move, renumber
from .slash import apply_command

logger = logging.getLogger(__name__)

_HTTP_URL_RE = re.compile(r"^https?://[^\s/$.?#].[^\s]*$", re.IGNORECASE)


# =============================================================================
# Actions
# =============================================================================


@dataclass(frozen=True)
class InsertAfter:
    block_id: str
    block_type: BlockType = BlockType.PARAGRAPH


@dataclass(frozen=True)
class InsertBefore:
    block_id: str
    block_type: BlockType = BlockType.PARAGRAPH


@dataclass(frozen=True)
class Duplicate:
    block_id: str


@dataclass(frozen=True)
class Delete:
    block_id: str


@dataclass(frozen=True)
class Move:
    block_id: str
    target_id: str


@dataclass(frozen=True)
class UpdateContent:
    block_id: str
    content: str


@dataclass(frozen=True)
class ChangeType:
    block_id: str
    new_type: BlockType


@dataclass(frozen=True)
class ApplyCommand:
    block_id: str
    command: CommandItem


@dataclass(frozen=True)
class SetFormat:
    block_id: str
    name: str
    value: Any


@dataclass(frozen=True)
class ToggleChecked:
    block_id: str


@dataclass(frozen=True)
class ToggleCollapsed:
    block_id: str


@dataclass(frozen=True)
class AddChild:
    parent_id: str


@dataclass(frozen=True)
class ResizeTable:
    block_id: str
    rows: int
    columns: int


@dataclass(frozen=True)
class SetCalloutIcon:
    block_id: str
    icon: str


@dataclass(frozen=True)
class AttachMedia:
    block_id: str
    url: str
    mode: str = "external"
    alt: str | None = None
    file_path: str | None = None
    original_filename: str | None = None
    file_size: int | None = None
    mime_type: str | None = None


Action = (
    InsertAfter | InsertBefore | Duplicate | Delete | Move | UpdateContent
    | ChangeType | ApplyCommand | SetFormat | ToggleChecked | ToggleCollapsed
    | AddChild | ResizeTable | SetCalloutIcon | AttachMedia
)

# Actions that change which blocks exist or where they sit
STRUCTURAL_ACTIONS = (InsertAfter, InsertBefore, Duplicate, Delete, Move, AddChild)


@dataclass
class ReduceOutcome:
    """Result of applying one action.

    ``changed`` is False for requests the reducer deliberately ignores
    (deleting a non-empty or sole block, a failed move).
    """

    blocks: list[Block]
    changed: bool = True
    success: bool = True
    focus: FocusRequest | None = None
    created_ids: list[str] = field(default_factory=list)


# =============================================================================
# Reducer
# =============================================================================


def reduce(blocks: Sequence[Block], action: Action) -> ReduceOutcome:
    """Apply an action to a block array.

    Args:
        blocks: The current blocks (left untouched).
        action: The action to apply.

    Returns:
        Outcome holding the renumbered block array.

    Raises:
        ValidationError: If the action addresses an unknown block or carries
            a value the target block cannot accept.
    """
    handler = _HANDLERS.get(type(action))
    if handler is None:
        raise ValidationError(f"Unsupported action: {type(action).__name__}", field="action")

    outcome = handler(list(blocks), action)
    if outcome.changed:
        outcome.blocks = renumber(outcome.blocks)
    else:
        outcome.blocks = list(blocks)
    return outcome


# =============================================================================
# Tree addressing helpers
# =============================================================================


def _find_path(blocks: Sequence[Block], block_id: str) -> list[int] | None:
    """Find the index path to a block (depth-first through children)."""
    for position, block in enumerate(blocks):
        if block.id == block_id:
            return [position]
        if block.children:
            sub = _find_path(block.children, block_id)
            if sub is not None:
                return [position, *sub]
    return None


def _require_path(blocks: Sequence[Block], block_id: str) -> list[int]:
    path = _find_path(blocks, block_id)
    if path is None:
        raise ValidationError("Unknown block", field="block_id", value=block_id)
    return path


def _get(blocks: Sequence[Block], path: Sequence[int]) -> Block:
    block = blocks[path[0]]
    for position in path[1:]:
        block = block.children[position]
    return block


def _with_container(
    blocks: Sequence[Block],
    parent_path: Sequence[int],
    fn: Callable[[list[Block]], list[Block]],
) -> list[Block]:
    """Rebuild the tree with one container list replaced by ``fn(container)``."""
    if not parent_path:
        return fn(list(blocks))
    head = parent_path[0]
    parent = blocks[head]
    updated = replace(parent, children=_with_container(parent.children, parent_path[1:], fn))
    return [*blocks[:head], updated, *blocks[head + 1:]]


def _replace_block(
    blocks: Sequence[Block],
    path: Sequence[int],
    replacement: Sequence[Block],
) -> list[Block]:
    """Replace the block at ``path`` with zero or more blocks."""
    position = path[-1]
    return _with_container(
        blocks,
        path[:-1],
        lambda container: [*container[:position], *replacement, *container[position + 1:]],
    )


def _update(blocks: list[Block], block_id: str, fn: Callable[[Block], Block]) -> ReduceOutcome:
    path = _require_path(blocks, block_id)
    updated = fn(_get(blocks, path))
    return ReduceOutcome(blocks=_replace_block(blocks, path, [updated]))


def _retyped(block: Block, updated: Block) -> list[Block]:
    """Blocks to splice in when a block changes type.

    Children of a toggle list that stops being one are hoisted to sit after
    it rather than dropped.
    """
    if block.children and not updated.is_nestable():
        return [replace(updated, children=[]), *block.children]
    return [updated]


def _clone(block: Block) -> Block:
    return replace(
        block,
        id=new_block_id(),
        metadata=deepcopy(block.metadata),
        children=[_clone(c) for c in block.children],
    )


# =============================================================================
# Structural handlers
# =============================================================================


def _insert(blocks: list[Block], block_id: str, block_type: BlockType, offset: int) -> ReduceOutcome:
    path = _require_path(blocks, block_id)
    new_block = Block.create(block_type)
    position = path[-1] + offset
    updated = _with_container(
        blocks, path[:-1], lambda container: insert_at(container, position, new_block)
    )
    return ReduceOutcome(
        blocks=updated,
        focus=FocusRequest(block_id=new_block.id, cursor=0),
        created_ids=[new_block.id],
    )


def _insert_after(blocks: list[Block], action: InsertAfter) -> ReduceOutcome:
    return _insert(blocks, action.block_id, action.block_type, 1)


def _insert_before(blocks: list[Block], action: InsertBefore) -> ReduceOutcome:
    return _insert(blocks, action.block_id, action.block_type, 0)


def _duplicate(blocks: list[Block], action: Duplicate) -> ReduceOutcome:
    path = _require_path(blocks, action.block_id)
    source = _get(blocks, path)
    copy = _clone(source)
    position = path[-1] + 1
    updated = _with_container(
        blocks, path[:-1], lambda container: insert_at(container, position, copy)
    )
    return ReduceOutcome(
        blocks=updated,
        focus=FocusRequest(block_id=copy.id, cursor=len(copy.content)),
        created_ids=[copy.id],
    )


def _delete(blocks: list[Block], action: Delete) -> ReduceOutcome:
    path = _find_path(blocks, action.block_id)
    if path is None:
        return ReduceOutcome(blocks=blocks, changed=False, success=False)

    block = _get(blocks, path)
    top_level = len(path) == 1
    if not block.is_empty():
        logger.debug("Ignoring delete of non-empty block %s", block.id)
        return ReduceOutcome(blocks=blocks, changed=False, success=False)
    if top_level and len(blocks) <= 1:
        logger.debug("Ignoring delete of the only remaining block %s", block.id)
        return ReduceOutcome(blocks=blocks, changed=False, success=False)

    container = blocks if top_level else _get(blocks, path[:-1]).children
    position = path[-1]
    focus = None
    if position > 0:
        previous = container[position - 1]
        focus = FocusRequest(block_id=previous.id, cursor=len(previous.content))
    elif not top_level:
        parent = _get(blocks, path[:-1])
        focus = FocusRequest(block_id=parent.id, cursor=len(parent.content))
    elif len(container) > 1:
        focus = FocusRequest(block_id=container[1].id, cursor=0)

    updated = _with_container(
        blocks,
        path[:-1],
        lambda items: [*items[:position], *block.children, *items[position + 1:]],
    )
    return ReduceOutcome(blocks=updated, focus=focus)


def _move(blocks: list[Block], action: Move) -> ReduceOutcome:
    source = _find_path(blocks, action.block_id)
    target = _find_path(blocks, action.target_id)
    if source is None or target is None or action.block_id == action.target_id:
        return ReduceOutcome(blocks=blocks, changed=False, success=False)
    if source[:-1] != target[:-1]:
        logger.debug("Refusing move of %s across containers", action.block_id)
        return ReduceOutcome(blocks=blocks, changed=False, success=False)

    updated = _with_container(
        blocks, source[:-1], lambda container: move(container, source[-1], target[-1])
    )
    return ReduceOutcome(blocks=updated)


def _add_child(blocks: list[Block], action: AddChild) -> ReduceOutcome:
    path = _require_path(blocks, action.parent_id)
    parent = _get(blocks, path)
    if not parent.is_nestable():
        raise ValidationError(
            f"Block type '{parent.type.value}' does not support children",
            field="parent_id",
            value=action.parent_id,
        )
    child = Block.create(BlockType.PARAGRAPH)
    metadata = parent.metadata
    if isinstance(metadata, ToggleMetadata) and metadata.collapsed:
        metadata = replace(metadata, collapsed=False)
    updated_parent = replace(parent, metadata=metadata, children=[*parent.children, child])
    return ReduceOutcome(
        blocks=_replace_block(blocks, path, [updated_parent]),
        focus=FocusRequest(block_id=child.id, cursor=0),
        created_ids=[child.id],
    )


# =============================================================================
# Content handlers
# =============================================================================


def _update_content(blocks: list[Block], action: UpdateContent) -> ReduceOutcome:
    return _update(blocks, action.block_id, lambda b: replace(b, content=action.content))


def _change_type(blocks: list[Block], action: ChangeType) -> ReduceOutcome:
    path = _require_path(blocks, action.block_id)
    block = _get(blocks, path)
    new_type = BlockType.parse(action.new_type)
    updated = replace(block, type=new_type, metadata=convert_metadata(block.metadata, new_type))
    return ReduceOutcome(blocks=_replace_block(blocks, path, _retyped(block, updated)))


def _apply_command(blocks: list[Block], action: ApplyCommand) -> ReduceOutcome:
    path = _require_path(blocks, action.block_id)
    block = _get(blocks, path)
    updated, cursor = apply_command(block, action.command)
    logger.debug("Applied command %s to block %s", action.command.id, block.id)
    return ReduceOutcome(
        blocks=_replace_block(blocks, path, _retyped(block, updated)),
        focus=FocusRequest(block_id=block.id, cursor=cursor),
    )


def _set_format(blocks: list[Block], action: SetFormat) -> ReduceOutcome:
    if action.name in FORMAT_FLAGS:
        value: Any = bool(action.value)
    elif action.name in FORMAT_VALUES:
        value = str(action.value) if action.value not in (None, "") else None
    else:
        raise ValidationError("Unknown format", field="name", value=action.name)

    def apply(block: Block) -> Block:
        fmt = replace(block.metadata.format, **{action.name: value})
        return replace(block, metadata=replace(block.metadata, format=fmt))

    return _update(blocks, action.block_id, apply)


def _typed_metadata(block: Block, expected: type, action_name: str) -> Any:
    if not isinstance(block.metadata, expected):
        raise ValidationError(
            f"{action_name} does not apply to '{block.type.value}' blocks",
            field="block_id",
            value=block.id,
        )
    return block.metadata


def _toggle_checked(blocks: list[Block], action: ToggleChecked) -> ReduceOutcome:
    def apply(block: Block) -> Block:
        metadata = _typed_metadata(block, TodoMetadata, "toggle_checked")
        return replace(block, metadata=replace(metadata, checked=not metadata.checked))

    return _update(blocks, action.block_id, apply)


def _toggle_collapsed(blocks: list[Block], action: ToggleCollapsed) -> ReduceOutcome:
    def apply(block: Block) -> Block:
        metadata = _typed_metadata(block, ToggleMetadata, "toggle_collapsed")
        return replace(block, metadata=replace(metadata, collapsed=not metadata.collapsed))

    return _update(blocks, action.block_id, apply)


def _resize_table(blocks: list[Block], action: ResizeTable) -> ReduceOutcome:
    rows = max(TABLES.MIN_ROWS, action.rows)
    columns = max(TABLES.MIN_COLUMNS, action.columns)

    def apply(block: Block) -> Block:
        metadata = _typed_metadata(block, TableMetadata, "resize_table")
        cells = metadata.cells
        if cells is not None:
            cells = [
                [*(row[:columns]), *([""] * (columns - len(row[:columns])))]
                for row in cells[:rows]
            ]
            cells.extend([""] * columns for _ in range(rows - len(cells)))
        return replace(block, metadata=replace(metadata, rows=rows, columns=columns, cells=cells))

    return _update(blocks, action.block_id, apply)


def _set_callout_icon(blocks: list[Block], action: SetCalloutIcon) -> ReduceOutcome:
    def apply(block: Block) -> Block:
        metadata = _typed_metadata(block, CalloutMetadata, "set_callout_icon")
        return replace(block, metadata=replace(metadata, icon=action.icon))

    return _update(blocks, action.block_id, apply)


def validate_media_url(block_type: BlockType, url: str) -> None:
    """Check an external media URL against the pattern for its block type.

    Raises:
        ValidationError: If the URL does not fit the block type.
    """
    if block_type == BlockType.IMAGE:
        pattern, kind = IMAGE_URL_RE, "image"
    elif block_type == BlockType.VIDEO:
        pattern, kind = VIDEO_URL_RE, "video"
    else:
        pattern, kind = _HTTP_URL_RE, "link"
    if not pattern.match(url.strip()):
        raise ValidationError(f"Please enter a valid {kind} URL", field="url", value=url)


def _attach_media(blocks: list[Block], action: AttachMedia) -> ReduceOutcome:
    if action.mode not in ("upload", "external"):
        raise ValidationError("Unknown media mode", field="mode", value=action.mode)

    def apply(block: Block) -> Block:
        metadata = _typed_metadata(block, MediaMetadata, "attach_media")
        if action.mode == "external":
            validate_media_url(block.type, action.url)
        return replace(
            block,
            metadata=replace(
                metadata,
                url=action.url.strip(),
                mode=action.mode,
                alt=action.alt,
                file_path=action.file_path,
                original_filename=action.original_filename,
                file_size=action.file_size,
                mime_type=action.mime_type,
            ),
        )

    return _update(blocks, action.block_id, apply)


_HANDLERS: dict[type, Callable[[list[Block], Any], ReduceOutcome]] = {
    InsertAfter: _insert_after,
    InsertBefore: _insert_before,
    Duplicate: _duplicate,
    Delete: _delete,
    Move: _move,
    AddChild: _add_child,
    UpdateContent: _update_content,
    ChangeType: _change_type,
    ApplyCommand: _apply_command,
    SetFormat: _set_format,
    ToggleChecked: _toggle_checked,
    ToggleCollapsed: _toggle_collapsed,
    ResizeTable: _resize_table,
    SetCalloutIcon: _set_callout_icon,
    AttachMedia: _attach_media,
}
