"""EditorSession - owns one document's blocks for the lifetime of an edit.

All mutation goes through ``dispatch``, which runs the reducer, emits
``block_list_changed`` and schedules a content save. The slash-command
engine is fed from ``update_content`` so the palette opens and closes as the
user types.

Usage:
    session = await open_session(store, document_id)
    session.events.add_observer(EditorEvent.DIRTY_STATE_CHANGED, on_dirty)
    new_id = session.insert_after(session.blocks[0].id)
    session.update_content(new_id, "/quote")
    session.slash_confirm()
    await session.aclose()
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import replace
from typing import Any

from ..config import AUTOSAVE
from ..errors import ValidationError
from ..store.base import DocumentStore, StoredDocument
from .actions import (
    Action,
    AddChild,
    ApplyCommand,
    AttachMedia,
    ChangeType,
    Delete,
    Duplicate,
    InsertAfter,
    InsertBefore,
    Move,
    ReduceOutcome,
    ResizeTable,
    SetCalloutIcon,
    SetFormat,
    ToggleChecked,
    ToggleCollapsed,
    UpdateContent,
    reduce,
)
from .autosave import AutosaveOrchestrator, SaveChannel
from .blocks_models import Block, BlockType, new_block_id, new_document_blocks
from .commands import CommandItem
from .events import DirtyState, EditorEvent, EditorEvents
from .legacy_parser import parse_legacy_text
from .ordering import renumber
from .slash import SlashCommandEngine, SlashState

logger = logging.getLogger(__name__)


def load_blocks(stored: StoredDocument) -> list[Block]:
    """Build the in-memory block array for a loaded document.

    Structured content wins when present; malformed entries are repaired
    rather than rejected. Otherwise the legacy text is parsed, once.
    """
    if stored.has_structured:
        blocks = [Block.from_dict(entry) for entry in stored.structured_blocks or []]
        blocks = _unique_ids(blocks, set())
        logger.debug("Loaded %d structured blocks for document %s", len(blocks), stored.id)
    else:
        blocks = parse_legacy_text(stored.legacy_text)
        logger.info(
            "Parsed legacy text for document %s into %d blocks", stored.id, len(blocks)
        )
    if not blocks:
        blocks = new_document_blocks()
    return renumber(blocks)


def _unique_ids(blocks: Sequence[Block], seen: set[str]) -> list[Block]:
    """Give a fresh id to every block whose id already appeared, children included."""
    result = []
    for block in blocks:
        block_id = block.id
        if block_id in seen:
            block_id = new_block_id()
            logger.warning("Replaced duplicate block id %s with %s", block.id, block_id)
        seen.add(block_id)
        result.append(
            replace(block, id=block_id, children=_unique_ids(block.children, seen))
        )
    return result


def _block_type(value: BlockType | str) -> BlockType:
    try:
        return BlockType.parse(value)
    except ValueError as e:
        raise ValidationError(
            f"Unknown block type: {value}", field="block_type", value=value
        ) from e


class EditorSession:
    """In-memory editing state for one document."""

    def __init__(
        self,
        blocks: Sequence[Block] | None = None,
        *,
        title: str = "",
        document_id: str | None = None,
        events: EditorEvents | None = None,
        catalog: Sequence[CommandItem] | None = None,
    ) -> None:
        self.document_id = document_id
        self.events = events or EditorEvents()
        self._blocks = renumber(blocks) if blocks else new_document_blocks()
        self._title = title
        self._slash = SlashCommandEngine(catalog)
        self._autosave: AutosaveOrchestrator | None = None

    # -------------------------------------------------------------------------
    # Persistence wiring
    # -------------------------------------------------------------------------

    def bind_store(
        self,
        store: DocumentStore,
        document_id: str,
        *,
        title_delay: float = AUTOSAVE.TITLE_DEBOUNCE_SECONDS,
        content_delay: float = AUTOSAVE.CONTENT_DEBOUNCE_SECONDS,
    ) -> AutosaveOrchestrator:
        """Persist this session's edits to ``store`` through an autosave."""
        self.document_id = document_id
        self._autosave = AutosaveOrchestrator(
            store,
            document_id,
            get_title=lambda: self._title,
            get_blocks=lambda: list(self._blocks),
            events=self.events,
            title_delay=title_delay,
            content_delay=content_delay,
        )
        return self._autosave

    @property
    def autosave(self) -> AutosaveOrchestrator | None:
        return self._autosave

    @property
    def dirty_state(self) -> DirtyState:
        if self._autosave is None:
            return DirtyState()
        return self._autosave.dirty_state

    @property
    def is_saving(self) -> bool:
        return self._autosave is not None and self._autosave.is_saving

    async def save_now(self) -> bool:
        """Manual save of title and blocks together.

        Raises:
            AccessDeniedError: If the store refuses the write.
        """
        if self._autosave is None:
            return True
        return await self._autosave.save_now()

    async def aclose(self, *, flush: bool = True) -> None:
        if self._autosave is not None:
            await self._autosave.aclose(flush=flush)

    def _schedule(self, channel: SaveChannel) -> None:
        if self._autosave is not None:
            self._autosave.mark_dirty(channel)

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def blocks(self) -> list[Block]:
        return list(self._blocks)

    @property
    def title(self) -> str:
        return self._title

    @property
    def slash_state(self) -> SlashState:
        return self._slash.state

    def get_block(self, block_id: str) -> Block | None:
        """Find a block by id, searching toggle-list children too."""
        stack = list(self._blocks)
        while stack:
            block = stack.pop(0)
            if block.id == block_id:
                return block
            stack.extend(block.children)
        return None

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    def dispatch(self, action: Action) -> ReduceOutcome:
        """Apply an action, notify observers and schedule a content save."""
        outcome = reduce(self._blocks, action)
        if not outcome.changed:
            return outcome

        self._blocks = outcome.blocks
        self.events.emit(EditorEvent.BLOCK_LIST_CHANGED, self.blocks)
        if outcome.focus is not None:
            self.events.emit(EditorEvent.FOCUS_REQUESTED, outcome.focus)
        self._schedule(SaveChannel.CONTENT)
        return outcome

    def set_title(self, title: str) -> None:
        if title == self._title:
            return
        self._title = title
        self._schedule(SaveChannel.TITLE)

    def update_content(self, block_id: str, content: str) -> None:
        """Replace a block's text and update the slash palette."""
        self.dispatch(UpdateContent(block_id, content))
        before = self._slash.state
        after = self._slash.observe(block_id, content)
        if after != before:
            self.events.emit(EditorEvent.SLASH_STATE_CHANGED, after)

    def insert_after(self, block_id: str, block_type: BlockType = BlockType.PARAGRAPH) -> str:
        """Insert an empty block after ``block_id``; returns the new id."""
        return self.dispatch(InsertAfter(block_id, _block_type(block_type))).created_ids[0]

    def insert_before(self, block_id: str, block_type: BlockType = BlockType.PARAGRAPH) -> str:
        return self.dispatch(InsertBefore(block_id, _block_type(block_type))).created_ids[0]

    def duplicate(self, block_id: str) -> str:
        return self.dispatch(Duplicate(block_id)).created_ids[0]

    def delete(self, block_id: str) -> bool:
        """Delete an empty block. Returns False when the request is ignored."""
        outcome = self.dispatch(Delete(block_id))
        if outcome.success:
            self._forget_slash(block_id)
        return outcome.success

    def move(self, block_id: str, target_id: str) -> bool:
        """Drag ``block_id`` to the position of ``target_id``."""
        outcome = self.dispatch(Move(block_id, target_id))
        if not outcome.success:
            logger.info("Move of block %s onto %s failed", block_id, target_id)
        return outcome.success

    def change_type(self, block_id: str, new_type: BlockType | str) -> None:
        self.dispatch(ChangeType(block_id, _block_type(new_type)))

    def set_format(self, block_id: str, name: str, value: Any) -> None:
        self.dispatch(SetFormat(block_id, name, value))

    def toggle_checked(self, block_id: str) -> None:
        self.dispatch(ToggleChecked(block_id))

    def toggle_collapsed(self, block_id: str) -> None:
        self.dispatch(ToggleCollapsed(block_id))

    def add_child(self, parent_id: str) -> str:
        return self.dispatch(AddChild(parent_id)).created_ids[0]

    def resize_table(self, block_id: str, rows: int, columns: int) -> None:
        self.dispatch(ResizeTable(block_id, rows, columns))

    def set_callout_icon(self, block_id: str, icon: str) -> None:
        self.dispatch(SetCalloutIcon(block_id, icon))

    def attach_media(self, block_id: str, url: str, **details: Any) -> None:
        self.dispatch(AttachMedia(block_id, url, **details))

    # -------------------------------------------------------------------------
    # Slash palette
    # -------------------------------------------------------------------------

    def _emit_slash(self, state: SlashState) -> SlashState:
        self.events.emit(EditorEvent.SLASH_STATE_CHANGED, state)
        return state

    def _forget_slash(self, block_id: str) -> None:
        before = self._slash.state
        self._slash.forget(block_id)
        if self._slash.state != before:
            self._emit_slash(self._slash.state)

    def slash_move(self, delta: int) -> SlashState:
        return self._emit_slash(self._slash.move_selection(delta))

    def slash_set_category(self, category: str) -> SlashState:
        return self._emit_slash(self._slash.set_category(category))

    def slash_cancel(self) -> SlashState:
        return self._emit_slash(self._slash.cancel())

    def slash_confirm(self) -> bool:
        """Apply the highlighted command to the composing block.

        Returns False (nothing changes) when no command is highlighted.
        """
        selection = self._slash.select()
        if selection is None:
            return False
        block_id, command = selection
        self._emit_slash(self._slash.state)
        if self.get_block(block_id) is None:
            logger.warning("Slash command %s targets missing block %s", command.id, block_id)
            return False
        self.dispatch(ApplyCommand(block_id, command))
        return True


async def open_session(
    store: DocumentStore,
    document_id: str,
    *,
    events: EditorEvents | None = None,
    catalog: Sequence[CommandItem] | None = None,
    title_delay: float = AUTOSAVE.TITLE_DEBOUNCE_SECONDS,
    content_delay: float = AUTOSAVE.CONTENT_DEBOUNCE_SECONDS,
) -> EditorSession:
    """Load a document and start an editing session with autosave.

    Raises:
        NotFoundError: If the document does not exist.
        AccessDeniedError: If the store refuses the read.
    """
    stored = await store.load(document_id)
    session = EditorSession(
        load_blocks(stored),
        title=stored.title,
        document_id=document_id,
        events=events,
        catalog=catalog,
    )
    session.bind_store(store, document_id, title_delay=title_delay, content_delay=content_delay)
    return session
