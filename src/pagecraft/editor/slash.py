"""Slash-command engine.

Typing ``/`` at the start of a block opens the command palette for that
block. While composing, the text after the slash filters the catalog; arrow
keys move a wrapping selection; Enter applies the highlighted command and
Escape closes the palette without touching the block.

The engine only tracks palette state. Block mutation happens in the session
reducer through ``apply_command``.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, replace
from enum import Enum

from .blocks_models import Block, BlockType, MediaMetadata, convert_metadata
from .commands import ALL_CATEGORIES, CommandItem, filter_commands, get_command_catalog

logger = logging.getLogger(__name__)

_COMMAND_TOKEN_RE = re.compile(r"^/\S*\s*")


class SlashMode(str, Enum):
    IDLE = "idle"
    COMPOSING = "composing"


@dataclass(frozen=True)
class SlashState:
    """Snapshot of the palette, emitted to the rendering layer."""

    mode: SlashMode = SlashMode.IDLE
    block_id: str | None = None
    query: str = ""
    category: str = ALL_CATEGORIES
    selected_index: int = 0
    results: tuple[CommandItem, ...] = ()

    @property
    def is_composing(self) -> bool:
        return self.mode == SlashMode.COMPOSING

    @property
    def selected(self) -> CommandItem | None:
        if not self.is_composing or not self.results:
            return None
        return self.results[self.selected_index]


def command_query(content: str) -> str | None:
    """Get the palette filter for block content, or None if not a command."""
    if content == "/" or (content.startswith("/") and len(content) > 1):
        return content[1:]
    return None


def strip_command_token(content: str) -> str:
    """Remove the leading ``/token`` and the whitespace after it."""
    return _COMMAND_TOKEN_RE.sub("", content, count=1)


def apply_command(block: Block, command: CommandItem) -> tuple[Block, int]:
    """Retype a block according to a command.

    Args:
        block: The block whose content starts with the slash token.
        command: The chosen catalog entry.

    Returns:
        The transformed block and the cursor position to focus.
    """
    remainder = strip_command_token(block.content)
    result = command.transform(remainder)
    target = command.target_type

    metadata = convert_metadata(block.metadata, target)
    if target in (BlockType.IMAGE, BlockType.VIDEO):
        metadata = MediaMetadata(
            format=block.metadata.format,
            extra=dict(block.metadata.extra),
            url=result.new_content,
            mode="external",
        )

    updated = replace(block, type=target, content=result.new_content, metadata=metadata)
    return updated, result.cursor_position


class SlashCommandEngine:
    """State machine for one editing session's command palette."""

    def __init__(self, catalog: Sequence[CommandItem] | None = None) -> None:
        self._catalog = list(catalog) if catalog is not None else get_command_catalog()
        self._state = SlashState()

    @property
    def catalog(self) -> list[CommandItem]:
        return list(self._catalog)

    @property
    def state(self) -> SlashState:
        return self._state

    def observe(self, block_id: str, content: str) -> SlashState:
        """Update palette state after a block's content changed."""
        query = command_query(content)

        if query is None:
            if self._state.is_composing and self._state.block_id == block_id:
                logger.debug("Slash palette closed: block %s no longer starts with '/'", block_id)
                self._state = SlashState()
            return self._state

        current = self._state
        if current.is_composing and current.block_id == block_id and current.query == query:
            return current

        category = current.category if current.block_id == block_id else ALL_CATEGORIES
        self._state = SlashState(
            mode=SlashMode.COMPOSING,
            block_id=block_id,
            query=query,
            category=category,
            selected_index=0,
            results=tuple(filter_commands(self._catalog, query, category)),
        )
        return self._state

    def set_category(self, category: str) -> SlashState:
        """Restrict results to a palette category tab."""
        if not self._state.is_composing:
            return self._state
        self._state = replace(
            self._state,
            category=category,
            selected_index=0,
            results=tuple(filter_commands(self._catalog, self._state.query, category)),
        )
        return self._state

    def move_selection(self, delta: int) -> SlashState:
        """Move the highlighted result, wrapping at either end."""
        count = len(self._state.results)
        if not self._state.is_composing or count == 0:
            return self._state
        index = (self._state.selected_index + delta) % count
        self._state = replace(self._state, selected_index=index)
        return self._state

    def select(self) -> tuple[str, CommandItem] | None:
        """Take the highlighted command and return to idle.

        Returns None (and stays composing) when nothing is highlighted.
        """
        command = self._state.selected
        if command is None:
            return None
        block_id = self._state.block_id
        self._state = SlashState()
        assert block_id is not None
        return block_id, command

    def cancel(self) -> SlashState:
        """Close the palette without touching the block."""
        self._state = SlashState()
        return self._state

    def forget(self, block_id: str) -> None:
        """Drop composing state for a block that no longer exists."""
        if self._state.block_id == block_id:
            self._state = SlashState()
