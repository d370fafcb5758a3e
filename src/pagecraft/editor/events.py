"""Events emitted by an editing session to the rendering layer."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class EditorEvent(str, Enum):
    BLOCK_LIST_CHANGED = "block_list_changed"
    DIRTY_STATE_CHANGED = "dirty_state_changed"
    SAVING_STATE_CHANGED = "saving_state_changed"
    SAVE_FAILED = "save_failed"
    SAVED = "saved"
    FOCUS_REQUESTED = "focus_requested"
    SLASH_STATE_CHANGED = "slash_state_changed"


@dataclass(frozen=True)
class DirtyState:
    """Which fields hold edits that have not been persisted yet."""

    title: bool = False
    content: bool = False

    @property
    def any(self) -> bool:
        return self.title or self.content


@dataclass(frozen=True)
class FocusRequest:
    """Ask the rendering layer to focus a block at a cursor offset."""

    block_id: str
    cursor: int


class EditorEvents:
    """Observer registry for session events.

    Observer failures are logged and never interrupt the editing operation
    that emitted the event.
    """

    def __init__(self) -> None:
        self._observers: dict[EditorEvent, list[Callable[[Any], None]]] = {
            event: [] for event in EditorEvent
        }

    def add_observer(self, event: EditorEvent, callback: Callable[[Any], None]) -> None:
        """Add observer to be notified of an event."""
        self._observers[event].append(callback)

    def remove_observer(self, event: EditorEvent, callback: Callable[[Any], None]) -> None:
        """Remove an observer."""
        self._observers[event].remove(callback)

    def emit(self, event: EditorEvent, payload: Any) -> None:
        for callback in list(self._observers[event]):
            try:
                callback(payload)
            except Exception:
                logger.exception("Observer for %s failed", event.value)
