"""Debounced, race-safe autosave for an editing session.

Two independent channels persist a document: one for the title and one for
the block list. Each channel has its own trailing-edge debounce timer, dirty
flag and in-flight guard:

- An edit marks the channel dirty and restarts its timer, so a burst of
  keystrokes collapses into one write.
- When the timer fires while a save for that channel is still in flight, the
  cycle is skipped and deferred; one new debounce cycle starts once the
  in-flight save settles. Two saves for the same field never overlap.
- A successful save clears the dirty flag unless an edit arrived after the
  save was dispatched. A failed save leaves it set.
- A save that lands after a newer save of the same field (an autosave
  finishing behind ``save_now``) marks that field dirty again and schedules
  another save, so the newest content ends up in the store.
- ``save_now`` bypasses both timers and guards and writes title and blocks in
  a single call.

All state lives on the orchestrator instance, one per editing session. The
store call is the only await point; everything else runs synchronously on
the event loop.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from ..config import AUTOSAVE
from ..errors import AccessDeniedError, PagecraftError, StorageError
from ..store.base import DocumentPatch, DocumentStore, SaveReceipt
from .blocks_models import Block
from .events import DirtyState, EditorEvent, EditorEvents

logger = logging.getLogger(__name__)


class SaveChannel(str, Enum):
    TITLE = "title"
    CONTENT = "content"


@dataclass
class _ChannelState:
    delay: float
    timer: asyncio.TimerHandle | None = None
    dirty: bool = False
    in_flight: bool = False
    deferred: bool = False
    # Bumped on every edit; a save only clears dirty if it saw the latest
    revision: int = 0
    # Newest revision known to be in the store
    persisted_revision: int = 0


class AutosaveOrchestrator:
    """Coalesces title and content edits into persisted writes.

    Example:
        autosave = AutosaveOrchestrator(
            store, doc_id, get_title=lambda: session.title, get_blocks=lambda: session.blocks
        )
        autosave.mark_dirty(SaveChannel.CONTENT)
    """

    def __init__(
        self,
        store: DocumentStore,
        document_id: str,
        *,
        get_title: Callable[[], str],
        get_blocks: Callable[[], list[Block]],
        events: EditorEvents | None = None,
        title_delay: float = AUTOSAVE.TITLE_DEBOUNCE_SECONDS,
        content_delay: float = AUTOSAVE.CONTENT_DEBOUNCE_SECONDS,
    ) -> None:
        self._store = store
        self._document_id = document_id
        self._get_title = get_title
        self._get_blocks = get_blocks
        self._events = events or EditorEvents()
        self._channels = {
            SaveChannel.TITLE: _ChannelState(delay=title_delay),
            SaveChannel.CONTENT: _ChannelState(delay=content_delay),
        }
        self._tasks: set[asyncio.Task] = set()
        self._manual_saves = 0
        self._saving = False
        self.last_error: PagecraftError | None = None
        self.last_saved_at: str | None = None

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def dirty_state(self) -> DirtyState:
        return DirtyState(
            title=self._channels[SaveChannel.TITLE].dirty,
            content=self._channels[SaveChannel.CONTENT].dirty,
        )

    @property
    def is_saving(self) -> bool:
        return self._saving

    def is_pending(self, channel: SaveChannel) -> bool:
        """Whether a debounce timer is waiting to fire for the channel."""
        return self._channels[channel].timer is not None

    def is_in_flight(self, channel: SaveChannel) -> bool:
        return self._channels[channel].in_flight

    # -------------------------------------------------------------------------
    # Scheduling
    # -------------------------------------------------------------------------

    def mark_dirty(self, channel: SaveChannel) -> None:
        """Record an edit and restart the channel's debounce timer."""
        state = self._channels[channel]
        state.revision += 1
        self._set_dirty(channel, True)
        self._restart_timer(channel)

    def _restart_timer(self, channel: SaveChannel) -> None:
        state = self._channels[channel]
        if state.timer is not None:
            state.timer.cancel()
        loop = asyncio.get_running_loop()
        state.timer = loop.call_later(state.delay, self._on_timer, channel)
        logger.debug("Autosave %s scheduled in %.2fs", channel.value, state.delay)

    def _cancel_timers(self) -> None:
        for state in self._channels.values():
            if state.timer is not None:
                state.timer.cancel()
                state.timer = None

    def _on_timer(self, channel: SaveChannel) -> None:
        state = self._channels[channel]
        state.timer = None
        if state.in_flight:
            logger.debug("Autosave %s skipped: previous save still in flight", channel.value)
            state.deferred = True
            return
        if not state.dirty:
            return
        task = asyncio.get_running_loop().create_task(self._save_channel(channel))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # -------------------------------------------------------------------------
    # Saving
    # -------------------------------------------------------------------------

    async def _save_channel(self, channel: SaveChannel) -> None:
        state = self._channels[channel]
        state.in_flight = True
        self._update_saving()
        revision = state.revision

        if channel == SaveChannel.TITLE:
            patch = DocumentPatch(title=self._get_title())
        else:
            patch = DocumentPatch(blocks=self._get_blocks())

        try:
            receipt = await self._store.save(self._document_id, patch)
        except Exception as exc:
            self._record_failure(exc, channel.value)
        else:
            self._record_success(receipt)
            self._settle(channel, revision)
        finally:
            state.in_flight = False
            self._update_saving()

        if state.deferred:
            state.deferred = False
            if state.dirty:
                self._restart_timer(channel)

    async def save_now(self) -> bool:
        """Save title and blocks together, right now.

        Pending timers are cancelled; the per-channel guards are not
        consulted.

        Returns:
            True on success, False if the store failed (the failure is
            emitted as ``save_failed`` and both fields stay dirty).

        Raises:
            AccessDeniedError: Passed through verbatim.
        """
        self._cancel_timers()
        revisions = {channel: state.revision for channel, state in self._channels.items()}
        patch = DocumentPatch(title=self._get_title(), blocks=self._get_blocks())

        self._manual_saves += 1
        self._update_saving()
        try:
            receipt = await self._store.save(self._document_id, patch)
        except AccessDeniedError as exc:
            self._record_failure(exc, "manual")
            raise
        except Exception as exc:
            self._record_failure(exc, "manual")
            return False
        finally:
            self._manual_saves -= 1
            self._update_saving()

        self._record_success(receipt)
        for channel, revision in revisions.items():
            self._settle(channel, revision)
        return True

    async def flush(self) -> None:
        """Save any dirty channel now, waiting for in-flight saves first."""
        await self.wait_idle()
        if self.dirty_state.any:
            await self.save_now()

    async def wait_idle(self) -> None:
        """Wait until no channel save task is running."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self, *, flush: bool = True) -> None:
        """Stop the orchestrator, optionally persisting outstanding edits."""
        self._cancel_timers()
        await self.wait_idle()
        if flush and self.dirty_state.any:
            await self.save_now()
        self._cancel_timers()

    # -------------------------------------------------------------------------
    # Bookkeeping
    # -------------------------------------------------------------------------

    def _settle(self, channel: SaveChannel, revision: int) -> None:
        """Update dirty state after a save of ``revision`` reached the store.

        Saves are last-write-wins, so a save that lands after a newer one has
        overwritten it; the channel goes dirty again and saves once more.
        """
        state = self._channels[channel]
        if revision < state.persisted_revision:
            logger.warning(
                "Autosave %s of revision %d landed after revision %d; saving again",
                channel.value, revision, state.persisted_revision,
            )
            self._set_dirty(channel, True)
            self._restart_timer(channel)
            return
        state.persisted_revision = revision
        if state.revision == revision:
            self._set_dirty(channel, False)

    def _record_success(self, receipt: SaveReceipt) -> None:
        self.last_error = None
        self.last_saved_at = receipt.updated_at
        self._events.emit(EditorEvent.SAVED, receipt)

    def _record_failure(self, exc: Exception, label: str) -> None:
        if isinstance(exc, AccessDeniedError):
            logger.error("Autosave %s denied for document %s: %s", label, self._document_id, exc)
            error: PagecraftError = exc
        elif isinstance(exc, PagecraftError):
            logger.warning("Autosave %s failed for document %s: %s", label, self._document_id, exc)
            error = exc
        else:
            logger.exception("Autosave %s crashed for document %s", label, self._document_id)
            error = StorageError(str(exc) or type(exc).__name__, operation="save",
                                 document_id=self._document_id)
        self.last_error = error
        self._events.emit(EditorEvent.SAVE_FAILED, error)

    def _set_dirty(self, channel: SaveChannel, dirty: bool) -> None:
        before = self.dirty_state
        self._channels[channel].dirty = dirty
        after = self.dirty_state
        if after != before:
            self._events.emit(EditorEvent.DIRTY_STATE_CHANGED, after)

    def _update_saving(self) -> None:
        saving = self._manual_saves > 0 or any(s.in_flight for s in self._channels.values())
        if saving != self._saving:
            self._saving = saving
            self._events.emit(EditorEvent.SAVING_STATE_CHANGED, saving)
