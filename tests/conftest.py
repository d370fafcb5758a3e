from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

import pytest

from pagecraft.editor.session import EditorSession, open_session
from pagecraft.store.memory import MemoryDocumentStore


@pytest.fixture
def memory_store() -> MemoryDocumentStore:
    """An empty in-process document store."""
    return MemoryDocumentStore()


@pytest.fixture
def fast_intervals() -> dict[str, float]:
    """Debounce windows short enough for tests, title faster than content."""
    return {"title_delay": 0.02, "content_delay": 0.05}


@pytest.fixture
def session_factory(
    memory_store: MemoryDocumentStore,
    fast_intervals: dict[str, float],
) -> Callable[..., Awaitable[EditorSession]]:
    """Create a document in ``memory_store`` and open an editing session on it.

    Keyword arguments are stored on the document: ``title``, ``blocks`` (raw
    persisted entries) or ``legacy_text``. With none given the document
    holds one empty paragraph.
    """

    async def make(document_id: str = "doc-1", **document: Any) -> EditorSession:
        if document:
            memory_store.put(document_id, **document)
        else:
            memory_store.put(document_id, blocks=[{"id": "b1", "type": "paragraph", "content": ""}])
        return await open_session(memory_store, document_id, **fast_intervals)

    return make
