"""DocumentStore protocol - the durable side of an editing session.

A store loads and saves a document's title and block content. Saves are
partial: a patch carrying only a title never touches block content, and the
reverse.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable

from ..editor.blocks_models import Block

logger = logging.getLogger(__name__)

# Version tag written alongside structured block arrays
BLOCKS_FORMAT_VERSION = 1


def _now_iso() -> str:
    """Get current UTC timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat()


@dataclass
class StoredDocument:
    """A document as held by the store.

    Attributes:
        id: Document identifier.
        title: Document title.
        structured_blocks: Raw persisted block entries, or None when the
            document only has legacy text.
        legacy_text: The flat text column, if any.
        updated_at: ISO timestamp of the last write.
    """

    id: str
    title: str = ""
    structured_blocks: list[dict[str, Any]] | None = None
    legacy_text: str | None = None
    updated_at: str | None = None

    @property
    def has_structured(self) -> bool:
        """Structured content is authoritative when it holds any entries."""
        return bool(self.structured_blocks)


@dataclass(frozen=True)
class DocumentPatch:
    """A partial update; fields left as None are not written."""

    title: str | None = None
    blocks: list[Block] | None = None

    @property
    def is_empty(self) -> bool:
        return self.title is None and self.blocks is None

    @property
    def fields(self) -> list[str]:
        names = []
        if self.title is not None:
            names.append("title")
        if self.blocks is not None:
            names.append("blocks")
        return names

    def blocks_payload(self) -> dict[str, Any] | None:
        """Encode blocks in the persisted shape."""
        if self.blocks is None:
            return None
        return encode_blocks(self.blocks)


@dataclass(frozen=True)
class SaveReceipt:
    updated_at: str


@runtime_checkable
class DocumentStore(Protocol):
    """Abstract interface for document persistence.

    Implementations are slow and fallible; callers await every operation.
    """

    async def load(self, document_id: str) -> StoredDocument:
        """Load a document.

        Raises:
            NotFoundError: If the document does not exist.
            AccessDeniedError: If the caller may not read it.
        """
        ...

    async def save(self, document_id: str, patch: DocumentPatch) -> SaveReceipt:
        """Persist a partial update.

        Raises:
            AccessDeniedError: If the caller may not write it.
            StorageError: On any backend failure.
        """
        ...


def encode_blocks(blocks: list[Block]) -> dict[str, Any]:
    """Encode a block array as the persisted ``{blocks, version}`` object."""
    return {
        "blocks": [block.to_dict() for block in blocks],
        "version": BLOCKS_FORMAT_VERSION,
    }


def decode_blocks(raw: Any) -> list[dict[str, Any]] | None:
    """Decode persisted block content into raw block entries.

    Accepts a JSON string, a bare array or a ``{blocks, version}`` object.
    Anything unreadable counts as absent.
    """
    if raw is None:
        return None
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Ignoring unreadable structured block content")
            return None
    if isinstance(raw, dict):
        raw = raw.get("blocks")
    if not isinstance(raw, list):
        return None
    return [entry for entry in raw if isinstance(entry, dict)]
