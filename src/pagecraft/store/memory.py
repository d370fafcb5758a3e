"""In-process DocumentStore.

Holds documents in a dict. Useful for tests and for editing sessions that
never need to outlive the process. Supports read-only documents and failure
injection so autosave behavior can be exercised.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from typing import Any
from uuid import uuid4

from ..editor.blocks_models import new_document_blocks
from ..errors import AccessDeniedError, NotFoundError
from .base import DocumentPatch, SaveReceipt, StoredDocument, _now_iso, decode_blocks, encode_blocks

logger = logging.getLogger(__name__)


class MemoryDocumentStore:
    """DocumentStore backed by a dict.

    Attributes:
        readonly: Document ids whose saves raise AccessDeniedError.
        save_calls: Every (document_id, patch) passed to ``save``, in order.
        gate: When set, saves wait on this event before completing.
    """

    def __init__(self) -> None:
        self._documents: dict[str, dict[str, Any]] = {}
        self.readonly: set[str] = set()
        self.save_calls: list[tuple[str, DocumentPatch]] = []
        self.gate: asyncio.Event | None = None
        self._failures: list[Exception] = []

    def put(
        self,
        document_id: str,
        *,
        title: str = "",
        blocks: list[dict[str, Any]] | None = None,
        legacy_text: str | None = None,
    ) -> None:
        """Store a document directly, bypassing access checks."""
        self._documents[document_id] = {
            "title": title,
            "blocks_content": {"blocks": copy.deepcopy(blocks), "version": 1} if blocks is not None else None,
            "content": legacy_text,
            "updated_at": _now_iso(),
        }

    def create(self, title: str = "") -> str:
        """Create a new document holding one empty paragraph."""
        document_id = uuid4().hex
        self._documents[document_id] = {
            "title": title,
            "blocks_content": encode_blocks(new_document_blocks()),
            "content": None,
            "updated_at": _now_iso(),
        }
        return document_id

    def fail_next_save(self, error: Exception) -> None:
        """Make the next save raise ``error`` (queued, one per save)."""
        self._failures.append(error)

    def raw(self, document_id: str) -> dict[str, Any]:
        """The stored row, for inspection."""
        return self._documents[document_id]

    async def load(self, document_id: str) -> StoredDocument:
        row = self._documents.get(document_id)
        if row is None:
            raise NotFoundError("Document not found", document_id=document_id)
        return StoredDocument(
            id=document_id,
            title=row["title"],
            structured_blocks=decode_blocks(copy.deepcopy(row["blocks_content"])),
            legacy_text=row["content"],
            updated_at=row["updated_at"],
        )

    async def save(self, document_id: str, patch: DocumentPatch) -> SaveReceipt:
        self.save_calls.append((document_id, patch))
        if self.gate is not None:
            await self.gate.wait()
        if self._failures:
            raise self._failures.pop(0)

        row = self._documents.get(document_id)
        if row is None:
            raise NotFoundError("Document not found", document_id=document_id)
        if document_id in self.readonly:
            raise AccessDeniedError(
                "Document is read-only", document_id=document_id, operation="save"
            )

        if patch.title is not None:
            row["title"] = patch.title
        if patch.blocks is not None:
            row["blocks_content"] = patch.blocks_payload()
        row["updated_at"] = _now_iso()
        logger.debug("Saved %s of document %s", ", ".join(patch.fields), document_id)
        return SaveReceipt(updated_at=row["updated_at"])
