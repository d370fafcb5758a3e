"""SQLite-backed DocumentStore.

Documents live in one ``documents`` table mirroring the hosted schema: a
legacy ``content`` text column, a ``content_backup`` copy taken when a
document first gains structured blocks, and ``blocks_content`` holding the
JSON ``{blocks, version}`` object.

SQLite calls are blocking, so the async store methods hand them to a worker
thread. One connection is shared across threads behind a lock.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator
from uuid import uuid4

import tenacity

from ..config import STORE
from ..editor.blocks_models import new_document_blocks
from ..errors import AccessDeniedError, NotFoundError, StorageError
from .base import DocumentPatch, SaveReceipt, StoredDocument, _now_iso, decode_blocks, encode_blocks

logger = logging.getLogger(__name__)


_SCHEMA = """
    CREATE TABLE IF NOT EXISTS documents (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL DEFAULT '',
        content TEXT,                 -- legacy flat text
        content_backup TEXT,          -- legacy text as it was before migration
        blocks_content TEXT,          -- JSON {"blocks": [...], "version": 1}
        readonly INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_documents_updated ON documents(updated_at);
"""


# =============================================================================
# Retry Configuration
# =============================================================================


def _is_retryable(exc: BaseException) -> bool:
    """Locked or busy databases clear up on their own."""
    if not isinstance(exc, sqlite3.OperationalError):
        return False
    message = str(exc).lower()
    return "locked" in message or "busy" in message


_retry_locked = tenacity.retry(
    stop=tenacity.stop_after_attempt(STORE.RETRY_ATTEMPTS),
    wait=tenacity.wait_exponential(multiplier=0.1, max=STORE.RETRY_MAX_WAIT),
    retry=tenacity.retry_if_exception(_is_retryable),
    before_sleep=lambda rs: logger.debug(
        "Retrying SQLite operation (attempt %d)", rs.attempt_number + 1
    ),
    reraise=True,
)


class SqliteDocumentStore:
    """DocumentStore persisting to a local SQLite database.

    Example:
        store = SqliteDocumentStore(settings.sqlite_path)
        doc_id = store.create("Meeting notes")
        stored = await store.load(doc_id)
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(
            str(self._path), check_same_thread=False, timeout=STORE.SQLITE_TIMEOUT
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode = WAL")
        self._conn.executescript(_SCHEMA)
        self._conn.commit()
        logger.debug("Opened document database at %s", self._path)

    @property
    def path(self) -> Path:
        return self._path

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database transactions."""
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

    # -------------------------------------------------------------------------
    # Synchronous helpers (CLI and tests)
    # -------------------------------------------------------------------------

    def create(self, title: str = "") -> str:
        """Create a document holding one empty paragraph; returns its id."""
        document_id = uuid4().hex
        now = _now_iso()
        blocks_json = json.dumps(encode_blocks(new_document_blocks()))
        with self._transaction() as conn:
            conn.execute(
                """INSERT INTO documents (id, title, blocks_content, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (document_id, title, blocks_json, now, now),
            )
        logger.info("Created document %s", document_id)
        return document_id

    def put_legacy(self, document_id: str, *, title: str = "", text: str = "") -> None:
        """Insert or replace a document that only has legacy text."""
        now = _now_iso()
        with self._transaction() as conn:
            conn.execute(
                """INSERT OR REPLACE INTO documents
                   (id, title, content, blocks_content, created_at, updated_at)
                   VALUES (?, ?, ?, NULL, ?, ?)""",
                (document_id, title, text, now, now),
            )

    def set_readonly(self, document_id: str, readonly: bool = True) -> None:
        with self._transaction() as conn:
            cursor = conn.execute(
                "UPDATE documents SET readonly = ? WHERE id = ?",
                (1 if readonly else 0, document_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError("Document not found", document_id=document_id)

    def list_documents(self) -> list[dict[str, Any]]:
        """Summaries of all documents, most recently updated first."""
        with self._lock:
            rows = self._conn.execute(
                """SELECT id, title, blocks_content IS NOT NULL AS structured, updated_at
                   FROM documents ORDER BY updated_at DESC"""
            ).fetchall()
        return [
            {
                "id": row["id"],
                "title": row["title"],
                "structured": bool(row["structured"]),
                "updated_at": row["updated_at"],
            }
            for row in rows
        ]

    def raw(self, document_id: str) -> dict[str, Any]:
        """The stored row, for inspection."""
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM documents WHERE id = ?", (document_id,)
            ).fetchone()
        if row is None:
            raise NotFoundError("Document not found", document_id=document_id)
        return dict(row)

    # -------------------------------------------------------------------------
    # Blocking implementations
    # -------------------------------------------------------------------------

    @_retry_locked
    def _load_sync(self, document_id: str) -> StoredDocument:
        with self._lock:
            row = self._conn.execute(
                "SELECT title, content, blocks_content, updated_at FROM documents WHERE id = ?",
                (document_id,),
            ).fetchone()
        if row is None:
            raise NotFoundError("Document not found", document_id=document_id)
        return StoredDocument(
            id=document_id,
            title=row["title"],
            structured_blocks=decode_blocks(row["blocks_content"]),
            legacy_text=row["content"],
            updated_at=row["updated_at"],
        )

    @_retry_locked
    def _save_sync(self, document_id: str, patch: DocumentPatch) -> SaveReceipt:
        now = _now_iso()
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT readonly FROM documents WHERE id = ?", (document_id,)
            ).fetchone()
            if row is None:
                raise NotFoundError("Document not found", document_id=document_id)
            if row["readonly"]:
                raise AccessDeniedError(
                    "Document is read-only", document_id=document_id, operation="save"
                )

            if patch.title is not None:
                conn.execute(
                    "UPDATE documents SET title = ? WHERE id = ?", (patch.title, document_id)
                )
            if patch.blocks is not None:
                conn.execute(
                    """UPDATE documents
                       SET blocks_content = ?,
                           content_backup = COALESCE(content_backup, content)
                       WHERE id = ?""",
                    (json.dumps(patch.blocks_payload()), document_id),
                )
            conn.execute("UPDATE documents SET updated_at = ? WHERE id = ?", (now, document_id))
        logger.debug("Saved %s of document %s", ", ".join(patch.fields), document_id)
        return SaveReceipt(updated_at=now)

    # -------------------------------------------------------------------------
    # DocumentStore
    # -------------------------------------------------------------------------

    async def load(self, document_id: str) -> StoredDocument:
        try:
            return await asyncio.to_thread(self._load_sync, document_id)
        except sqlite3.Error as e:
            raise StorageError(str(e), operation="load", document_id=document_id) from e

    async def save(self, document_id: str, patch: DocumentPatch) -> SaveReceipt:
        try:
            return await asyncio.to_thread(self._save_sync, document_id, patch)
        except sqlite3.Error as e:
            raise StorageError(str(e), operation="save", document_id=document_id) from e
