"""Document persistence backends."""

from __future__ import annotations

import logging

from ..errors import ValidationError
from ..settings import Settings
from .base import (
    BLOCKS_FORMAT_VERSION,
    DocumentPatch,
    DocumentStore,
    SaveReceipt,
    StoredDocument,
    decode_blocks,
    encode_blocks,
)
from .memory import MemoryDocumentStore
from .rest_store import RestDocumentStore
from .sqlite_store import SqliteDocumentStore

logger = logging.getLogger(__name__)

__all__ = [
    "BLOCKS_FORMAT_VERSION",
    "DocumentPatch",
    "DocumentStore",
    "MemoryDocumentStore",
    "RestDocumentStore",
    "SaveReceipt",
    "SqliteDocumentStore",
    "StoredDocument",
    "create_document",
    "create_store",
    "decode_blocks",
    "encode_blocks",
]


def create_store(settings: Settings) -> DocumentStore:
    """Build the DocumentStore named by ``settings.store_backend``.

    Raises:
        ValidationError: For an unknown backend or an unconfigured REST url.
    """
    backend = settings.store_backend.lower()
    if backend == "sqlite":
        return SqliteDocumentStore(settings.sqlite_path)
    if backend == "memory":
        return MemoryDocumentStore()
    if backend == "rest":
        if not settings.rest_url:
            raise ValidationError(
                "PAGECRAFT_REST_URL must be set for the rest store", field="rest_url"
            )
        return RestDocumentStore(
            settings.rest_url, api_key=settings.rest_api_key, table=settings.rest_table
        )
    raise ValidationError(
        f"Unknown store backend: {settings.store_backend}",
        field="store_backend",
        value=settings.store_backend,
        constraint="sqlite, rest or memory",
    )


def create_document(store: DocumentStore, title: str = "") -> str:
    """Create a document with one empty paragraph in a local store."""
    if isinstance(store, (MemoryDocumentStore, SqliteDocumentStore)):
        return store.create(title)
    raise ValidationError(
        f"{type(store).__name__} does not support creating documents", field="store"
    )
