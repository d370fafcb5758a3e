"""Tests for the DocumentStore backends.

- MemoryDocumentStore: partial saves, read-only documents
- SqliteDocumentStore: schema, partial saves, legacy backup, lock retry
- RestDocumentStore: PostgREST requests via httpx.MockTransport
- create_store / create_document factories
"""

from __future__ import annotations

import json
import sqlite3
from dataclasses import replace
from pathlib import Path

import httpx
import pytest

from pagecraft.editor.blocks_models import Block, BlockType
from pagecraft.errors import AccessDeniedError, NotFoundError, StorageError, ValidationError
from pagecraft.settings import Settings
from pagecraft.store import (
    DocumentPatch,
    DocumentStore,
    MemoryDocumentStore,
    RestDocumentStore,
    SqliteDocumentStore,
    create_document,
    create_store,
    decode_blocks,
    encode_blocks,
)
from pagecraft.store.sqlite_store import _is_retryable


def _blocks(*contents: str) -> list[Block]:
    return [
        Block(id=f"b{i}", type=BlockType.PARAGRAPH, content=c, order_index=i)
        for i, c in enumerate(contents)
    ]


# =============================================================================
# Encoding
# =============================================================================


class TestEncoding:
    """Test the persisted block payload."""

    def test_encode_blocks(self) -> None:
        payload = encode_blocks(_blocks("a"))

        assert payload["version"] == 1
        entry = payload["blocks"][0]
        assert (entry["id"], entry["type"], entry["content"], entry["orderIndex"]) == (
            "b0", "paragraph", "a", 0,
        )
        assert "listIndex" not in entry

    @pytest.mark.parametrize("raw", [
        {"blocks": [{"id": "x"}], "version": 1},
        [{"id": "x"}],
        '{"blocks": [{"id": "x"}], "version": 1}',
    ])
    def test_decode_accepts_all_shapes(self, raw) -> None:
        assert decode_blocks(raw) == [{"id": "x"}]

    @pytest.mark.parametrize("raw", [None, "not json", 42, {"version": 1}])
    def test_decode_unreadable_is_absent(self, raw) -> None:
        assert decode_blocks(raw) is None

    def test_decode_drops_non_object_entries(self) -> None:
        assert decode_blocks([{"id": "x"}, "junk", 3]) == [{"id": "x"}]


# =============================================================================
# Memory store
# =============================================================================


class TestMemoryStore:

    def test_satisfies_protocol(self, memory_store: MemoryDocumentStore) -> None:
        assert isinstance(memory_store, DocumentStore)

    @pytest.mark.asyncio
    async def test_title_patch_leaves_blocks(self, memory_store: MemoryDocumentStore) -> None:
        doc_id = memory_store.create("Old")
        before = memory_store.raw(doc_id)["blocks_content"]

        await memory_store.save(doc_id, DocumentPatch(title="New"))

        stored = await memory_store.load(doc_id)
        assert stored.title == "New"
        assert memory_store.raw(doc_id)["blocks_content"] == before

    @pytest.mark.asyncio
    async def test_blocks_patch_leaves_title_and_legacy_text(self, memory_store: MemoryDocumentStore) -> None:
        memory_store.put("d", title="T", legacy_text="old text")

        await memory_store.save("d", DocumentPatch(blocks=_blocks("new")))

        stored = await memory_store.load("d")
        assert stored.title == "T"
        assert stored.legacy_text == "old text"
        assert stored.structured_blocks[0]["content"] == "new"

    @pytest.mark.asyncio
    async def test_unknown_document(self, memory_store: MemoryDocumentStore) -> None:
        with pytest.raises(NotFoundError):
            await memory_store.load("missing")
        with pytest.raises(NotFoundError):
            await memory_store.save("missing", DocumentPatch(title="x"))

    @pytest.mark.asyncio
    async def test_readonly_document(self, memory_store: MemoryDocumentStore) -> None:
        doc_id = memory_store.create()
        memory_store.readonly.add(doc_id)

        with pytest.raises(AccessDeniedError):
            await memory_store.save(doc_id, DocumentPatch(title="x"))


# =============================================================================
# SQLite store
# =============================================================================


@pytest.fixture
def sqlite_store(tmp_path: Path):
    store = SqliteDocumentStore(tmp_path / "docs" / "documents.db")
    yield store
    store.close()


class TestSqliteStore:

    def test_creates_database_file(self, sqlite_store: SqliteDocumentStore) -> None:
        assert sqlite_store.path.exists()

    @pytest.mark.asyncio
    async def test_create_and_load(self, sqlite_store: SqliteDocumentStore) -> None:
        doc_id = sqlite_store.create("Fresh")

        stored = await sqlite_store.load(doc_id)

        assert stored.title == "Fresh"
        assert len(stored.structured_blocks) == 1
        assert stored.structured_blocks[0]["type"] == "paragraph"
        assert stored.legacy_text is None

    @pytest.mark.asyncio
    async def test_partial_saves(self, sqlite_store: SqliteDocumentStore) -> None:
        doc_id = sqlite_store.create("Title")

        await sqlite_store.save(doc_id, DocumentPatch(blocks=_blocks("x", "y")))
        await sqlite_store.save(doc_id, DocumentPatch(title="Renamed"))

        stored = await sqlite_store.load(doc_id)
        assert stored.title == "Renamed"
        assert [b["content"] for b in stored.structured_blocks] == ["x", "y"]

    @pytest.mark.asyncio
    async def test_first_structured_save_backs_up_legacy_text(self, sqlite_store: SqliteDocumentStore) -> None:
        sqlite_store.put_legacy("legacy", title="Old", text="# Heading\nbody")

        await sqlite_store.save("legacy", DocumentPatch(blocks=_blocks("converted")))
        await sqlite_store.save("legacy", DocumentPatch(blocks=_blocks("edited")))

        row = sqlite_store.raw("legacy")
        assert row["content"] == "# Heading\nbody"
        assert row["content_backup"] == "# Heading\nbody"
        assert json.loads(row["blocks_content"])["blocks"][0]["content"] == "edited"

    @pytest.mark.asyncio
    async def test_save_returns_updated_at(self, sqlite_store: SqliteDocumentStore) -> None:
        doc_id = sqlite_store.create()

        receipt = await sqlite_store.save(doc_id, DocumentPatch(title="t"))

        assert (await sqlite_store.load(doc_id)).updated_at == receipt.updated_at

    @pytest.mark.asyncio
    async def test_readonly_document(self, sqlite_store: SqliteDocumentStore) -> None:
        doc_id = sqlite_store.create("Locked")
        sqlite_store.set_readonly(doc_id)

        with pytest.raises(AccessDeniedError):
            await sqlite_store.save(doc_id, DocumentPatch(title="changed"))
        assert (await sqlite_store.load(doc_id)).title == "Locked"

    @pytest.mark.asyncio
    async def test_unknown_document(self, sqlite_store: SqliteDocumentStore) -> None:
        with pytest.raises(NotFoundError):
            await sqlite_store.load("missing")
        with pytest.raises(NotFoundError):
            await sqlite_store.save("missing", DocumentPatch(title="x"))
        with pytest.raises(NotFoundError):
            sqlite_store.set_readonly("missing")

    def test_list_documents(self, sqlite_store: SqliteDocumentStore) -> None:
        sqlite_store.create("A")
        sqlite_store.put_legacy("legacy", title="B", text="x")

        summaries = {d["title"]: d for d in sqlite_store.list_documents()}

        assert summaries["A"]["structured"] is True
        assert summaries["B"]["structured"] is False

    @pytest.mark.parametrize("message, retryable", [
        ("database is locked", True),
        ("database table is busy", True),
        ("no such table: documents", False),
    ])
    def test_lock_errors_are_retryable(self, message: str, retryable: bool) -> None:
        assert _is_retryable(sqlite3.OperationalError(message)) is retryable

    def test_integrity_errors_are_not_retried(self) -> None:
        assert _is_retryable(sqlite3.IntegrityError("locked")) is False

    @pytest.mark.asyncio
    async def test_other_sqlite_errors_become_storage_errors(
        self, sqlite_store: SqliteDocumentStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def broken(self, document_id, patch):
            raise sqlite3.DatabaseError("file is not a database")

        monkeypatch.setattr(SqliteDocumentStore, "_save_sync", broken)

        with pytest.raises(StorageError):
            await sqlite_store.save("any", DocumentPatch(title="x"))


# =============================================================================
# REST store
# =============================================================================


def _rest_store(handler) -> RestDocumentStore:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RestDocumentStore("https://db.example.com/", api_key="secret", client=client)


class TestRestStore:

    @pytest.mark.asyncio
    async def test_load(self) -> None:
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[{
                "id": "d1",
                "title": "Remote",
                "content": None,
                "blocks_content": {"blocks": [{"id": "x", "type": "quote"}], "version": 1},
                "updated_at": "2024-01-01T00:00:00+00:00",
            }])

        store = _rest_store(handler)
        stored = await store.load("d1")

        assert stored.title == "Remote"
        assert stored.structured_blocks == [{"id": "x", "type": "quote"}]
        request = seen[0]
        assert request.method == "GET"
        assert request.url.path == "/rest/v1/documents"
        assert request.url.params["id"] == "eq.d1"
        assert request.headers["apikey"] == "secret"
        assert request.headers["authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    async def test_load_string_encoded_blocks(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            payload = json.dumps({"blocks": [{"id": "x"}], "version": 1})
            return httpx.Response(200, json=[{"id": "d1", "title": "", "blocks_content": payload}])

        stored = await _rest_store(handler).load("d1")

        assert stored.structured_blocks == [{"id": "x"}]

    @pytest.mark.asyncio
    async def test_load_missing_row(self) -> None:
        store = _rest_store(lambda request: httpx.Response(200, json=[]))

        with pytest.raises(NotFoundError):
            await store.load("d1")

    @pytest.mark.asyncio
    async def test_partial_save_body(self) -> None:
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            bodies.append((request, body))
            return httpx.Response(200, json=[{"id": "d1", "updated_at": body["updated_at"]}])

        store = _rest_store(handler)
        receipt = await store.save("d1", DocumentPatch(title="Only title"))

        request, body = bodies[0]
        assert request.method == "PATCH"
        assert request.headers["prefer"] == "return=representation"
        assert body["title"] == "Only title"
        assert "blocks_content" not in body
        assert receipt.updated_at == body["updated_at"]

        await store.save("d1", DocumentPatch(blocks=_blocks("z")))
        _, body = bodies[1]
        assert "title" not in body
        assert body["blocks_content"]["blocks"][0]["content"] == "z"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_auth_failures_are_access_denied(self, status: int) -> None:
        store = _rest_store(lambda request: httpx.Response(status, json={"message": "denied"}))

        with pytest.raises(AccessDeniedError):
            await store.save("d1", DocumentPatch(title="x"))

    @pytest.mark.asyncio
    async def test_empty_patch_result_is_access_denied(self) -> None:
        store = _rest_store(lambda request: httpx.Response(200, json=[]))

        with pytest.raises(AccessDeniedError):
            await store.save("d1", DocumentPatch(title="x"))

    @pytest.mark.asyncio
    async def test_server_error_is_storage_error(self) -> None:
        store = _rest_store(lambda request: httpx.Response(503, text="unavailable"))

        with pytest.raises(StorageError) as exc_info:
            await store.save("d1", DocumentPatch(title="x"))
        assert exc_info.value.status_code == 503
        assert exc_info.value.recoverable is True

    @pytest.mark.asyncio
    async def test_transient_errors_are_retried(self) -> None:
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json=[{"id": "d1", "title": "ok"}])

        stored = await _rest_store(handler).load("d1")

        assert stored.title == "ok"
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_persistent_transport_errors_become_storage_errors(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(StorageError):
            await _rest_store(handler).load("d1")


# =============================================================================
# Factories
# =============================================================================


class TestFactories:

    def test_create_store_sqlite(self, tmp_path: Path) -> None:
        store = create_store(Settings(data_dir=tmp_path, store_backend="sqlite"))

        assert isinstance(store, SqliteDocumentStore)
        store.close()

    def test_create_store_memory(self) -> None:
        assert isinstance(create_store(Settings(store_backend="memory")), MemoryDocumentStore)

    def test_create_store_rest_requires_url(self) -> None:
        with pytest.raises(ValidationError):
            create_store(Settings(store_backend="rest", rest_url=None))

    def test_create_store_rest(self) -> None:
        store = create_store(Settings(store_backend="rest", rest_url="https://db.example.com"))

        assert isinstance(store, RestDocumentStore)
        assert store.endpoint == "https://db.example.com/rest/v1/documents"

    def test_create_store_unknown_backend(self) -> None:
        with pytest.raises(ValidationError):
            create_store(Settings(store_backend="floppy"))

    @pytest.mark.asyncio
    async def test_create_document(self, memory_store: MemoryDocumentStore) -> None:
        doc_id = create_document(memory_store, "Hello")

        stored = await memory_store.load(doc_id)
        assert stored.title == "Hello"
        assert len(stored.structured_blocks) == 1

    def test_create_document_unsupported(self) -> None:
        store = RestDocumentStore("https://db.example.com")

        with pytest.raises(ValidationError):
            create_document(store, "x")

    def test_settings_copy(self, tmp_path: Path) -> None:
        base = Settings(data_dir=tmp_path)

        assert replace(base, store_backend="memory").data_dir == tmp_path
