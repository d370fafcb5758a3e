"""DocumentStore for a hosted PostgREST-style table.

Reads and writes one row per document through the REST interface:

    GET   {base_url}/rest/v1/{table}?id=eq.{id}&select=...
    PATCH {base_url}/rest/v1/{table}?id=eq.{id}

Row-level security decides what the caller may touch. A PATCH that matches
no visible row comes back as an empty list, which is treated as access
denied.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
import tenacity

from ..config import STORE
from ..errors import AccessDeniedError, NotFoundError, StorageError
from .base import DocumentPatch, SaveReceipt, StoredDocument, _now_iso, decode_blocks

logger = logging.getLogger(__name__)

_SELECT = "id,title,content,blocks_content,updated_at"


# =============================================================================
# Retry Configuration
# =============================================================================


def _is_retryable(exc: BaseException) -> bool:
    """Check if an exception should trigger a retry."""
    return isinstance(exc, (httpx.TimeoutException, httpx.ConnectError))


_retry_transient = tenacity.retry(
    stop=tenacity.stop_after_attempt(STORE.RETRY_ATTEMPTS),
    wait=tenacity.wait_exponential(multiplier=0.5, max=STORE.RETRY_MAX_WAIT),
    retry=tenacity.retry_if_exception(_is_retryable),
    before_sleep=lambda rs: logger.debug(
        "Retrying document store request (attempt %d)", rs.attempt_number + 1
    ),
    reraise=True,
)


class RestDocumentStore:
    """DocumentStore talking to a PostgREST endpoint over httpx.

    Example:
        store = RestDocumentStore("https://db.example.com", api_key=key)
        stored = await store.load(doc_id)
        await store.aclose()
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        table: str = "documents",
        timeout: float = STORE.HTTP_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._table = table
        headers = {"Accept": "application/json"}
        if api_key:
            headers["apikey"] = api_key
            headers["Authorization"] = f"Bearer {api_key}"
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._headers = headers

    @property
    def endpoint(self) -> str:
        return f"{self._base_url}/rest/v1/{self._table}"

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @_retry_transient
    async def _request(self, method: str, **kwargs: Any) -> httpx.Response:
        headers = {**self._headers, **kwargs.pop("headers", {})}
        return await self._client.request(method, self.endpoint, headers=headers, **kwargs)

    async def _send(self, method: str, document_id: str, operation: str, **kwargs: Any) -> Any:
        """Send a request and map failures onto the store error taxonomy."""
        try:
            response = await self._request(method, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("Document store %s of %s failed: %s", operation, document_id, e)
            raise StorageError(
                f"Document store unreachable: {e}", operation=operation, document_id=document_id
            ) from e

        if response.status_code in (401, 403):
            raise AccessDeniedError(document_id=document_id, operation=operation)
        if response.status_code == 404:
            raise NotFoundError("Document not found", document_id=document_id)
        if response.status_code >= 400:
            raise StorageError(
                f"Document store returned HTTP {response.status_code}",
                operation=operation,
                document_id=document_id,
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise StorageError(
                "Document store returned invalid JSON",
                operation=operation,
                document_id=document_id,
                status_code=response.status_code,
            ) from e

    async def load(self, document_id: str) -> StoredDocument:
        rows = await self._send(
            "GET",
            document_id,
            "load",
            params={"id": f"eq.{document_id}", "select": _SELECT},
        )
        if not rows:
            raise NotFoundError("Document not found", document_id=document_id)
        row = rows[0]
        return StoredDocument(
            id=document_id,
            title=row.get("title") or "",
            structured_blocks=decode_blocks(row.get("blocks_content")),
            legacy_text=row.get("content"),
            updated_at=row.get("updated_at"),
        )

    async def save(self, document_id: str, patch: DocumentPatch) -> SaveReceipt:
        body: dict[str, Any] = {"updated_at": _now_iso()}
        if patch.title is not None:
            body["title"] = patch.title
        if patch.blocks is not None:
            body["blocks_content"] = patch.blocks_payload()

        rows = await self._send(
            "PATCH",
            document_id,
            "save",
            params={"id": f"eq.{document_id}"},
            json=body,
            headers={"Prefer": "return=representation"},
        )
        if not rows:
            # Row-level security hides rows the caller may not update
            raise AccessDeniedError(
                "Document is not writable", document_id=document_id, operation="save"
            )
        logger.debug("Saved %s of document %s", ", ".join(patch.fields), document_id)
        return SaveReceipt(updated_at=rows[0].get("updated_at") or body["updated_at"])
