"""Pagecraft Error Hierarchy.

Provides a structured error hierarchy for editing and persistence:
- PagecraftError: Base exception for all application errors
- ValidationError: Caller input failed validation (unknown block, bad URL)
- ParseError: Content could not be parsed (the legacy parser degrades instead)
- PersistenceError: DocumentStore failures, recoverable by retry
- AccessDeniedError: The store refused access; never retried automatically

Each error type includes:
- Descriptive message
- Recoverable flag for retry logic
- Structured representation for the UI layer

Usage:
    from pagecraft.errors import AccessDeniedError, StorageError

    if response.status_code == 403:
        raise AccessDeniedError("Document is read-only", document_id=doc_id)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Result Type for Explicit Success/Failure
# =============================================================================


@dataclass
class Result(Generic[T]):
    """Structured result that makes success/failure explicit.

    Usage:
        result = Result.ok(receipt)
        if result.success:
            print(result.value.updated_at)
        else:
            logger.error(result.error.message)
    """

    success: bool
    value: T | None = None
    error: "PagecraftError | None" = None

    @classmethod
    def ok(cls, value: T) -> "Result[T]":
        """Create a successful result."""
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: "PagecraftError") -> "Result[T]":
        """Create a failed result."""
        return cls(success=False, error=error)

    def unwrap(self) -> T:
        """Get value or raise the error.

        Raises:
            PagecraftError: If this is a failed result.
        """
        if self.success:
            return self.value  # type: ignore
        if self.error:
            raise self.error
        raise PagecraftError("Result failed with no error")

    def unwrap_or(self, default: T) -> T:
        """Get value or return default."""
        if self.success:
            return self.value  # type: ignore
        return default


# =============================================================================
# Error Base Classes
# =============================================================================


class PagecraftError(Exception):
    """Base exception for all Pagecraft application errors.

    Attributes:
        message: Human-readable error description
        recoverable: Whether the operation can be retried
        context: Additional context for debugging
    """

    def __init__(
        self,
        message: str,
        *,
        recoverable: bool = False,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.recoverable = recoverable
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to structured dictionary for the UI layer."""
        return {
            "type": type(self).__name__.lower().replace("error", ""),
            "message": self.message,
            "recoverable": self.recoverable,
            **{k: v for k, v in self.context.items() if v is not None},
        }


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(PagecraftError):
    """Input validation failed.

    Raised when an editing operation references something that does not
    exist or carries a value outside its allowed range.

    Example:
        raise ValidationError("Unknown block", field="block_id", value=block_id)
    """

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        constraint: str | None = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.pop("context", {})
        if field:
            context["field"] = field
        if constraint:
            context["constraint"] = constraint
        if value is not None:
            context["value"] = _truncate(str(value), 100)
        super().__init__(message, recoverable=False, context=context)
        self.field = field
        self.constraint = constraint


class ParseError(PagecraftError):
    """Content could not be parsed.

    The legacy text parser never raises this; it degrades unknown lines to
    paragraph blocks instead.
    """

    def __init__(self, message: str, *, line: int | None = None) -> None:
        super().__init__(message, recoverable=False, context={"line": line})
        self.line = line


# =============================================================================
# Persistence Errors
# =============================================================================


class PersistenceError(PagecraftError):
    """DocumentStore operation failed.

    Persistence failures are recoverable by default: the autosave
    orchestrator keeps the field dirty and a later save retries.
    """

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        document_id: str | None = None,
        recoverable: bool = True,
        **kwargs: Any,
    ) -> None:
        context = kwargs.pop("context", {})
        if operation:
            context["operation"] = operation
        if document_id:
            context["document_id"] = document_id
        super().__init__(message, recoverable=recoverable, context=context)
        self.operation = operation
        self.document_id = document_id


class StorageError(PersistenceError):
    """The backing store failed to read or write (I/O, network, 5xx)."""

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        document_id: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(
            message,
            operation=operation,
            document_id=document_id,
            context={"status_code": status_code},
        )
        self.status_code = status_code


class NotFoundError(PersistenceError):
    """Document not found."""

    def __init__(self, message: str, *, document_id: str | None = None) -> None:
        super().__init__(
            message,
            operation="load",
            document_id=document_id,
            recoverable=False,
        )


class AccessDeniedError(PagecraftError):
    """The store refused access to the document.

    Surfaced to the caller verbatim and never retried automatically; the UI
    layer decides whether to prompt a repair action.
    """

    def __init__(
        self,
        message: str = "Access denied",
        *,
        document_id: str | None = None,
        operation: str | None = None,
    ) -> None:
        super().__init__(
            message,
            recoverable=False,
            context={"document_id": document_id, "operation": operation},
        )
        self.document_id = document_id
        self.operation = operation


# =============================================================================
# Helper Functions
# =============================================================================


def _truncate(s: str, max_len: int) -> str:
    """Truncate string to max length."""
    if len(s) <= max_len:
        return s
    return s[: max_len - 3] + "..."
