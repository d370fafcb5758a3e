from __future__ import annotations

import pytest

from pagecraft.errors import (
    AccessDeniedError,
    NotFoundError,
    PagecraftError,
    PersistenceError,
    Result,
    StorageError,
    ValidationError,
)


def test_validation_error_to_dict() -> None:
    error = ValidationError("Unknown block", field="block_id", value="x" * 200)

    data = error.to_dict()

    assert data["type"] == "validation"
    assert data["message"] == "Unknown block"
    assert data["recoverable"] is False
    assert data["field"] == "block_id"
    assert len(data["value"]) == 100
    assert data["value"].endswith("...")


def test_storage_error_is_recoverable() -> None:
    error = StorageError("disk full", operation="save", document_id="d1", status_code=507)

    assert isinstance(error, PersistenceError)
    assert error.recoverable is True
    assert error.to_dict() == {
        "type": "storage",
        "message": "disk full",
        "recoverable": True,
        "status_code": 507,
        "operation": "save",
        "document_id": "d1",
    }


def test_not_found_is_not_recoverable() -> None:
    error = NotFoundError("Document not found", document_id="d1")

    assert error.recoverable is False
    assert error.document_id == "d1"


def test_access_denied_is_not_a_persistence_error() -> None:
    """Access denials are never retried, so they sit outside PersistenceError."""
    error = AccessDeniedError(document_id="d1", operation="save")

    assert not isinstance(error, PersistenceError)
    assert error.message == "Access denied"
    assert error.to_dict()["type"] == "accessdenied"


def test_none_context_values_are_omitted() -> None:
    data = AccessDeniedError().to_dict()

    assert "document_id" not in data
    assert "operation" not in data


class TestResult:

    def test_ok(self) -> None:
        result = Result.ok(3)

        assert result.success
        assert result.unwrap() == 3
        assert result.unwrap_or(0) == 3

    def test_fail(self) -> None:
        result: Result[int] = Result.fail(StorageError("boom"))

        assert not result.success
        assert result.unwrap_or(0) == 0
        with pytest.raises(StorageError):
            result.unwrap()

    def test_fail_without_error(self) -> None:
        with pytest.raises(PagecraftError):
            Result(success=False).unwrap()
