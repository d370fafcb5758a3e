"""Centralized configuration constants for Pagecraft.

This module provides a single source of truth for:
- Autosave debounce intervals (title and content channels)
- Document store retry and timeout budgets
- Table block defaults and lower bounds

Constants can be overridden via environment variables where noted.
Values that would break the editor have hard minimums that cannot be bypassed.
"""

from __future__ import annotations

import os
from dataclasses import dataclass


# =============================================================================
# Helper functions
# =============================================================================


def _env_int(name: str, default: int, min_val: int | None = None) -> int:
    """Get integer from environment with optional minimum enforcement."""
    val = int(os.environ.get(name, str(default)))
    if min_val is not None and val < min_val:
        return min_val
    return val


def _env_float(name: str, default: float, min_val: float | None = None) -> float:
    """Get float from environment with optional minimum enforcement."""
    val = float(os.environ.get(name, str(default)))
    if min_val is not None and val < min_val:
        return min_val
    return val


# =============================================================================
# Autosave
# =============================================================================


@dataclass(frozen=True)
class AutosaveIntervals:
    """Trailing-edge debounce windows per channel (in seconds).

    Title saves faster than bulk block content.
    """

    TITLE_DEBOUNCE_SECONDS: float = _env_float(
        "PAGECRAFT_TITLE_DEBOUNCE_SECONDS", 0.5, min_val=0.0
    )
    CONTENT_DEBOUNCE_SECONDS: float = _env_float(
        "PAGECRAFT_CONTENT_DEBOUNCE_SECONDS", 1.0, min_val=0.0
    )


AUTOSAVE = AutosaveIntervals()


# =============================================================================
# Document Store
# =============================================================================


@dataclass(frozen=True)
class StoreLimits:
    """Retry and timeout budgets for DocumentStore backends."""

    # Attempts for transient failures (sqlite busy, http connect/timeout)
    RETRY_ATTEMPTS: int = _env_int("PAGECRAFT_STORE_RETRY_ATTEMPTS", 3, min_val=1)
    RETRY_MAX_WAIT: float = 4.0

    HTTP_TIMEOUT: float = _env_float("PAGECRAFT_HTTP_TIMEOUT", 10.0, min_val=1.0)
    SQLITE_TIMEOUT: float = 5.0


STORE = StoreLimits()


# =============================================================================
# Tables
# =============================================================================


@dataclass(frozen=True)
class TableDefaults:
    """Shape of a freshly created table block."""

    DEFAULT_ROWS: int = 3
    DEFAULT_COLUMNS: int = 3

    # A table always keeps at least one row and one column
    MIN_ROWS: int = 1
    MIN_COLUMNS: int = 1


TABLES = TableDefaults()
