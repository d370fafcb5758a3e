from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


def _env_path(name: str, default: Path) -> Path:
    raw = os.environ.get(name)
    return Path(raw) if raw else default


@dataclass(frozen=True)
class Settings:
    """Static settings for the editor and its document store.

    Keep defaults local; the REST backend is only used when configured.
    """

    data_dir: Path = _env_path("PAGECRAFT_DATA_DIR", Path.home() / ".pagecraft")
    log_level: str = os.environ.get("PAGECRAFT_LOG_LEVEL", "INFO")
    log_max_bytes: int = int(os.environ.get("PAGECRAFT_LOG_MAX_BYTES", str(1_000_000)))
    log_backup_count: int = int(os.environ.get("PAGECRAFT_LOG_BACKUP_COUNT", "3"))

    # Which DocumentStore backs the CLI: "sqlite", "rest" or "memory".
    store_backend: str = os.environ.get("PAGECRAFT_STORE", "sqlite")

    # Hosted relational store (PostgREST-compatible endpoint).
    rest_url: str | None = os.environ.get("PAGECRAFT_REST_URL")
    rest_api_key: str | None = os.environ.get("PAGECRAFT_REST_API_KEY")
    rest_table: str = os.environ.get("PAGECRAFT_REST_TABLE", "documents")

    @property
    def log_path(self) -> Path:
        return self.data_dir / "pagecraft.log"

    @property
    def sqlite_path(self) -> Path:
        return _env_path("PAGECRAFT_SQLITE_PATH", self.data_dir / "documents.db")


settings = Settings()
