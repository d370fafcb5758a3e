from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

from .settings import settings

_CONFIGURED = False

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | None = None, *, log_to_file: bool = True) -> None:
    """Configure root logging for the pagecraft package.

    Installs a stderr handler and, unless disabled, a rotating file handler
    under the data directory. Safe to call more than once.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    root = logging.getLogger("pagecraft")
    root.setLevel((level or settings.log_level).upper())

    formatter = logging.Formatter(_FORMAT)

    stream = logging.StreamHandler()
    stream.setFormatter(formatter)
    root.addHandler(stream)

    if log_to_file:
        settings.log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            settings.log_path,
            maxBytes=settings.log_max_bytes,
            backupCount=settings.log_backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    _CONFIGURED = True
