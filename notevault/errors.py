"""
Exceptions and error logging for notevault.

Indexing failures are collected per file and never abort a pass.
Storage and query failures propagate to the immediate caller.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path


class NotevaultError(Exception):
    """Base class for all notevault errors."""


class IndexationError(NotevaultError):
    """A single file could not be indexed (unreadable, oversized, bad frontmatter)."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class StorageInitializationError(NotevaultError):
    """The storage backend could not be created or opened."""


class QueryError(NotevaultError):
    """A query was rejected because a filter value is malformed."""


class PathSecurityError(NotevaultError):
    """A requested path resolves outside the vault root."""

    def __init__(self, path: str):
        super().__init__(f"Access denied. Path is outside vault directory: {path}")
        self.path = path


class ConfigError(NotevaultError):
    """Configuration is missing or invalid."""


def _error_log_path() -> Path:
    """Resolve error log path, respecting NOTEVAULT_STORE_PATH."""
    store = os.environ.get("NOTEVAULT_STORE_PATH")
    if store:
        return Path(store) / "notevault-errors.log"
    return Path.home() / ".notevault" / "notevault-errors.log"


def log_exception(exc: Exception, context: str = "") -> Path:
    """
    Append an unexpected exception and its traceback to the error log.

    Used by the CLI so users see one line while the details are kept.

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path()
    header = f"[{datetime.now(timezone.utc).isoformat()}]"
    if context:
        header += f" {context}"
    entry = "\n".join([
        "",
        "=" * 60,
        header,
        "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
    ])
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        # owner read/write only
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a", encoding="utf-8") as f:
            f.write(entry)
    except OSError:
        pass  # error log is best effort
    return log_path
