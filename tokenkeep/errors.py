"""
Error types and error logging for tokenkeep.

Store operations raise subclasses of TokenKeepError. The CLI turns them into
clean one-line messages and writes the full traceback to an error log.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


class TokenKeepError(Exception):
    """Root exception for all tokenkeep errors."""


class ValidationError(TokenKeepError):
    """Bad host key or malformed record shape. Nothing was written."""


class ParseError(TokenKeepError):
    """Import text is empty or not valid JSON."""


class EmptyCapture(TokenKeepError):
    """Refused to create a record from zero captured items."""


class InvalidPayload(TokenKeepError):
    """Record data handed to apply is not a sequence of items."""


class Conflict(TokenKeepError):
    """The persisted store changed since it was read. Reload and retry."""

    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"Store revision moved from {expected} to {actual} since it was read"
        )
        self.expected = expected
        self.actual = actual


class BackendError(TokenKeepError):
    """Persistence backend could not be loaded or written."""


def _error_log_path(store_path: Optional[Path] = None) -> Path:
    """Resolve error log path: explicit store, then TOKENKEEP_STORE_PATH, then ~/.tokenkeep."""
    store = store_path or os.environ.get("TOKENKEEP_STORE_PATH")
    if store:
        return Path(store).expanduser() / "tokenkeep-errors.log"
    return Path.home() / ".tokenkeep" / "tokenkeep-errors.log"


def log_exception(exc: Exception, context: str = "", store_path: Optional[Path] = None) -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)
        store_path: Store directory the log belongs in, when not the default

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path(store_path)
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    except OSError:
        pass  # error log is best-effort
    return log_path
