"""
Core API for tokenkeep.

TokenKeeper ties one store directory together:
- config (tokenkeep.toml) → persistence backend
- RecordStore for save / list / rename / delete / apply
- Reconciler and Exporter for moving records between machines
"""

import logging
from pathlib import Path
from typing import Iterable, Optional

from .backend import create_backend
from .config import StoreConfig, get_default_store_path, load_or_create_config
from .errors import ValidationError
from .export import Exporter
from .protocol import ApplyTarget, CaptureAdapter, PersistenceBackend
from .reconcile import MERGE, ImportResult, Reconciler
from .record_store import ApplyResult, RecordStore
from .types import Record

logger = logging.getLogger(__name__)


class TokenKeeper:
    """
    Saved cookie / local-storage snapshots, grouped by host.

    Example:
        kp = TokenKeeper()
        rec = kp.save("example.com", items, name="admin login")
        text = kp.export_host("example.com")
        TokenKeeper("/elsewhere").import_text(text)
    """

    def __init__(
        self,
        store_path: Optional[str | Path] = None,
        *,
        config: Optional[StoreConfig] = None,
        backend: Optional[PersistenceBackend] = None,
        ops_log: bool = True,
    ) -> None:
        """
        Open a store, creating its directory and config on first use.

        Args:
            store_path: Store directory. Uses TOKENKEEP_STORE_PATH or
                ~/.tokenkeep if not specified.
            config: Pre-loaded StoreConfig (skips filesystem config discovery).
            backend: Injected persistence backend (skips backend creation).
            ops_log: Write tokenkeep-ops.log in the store directory.
        """
        if config is not None:
            self._config = config
        else:
            path = Path(store_path).expanduser().resolve() if store_path else get_default_store_path()
            self._config = load_or_create_config(path)
        self._store_path = self._config.path

        self._ops_log_handler = None
        if ops_log:
            from .logging_config import configure_ops_log
            self._ops_log_handler = configure_ops_log(self._store_path)

        self._backend = backend if backend is not None else create_backend(self._config)
        self._records = RecordStore(
            self._backend,
            self._config.storage_key,
            optimistic_lock=self._config.optimistic_lock,
        )
        self._reconciler = Reconciler(self._records)
        self._exporter = Exporter(self._records)
        logger.debug("Opened store at %s (backend=%s)", self._store_path, self._config.backend)

    @property
    def store_path(self) -> Path:
        return self._store_path

    @property
    def records(self) -> RecordStore:
        """The underlying RecordStore."""
        return self._records

    # -------------------------------------------------------------------------
    # Records
    # -------------------------------------------------------------------------

    def save(self, host: str, items: Iterable, name: Optional[str] = None) -> Record:
        return self._records.create(host, items, name=name)

    def capture(self, host: str, adapter: CaptureAdapter, name: Optional[str] = None) -> Record:
        return self._records.capture(host, adapter, name=name)

    def list_records(self, host: str, name_filter: str = "") -> list[Record]:
        """Records for *host*, newest first, optionally filtered by name."""
        if name_filter:
            return self._records.filter_records(host, name_filter)
        return self._records.list_records(host)

    def get(self, host: str, record_id: str) -> Optional[Record]:
        return self._records.get(host, record_id)

    def hosts(self) -> dict[str, int]:
        """Record count per host."""
        return self._records.summary()

    def rename(self, host: str, record_id: str, name: str) -> bool:
        return self._records.rename(host, record_id, name)

    def delete(self, host: str, record_id: str) -> bool:
        return self._records.delete(host, record_id)

    def apply(self, host: str, record_id: str, target: ApplyTarget) -> Optional[ApplyResult]:
        """Write a saved record back to *target*. None if the record is missing."""
        return self._records.apply_saved(host, record_id, target)

    # -------------------------------------------------------------------------
    # Export / Import
    # -------------------------------------------------------------------------

    def export_all(self) -> str:
        return self._exporter.export_all()

    def export_host(self, host: str) -> str:
        return self._exporter.export_host(host)

    def export_record(self, host: str, record_id: str) -> str:
        """Export one stored record by id; '' if the host is invalid or the record doesn't exist."""
        try:
            record = self._records.get(host, record_id)
        except ValidationError:
            return ""
        if record is None:
            return ""
        return self._exporter.export_record(host, record)

    def import_text(self, text: str, mode: str = MERGE) -> ImportResult:
        """
        Import any exported shape, detected from the text.

        ``mode="overwrite"`` replaces the whole store with the imported
        content. Confirm with the user first.
        """
        result = self._reconciler.import_smart(text, mode)
        logger.info("Import: %s", result.message)
        return result

    def close(self) -> None:
        """Detach the ops log handler."""
        if self._ops_log_handler is not None:
            logging.getLogger("tokenkeep").removeHandler(self._ops_log_handler)
            self._ops_log_handler.close()
            self._ops_log_handler = None

    def __enter__(self) -> "TokenKeeper":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
