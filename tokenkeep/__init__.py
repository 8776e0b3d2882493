"""
tokenkeep

Saved snapshots of a site's cookies and local-storage entries, grouped by
host, with JSON export and a reconciling import.

Quick Start:
    from tokenkeep import TokenKeeper, Item

    kp = TokenKeeper()  # uses ~/.tokenkeep/
    kp.save("example.com", [Item("Cookie", "session", "abc")], name="admin")
    for rec in kp.list_records("example.com"):
        print(rec.id, rec.display_name)

    backup = kp.export_all()
    TokenKeeper("/other/store").import_text(backup)             # merge by id
    TokenKeeper("/other/store").import_text(backup, "overwrite")

CLI Usage:
    tokenkeep save example.com --cookie "session=abc"
    tokenkeep list example.com --filter admin
    tokenkeep import backup.json --mode merge

Environment Variables:
    TOKENKEEP_STORE_PATH  - Override default store location
    TOKENKEEP_VERBOSE     - Set to 1 for debug logging
"""

from .api import TokenKeeper
from .backend import FileBackend, MemoryBackend, create_backend
from .capture import MemoryMedium, StaticCaptureAdapter, build_cookie_string, collect_items, parse_cookie_header
from .config import StoreConfig, load_config, load_or_create_config, save_config
from .errors import (
    BackendError,
    Conflict,
    EmptyCapture,
    InvalidPayload,
    ParseError,
    TokenKeepError,
    ValidationError,
)
from .export import Exporter
from .ids import new_record_id
from .reconcile import MERGE, OVERWRITE, ImportResult, Reconciler, sanitize_record
from .record_store import ApplyResult, RecordStore, StoreSnapshot
from .types import SCHEMA_VERSION, Item, ItemType, Record, is_safe_host_key, normalize_host, require_host

__version__ = "0.1.0"
__all__ = [
    "TokenKeeper",
    "RecordStore",
    "StoreSnapshot",
    "ApplyResult",
    "Reconciler",
    "ImportResult",
    "Exporter",
    "MERGE",
    "OVERWRITE",
    "SCHEMA_VERSION",
    "Item",
    "ItemType",
    "Record",
    "normalize_host",
    "is_safe_host_key",
    "require_host",
    "new_record_id",
    "sanitize_record",
    "MemoryBackend",
    "FileBackend",
    "create_backend",
    "MemoryMedium",
    "StaticCaptureAdapter",
    "build_cookie_string",
    "collect_items",
    "parse_cookie_header",
    "StoreConfig",
    "load_config",
    "save_config",
    "load_or_create_config",
    "TokenKeepError",
    "ValidationError",
    "ParseError",
    "EmptyCapture",
    "InvalidPayload",
    "Conflict",
    "BackendError",
]
