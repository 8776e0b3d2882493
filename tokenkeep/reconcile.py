"""
Import reconciliation: bringing an exported snapshot into the store.

Three payload shapes are understood:

**Bulk**: every host, as written by ``export_all`` / ``export_host``::

    {"schemaVersion": 1, "records": {"example.com": [{...}, ...]}}

or the bare mapping ``{"example.com": [...]}``.

**Single**: one record, as written by ``export_record``::

    {"schemaVersion": 1, "host": "example.com", "record": {...}}

``hostname`` or ``url`` may stand in for ``host``, and the record fields may
be inlined at the top level instead of under ``record``.

**Array**: a list of single-record payloads.

Records are matched by id: a known id replaces the stored record in place,
an unknown id is appended. Bad hosts and malformed records are counted as
skipped and never stop the rest of the batch.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

from .errors import Conflict, ParseError, ValidationError
from .ids import content_record_id, new_record_id
from .record_store import RecordStore, StoreSnapshot, find_record_index
from .types import (
    SCHEMA_VERSION,
    Record,
    is_safe_host_key,
    local_datetime,
    normalize_host,
    require_host,
    utc_now,
)

logger = logging.getLogger(__name__)

MERGE = "merge"
OVERWRITE = "overwrite"

# Keys that may carry the host of a single-record payload, in priority order
_HOST_FIELDS = ("host", "hostname", "url")


@dataclass
class ImportResult:
    """Outcome of an import call. ``ok`` is False only for unusable input."""
    ok: bool
    added: int = 0
    updated: int = 0
    skipped: int = 0
    message: str = ""
    schema_version: Optional[Any] = None


def sanitize_record(raw: Any, host: Optional[str] = None) -> Optional[Record]:
    """
    Validate and complete an incoming record.

    Returns None when *raw* is not an object or its ``data`` is not a list.
    Missing or blank ``date`` becomes now and ``name`` the local rendering
    of the date. A missing ``id`` is derived from the content when *host* is
    known (so re-imports match), else freshly generated.

    Re-importing leaves the stored record unchanged only when the input
    carries a ``date``; without one, each import stamps a new date (and a
    new default name) onto the same id.
    """
    if not isinstance(raw, dict):
        return None
    data = raw.get("data")
    if not isinstance(data, list):
        return None

    date = raw.get("date")
    if not isinstance(date, str) or not date.strip():
        date = utc_now()

    record_id = raw.get("id")
    if not isinstance(record_id, str) or not record_id.strip():
        record_id = content_record_id(host, raw) if host else new_record_id()

    name = raw.get("name")
    name = name.strip() if isinstance(name, str) else ""

    return Record(
        id=record_id,
        date=date,
        name=name or local_datetime(date),
        data=data,
    )


def _parse(text: Any) -> Any:
    """Parse import text, raising ParseError for empty or invalid JSON."""
    raw = text.strip() if isinstance(text, str) else ""
    if not raw:
        raise ParseError("Nothing to import: the text is empty")
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON: {e}") from e


def _host_field(payload: dict) -> Any:
    """First non-null host field, like ``host ?? hostname ?? url``."""
    for key in _HOST_FIELDS:
        value = payload.get(key)
        if value is not None:
            return value
    return None


def _upsert(bucket: list, record: Record) -> bool:
    """Replace by id or append. Returns True if an existing record was replaced."""
    index = find_record_index(bucket, record.id)
    if index >= 0:
        bucket[index] = record.to_dict()
        return True
    bucket.append(record.to_dict())
    return False


def _bucket(snapshot: StoreSnapshot, host: str) -> list:
    bucket = snapshot.records.get(host)
    if not isinstance(bucket, list):
        bucket = []
        snapshot.records[host] = bucket
    return bucket


def _summary(result: ImportResult) -> str:
    return (f"Import complete: {result.added} added, {result.updated} updated, "
            f"{result.skipped} skipped.")


class Reconciler:
    """
    Merges exported text into a RecordStore.

    Every public method returns an ImportResult; bad input never raises.
    ``overwrite`` is destructive and the reconciler does not ask: confirm
    with the user before passing it.
    """

    def __init__(self, store: RecordStore):
        self._store = store

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    def import_all(self, text: str, mode: str = MERGE) -> ImportResult:
        """Import a bulk snapshot. Any mode other than 'overwrite' merges."""
        try:
            parsed = _parse(text)
        except ParseError as e:
            return ImportResult(ok=False, message=str(e))
        return self._import_bulk(parsed, mode)

    def import_single(self, text: str) -> ImportResult:
        """Import one single-record payload, always merging."""
        try:
            parsed = _parse(text)
        except ParseError as e:
            return ImportResult(ok=False, message=str(e))
        return self._import_singles([parsed], array=False)

    def import_smart(self, text: str, mode: str = MERGE) -> ImportResult:
        """
        Detect the payload shape and import it.

        Order: a JSON array is a list of single-record payloads; an object
        with a usable host field plus a ``record`` object or a ``data`` list
        is one single-record payload; anything else is a bulk snapshot.
        """
        try:
            parsed = _parse(text)
        except ParseError as e:
            return ImportResult(ok=False, message=str(e))

        if isinstance(parsed, list):
            return self._import_singles(parsed, array=True)

        if isinstance(parsed, dict):
            host_value = _host_field(parsed)
            has_host = isinstance(host_value, str) and bool(normalize_host(host_value))
            has_record = isinstance(parsed.get("record"), (dict, list)) \
                or isinstance(parsed.get("data"), list)
            if has_host and has_record:
                return self._import_singles([parsed], array=False)

        return self._import_bulk(parsed, OVERWRITE if mode == OVERWRITE else MERGE)

    # -------------------------------------------------------------------------
    # Bulk
    # -------------------------------------------------------------------------

    def _import_bulk(self, parsed: Any, mode: str) -> ImportResult:
        root = parsed
        schema_version = None
        if isinstance(parsed, dict):
            schema_version = parsed.get("schemaVersion")
            if isinstance(parsed.get("records"), (dict, list)):
                root = parsed["records"]
        if not isinstance(root, dict):
            return ImportResult(
                ok=False,
                message="Unrecognized format: expected {host: [records]} "
                        "or {records: {...}}",
            )
        self._check_version(schema_version)

        result = ImportResult(ok=True, schema_version=schema_version)
        overwrite = mode == OVERWRITE
        try:
            with self._store.transaction(repair=not overwrite) as snapshot:
                if overwrite:
                    snapshot.records.clear()
                touched: list[str] = []

                for key, incoming in root.items():
                    host = normalize_host(key)
                    if not host or not is_safe_host_key(host):
                        logger.warning("Skipping import for invalid host key %r", key)
                        result.skipped += 1
                        continue
                    if not isinstance(incoming, list):
                        logger.warning("Skipping %r: records are not a list", key)
                        result.skipped += 1
                        continue

                    dest = _bucket(snapshot, host)
                    touched.append(host)
                    for raw in incoming:
                        record = sanitize_record(raw, host)
                        if record is None:
                            result.skipped += 1
                            continue
                        if _upsert(dest, record):
                            result.updated += 1
                        else:
                            result.added += 1

                for host in touched:
                    if not snapshot.records.get(host):
                        snapshot.records.pop(host, None)
        except Conflict as e:
            logger.warning("Import aborted: %s", e)
            return ImportResult(ok=False, message=f"{e}; nothing was imported, retry.")

        result.message = _summary(result)
        logger.info("Bulk import (%s): %d added, %d updated, %d skipped",
                    OVERWRITE if overwrite else MERGE,
                    result.added, result.updated, result.skipped)
        return result

    # -------------------------------------------------------------------------
    # Single records
    # -------------------------------------------------------------------------

    @staticmethod
    def _single_to_record(payload: Any) -> tuple[str, Record]:
        """Resolve the host and record of one single-record payload."""
        if not isinstance(payload, dict):
            raise ValidationError("Single-record payload must be an object")
        host_value = _host_field(payload)
        try:
            host = require_host(host_value if isinstance(host_value, str) else "")
        except ValidationError:
            raise ValidationError("Missing a valid host/hostname/url") from None

        candidate = payload.get("record")
        if not isinstance(candidate, (dict, list)):
            candidate = payload
        record = sanitize_record(candidate, host)
        if record is None:
            raise ValidationError("Malformed record: it needs a data list")
        return host, record

    def _import_singles(self, payloads: list, *, array: bool) -> ImportResult:
        result = ImportResult(ok=True)
        if array:
            for payload in payloads:
                if isinstance(payload, dict):
                    self._check_version(payload.get("schemaVersion"))
        elif isinstance(payloads[0], dict):
            result.schema_version = payloads[0].get("schemaVersion")
            self._check_version(result.schema_version)

        resolved: list[tuple[str, Record]] = []
        errors: list[str] = []
        for payload in payloads:
            try:
                resolved.append(self._single_to_record(payload))
            except ValidationError as e:
                errors.append(str(e))
                result.skipped += 1

        if resolved:
            try:
                with self._store.transaction(repair=True) as snapshot:
                    for host, record in resolved:
                        if _upsert(_bucket(snapshot, host), record):
                            result.updated += 1
                        else:
                            result.added += 1
            except Conflict as e:
                logger.warning("Import aborted: %s", e)
                return ImportResult(ok=False, message=f"{e}; nothing was imported, retry.")

        result.ok = bool(resolved)
        if array:
            result.message = (f"Import complete: {len(resolved)} succeeded, "
                              f"{result.skipped} failed.")
        elif result.ok:
            action = "updated" if result.updated else "added"
            result.message = f"Imported into {resolved[0][0]}: 1 record {action}."
        else:
            result.message = errors[0]
        logger.info("Single-record import: %d added, %d updated, %d failed",
                    result.added, result.updated, result.skipped)
        return result

    @staticmethod
    def _check_version(version: Any) -> None:
        if version is not None and version != SCHEMA_VERSION:
            logger.warning("Import schemaVersion %r differs from %d; importing anyway",
                           version, SCHEMA_VERSION)
