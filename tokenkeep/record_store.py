"""
Record store backed by a single persisted JSON blob.

The blob maps a host to the list of records saved for it. It is the source
of truth for:
- Record identity (id, backfilled for entries that predate ids)
- Record names and creation dates
- The captured item payloads

Every mutating call reads the blob, rebuilds the whole mapping in memory and
writes it back in one ``set``. With ``optimistic_lock`` on, the blob carries a
revision counter and a write from a stale read raises Conflict.
"""

import json
import logging
import threading
from collections.abc import Iterable, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional

from .config import DEFAULT_STORAGE_KEY
from .errors import Conflict, EmptyCapture, InvalidPayload
from .ids import new_record_id
from .protocol import ApplyTarget, CaptureAdapter, PersistenceBackend
from .types import Item, ItemType, Record, local_datetime, require_host, utc_now

logger = logging.getLogger(__name__)


@dataclass
class StoreSnapshot:
    """
    The persisted mapping as read at one point in time.

    ``records`` holds the raw host -> list-of-dicts mapping, exactly as it will
    be serialized. ``revision`` is the counter value the read saw.
    """
    records: dict[str, Any] = field(default_factory=dict)
    revision: int = 0


@dataclass
class ApplyResult:
    """Outcome of writing items back to the external medium."""
    applied: int = 0
    skipped: int = 0
    reload_required: bool = False


def _needs_id(entry: Any) -> bool:
    if not isinstance(entry, dict):
        return False
    value = entry.get("id")
    return not isinstance(value, str) or not value.strip()


def _backfill_ids(bucket: Any) -> int:
    """Give every record in *bucket* lacking an id a fresh one. Returns count."""
    if not isinstance(bucket, list):
        return 0
    repaired = 0
    for entry in bucket:
        if _needs_id(entry):
            entry["id"] = new_record_id()
            repaired += 1
    return repaired


def find_record_index(bucket: Any, record_id: str) -> int:
    if not isinstance(bucket, list):
        return -1
    for i, entry in enumerate(bucket):
        if isinstance(entry, dict) and entry.get("id") == record_id:
            return i
    return -1


def _item_dict(item: Any) -> dict:
    if isinstance(item, Item):
        return item.to_dict()
    if isinstance(item, dict):
        return dict(item)
    raise InvalidPayload(f"Not an item: {item!r}")


class RecordStore:
    """
    Host-namespaced record storage over a PersistenceBackend.

    The store keeps no state between calls apart from what is persisted, so
    several RecordStore instances may share one backend. Calls on a single
    instance are serialized by a re-entrant lock.
    """

    def __init__(
        self,
        backend: PersistenceBackend,
        storage_key: str = DEFAULT_STORAGE_KEY,
        *,
        optimistic_lock: bool = True,
    ):
        """
        Args:
            backend: Where the blob lives
            storage_key: The single key the blob is stored under
            optimistic_lock: Persist a revision counter and refuse stale writes
        """
        self._backend = backend
        self._key = storage_key
        self._optimistic = optimistic_lock
        self._lock = threading.RLock()

    @property
    def storage_key(self) -> str:
        return self._key

    # -------------------------------------------------------------------------
    # Blob I/O
    # -------------------------------------------------------------------------

    def _read_blob(self) -> tuple[dict, int]:
        raw = self._backend.get(self._key, "{}")
        try:
            data = json.loads(raw) if raw else {}
        except json.JSONDecodeError as e:
            logger.warning("Stored records under %r are not valid JSON (%s); "
                           "treating as empty", self._key, e)
            return {}, 0
        if not isinstance(data, dict):
            logger.warning("Stored records under %r are not an object; "
                           "treating as empty", self._key)
            return {}, 0

        revision = data.get("revision")
        records = data.get("records")
        # A host bucket is a list, so an int revision marks the envelope
        if isinstance(revision, int) and not isinstance(revision, bool) \
                and isinstance(records, dict):
            return records, revision
        return data, 0

    def load(self) -> StoreSnapshot:
        """Read the persisted mapping and the revision it was written at."""
        with self._lock:
            records, revision = self._read_blob()
            return StoreSnapshot(records=records, revision=revision)

    def commit(self, snapshot: StoreSnapshot) -> None:
        """
        Persist *snapshot* as the whole store.

        Raises:
            Conflict: optimistic locking is on and another writer has
                persisted since *snapshot* was loaded. Nothing is written.
        """
        with self._lock:
            if not self._optimistic:
                self._backend.set(self._key, json.dumps(snapshot.records, ensure_ascii=False))
                return

            _, current = self._read_blob()
            if current != snapshot.revision:
                raise Conflict(snapshot.revision, current)
            blob = {"revision": snapshot.revision + 1, "records": snapshot.records}
            self._backend.set(self._key, json.dumps(blob, ensure_ascii=False))
            snapshot.revision += 1

    @contextmanager
    def transaction(self, *, repair: bool = False) -> Iterator[StoreSnapshot]:
        """
        Load, let the caller mutate, commit.

        The lock is held throughout. If the body raises, nothing is written.
        With *repair*, id-less records get ids before the body runs.
        """
        with self._lock:
            if repair:
                snapshot, _ = self._load_repaired()
            else:
                snapshot = self.load()
            yield snapshot
            self.commit(snapshot)

    def _load_repaired(self, host: Optional[str] = None) -> tuple[StoreSnapshot, int]:
        """Load and backfill ids for one host (or every host when None)."""
        snapshot = self.load()
        if host is not None:
            repaired = _backfill_ids(snapshot.records.get(host))
        else:
            repaired = sum(_backfill_ids(b) for b in snapshot.records.values())
        if repaired:
            logger.debug("Assigned ids to %d record(s)%s", repaired,
                         f" for {host}" if host else "")
        return snapshot, repaired

    # -------------------------------------------------------------------------
    # Repair
    # -------------------------------------------------------------------------

    def repair_ids(self, host: str) -> int:
        """
        Assign ids to records of *host* that lack one.

        Persists only when something changed. Returns the number repaired.
        """
        host = require_host(host)
        with self._lock:
            snapshot, repaired = self._load_repaired(host)
            if repaired:
                self.commit(snapshot)
            return repaired

    def repair_all_ids(self) -> int:
        """Assign ids to id-less records across every host."""
        with self._lock:
            snapshot, repaired = self._load_repaired()
            if repaired:
                self.commit(snapshot)
            return repaired

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def list_records(self, host: str) -> list[Record]:
        """
        Records for *host*, newest first.

        Returns copies; the persisted (insertion) order is left alone.
        Entries too malformed to show are omitted.
        """
        host = require_host(host)
        with self._lock:
            snapshot, repaired = self._load_repaired(host)
            if repaired:
                self.commit(snapshot)

        bucket = snapshot.records.get(host)
        if not isinstance(bucket, list):
            return []

        records = []
        for entry in bucket:
            record = Record.from_dict(entry)
            if record is None:
                logger.warning("Skipping malformed stored record for %s", host)
                continue
            records.append(record)
        return sorted(records, key=lambda r: r.sort_time, reverse=True)

    def filter_records(self, host: str, query: str) -> list[Record]:
        """Records of *host* whose display name contains *query* (case-insensitive)."""
        records = self.list_records(host)
        needle = (query or "").strip().lower()
        if not needle:
            return records
        return [r for r in records if needle in r.display_name.lower()]

    def get(self, host: str, record_id: str) -> Optional[Record]:
        """Retrieve one record by id, or None."""
        for record in self.list_records(host):
            if record.id == record_id:
                return record
        return None

    def hosts(self) -> list[str]:
        """Hosts that have a record list, in storage order."""
        return [h for h, bucket in self.load().records.items() if isinstance(bucket, list)]

    def summary(self) -> dict[str, int]:
        """Record count per host."""
        return {
            h: len(bucket)
            for h, bucket in self.load().records.items()
            if isinstance(bucket, list)
        }

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def create(
        self,
        host: str,
        items: Iterable,
        name: Optional[str] = None,
    ) -> Record:
        """
        Save a new record of *items* for *host*.

        Args:
            host: Host or URL the items belong to
            items: Item objects or {type, key, value} dicts
            name: Optional label; defaults to the local rendering of the date

        Raises:
            ValidationError: host is empty or reserved
            EmptyCapture: there are no items to save
        """
        host = require_host(host)
        data = [_item_dict(item) for item in items]
        if not data:
            raise EmptyCapture(f"Nothing captured for {host}; record not saved")

        date = utc_now()
        label = name.strip() if isinstance(name, str) else ""

        with self.transaction() as snapshot:
            bucket = snapshot.records.get(host)
            if not isinstance(bucket, list):
                bucket = []
                snapshot.records[host] = bucket

            record_id = new_record_id()
            while find_record_index(bucket, record_id) >= 0:
                record_id = new_record_id()

            record = Record(
                id=record_id,
                date=date,
                name=label or local_datetime(date),
                data=data,
            )
            bucket.append(record.to_dict())

        logger.info("Saved record %s for %s (%d items)", record.id, host, len(data))
        return record

    def capture(
        self,
        host: str,
        adapter: CaptureAdapter,
        name: Optional[str] = None,
    ) -> Record:
        """Collect items from *adapter* and save them as a new record."""
        return self.create(host, adapter.collect(), name=name)

    def rename(self, host: str, record_id: str, new_name: Optional[str]) -> bool:
        """
        Set the name of a record.

        A blank name resets it to the date rendering. Unknown ids are
        ignored. Returns True if a record was renamed.
        """
        host = require_host(host)
        with self._lock:
            snapshot, repaired = self._load_repaired(host)
            bucket = snapshot.records.get(host)
            index = find_record_index(bucket, record_id)
            if index < 0:
                if repaired:
                    self.commit(snapshot)
                return False

            entry = bucket[index]
            trimmed = new_name.strip() if isinstance(new_name, str) else ""
            entry["name"] = trimmed or local_datetime(entry.get("date"))
            self.commit(snapshot)

        logger.info("Renamed record %s for %s", record_id, host)
        return True

    def delete(self, host: str, record_id: str) -> bool:
        """
        Delete a record.

        The host entry disappears with its last record. Returns True if a
        record was deleted, False if the id was not found.
        """
        host = require_host(host)
        with self._lock:
            snapshot, repaired = self._load_repaired(host)
            bucket = snapshot.records.get(host)
            index = find_record_index(bucket, record_id)
            if index < 0:
                if repaired:
                    self.commit(snapshot)
                return False

            del bucket[index]
            if not bucket:
                del snapshot.records[host]
            self.commit(snapshot)

        logger.info("Deleted record %s for %s", record_id, host)
        return True

    # -------------------------------------------------------------------------
    # Apply back to the page
    # -------------------------------------------------------------------------

    @staticmethod
    def apply_record(data: Any, target: ApplyTarget) -> ApplyResult:
        """
        Write a record's items back to *target*.

        Local entries go through set_local, everything else is written as a
        cookie. Items without a string key are skipped. The caller must
        reload the page afterwards.

        Raises:
            InvalidPayload: *data* is not a list of items
        """
        if isinstance(data, (str, bytes, dict)) or not isinstance(data, Sequence):
            raise InvalidPayload("Record data must be a list of items")

        result = ApplyResult(reload_required=True)
        for item in data:
            if isinstance(item, Item):
                item = item.to_dict()
            if not isinstance(item, dict) or not isinstance(item.get("key"), str):
                result.skipped += 1
                continue
            value = item.get("value")
            value = "" if value is None else str(value)
            if item.get("type") == ItemType.LOCAL.value:
                target.set_local(item["key"], value)
            else:
                target.set_cookie(item["key"], value)
            result.applied += 1
        return result

    def apply_saved(self, host: str, record_id: str, target: ApplyTarget) -> Optional[ApplyResult]:
        """Apply a stored record by id. Returns None if it doesn't exist."""
        record = self.get(host, record_id)
        if record is None:
            return None
        return self.apply_record(record.data, target)

    @staticmethod
    def apply_edits(edits: Iterable, target: ApplyTarget) -> ApplyResult:
        """
        Write edited values to *target*, touching only what changed.

        An empty value removes an existing entry. ``reload_required`` is set
        only when something was written.
        """
        result = ApplyResult()
        local = target.local_entries()
        cookies = target.cookies()

        for edit in edits:
            if isinstance(edit, Item):
                edit = edit.to_dict()
            if not isinstance(edit, dict) or not isinstance(edit.get("key"), str) \
                    or not edit["key"]:
                result.skipped += 1
                continue
            key = edit["key"]
            new_value = edit.get("value") or ""

            if edit.get("type") == ItemType.LOCAL.value:
                old_value = local.get(key) or ""
                if new_value == "" and old_value != "":
                    target.remove_local(key)
                    local.pop(key, None)
                elif new_value != old_value:
                    target.set_local(key, new_value)
                    local[key] = new_value
                else:
                    continue
            else:
                has_old = key in cookies
                if new_value == "":
                    if not has_old:
                        continue
                    target.remove_cookie(key)
                    del cookies[key]
                elif has_old and cookies[key] == new_value:
                    continue
                else:
                    target.set_cookie(key, new_value)
                    cookies[key] = new_value
            result.applied += 1

        result.reload_required = result.applied > 0
        return result
