"""
Export serializer: store contents as versioned, human-pasteable JSON.

Every snapshot carries ``schemaVersion`` so later readers can tell what wrote
it. Exported records always have ids; id-less records are repaired (and the
repair persisted) before they are written out.
"""

import json
import logging
from collections.abc import Iterable
from typing import Any

from .errors import ValidationError
from .reconcile import sanitize_record
from .record_store import RecordStore
from .types import SCHEMA_VERSION, Record, require_host

logger = logging.getLogger(__name__)


def _dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False)


def single_record_payload(host: Any, record: Any) -> dict | None:
    """
    Build ``{schemaVersion, host, record}`` for one record.

    Returns None when the host is invalid or reserved, or the record has no
    data list.
    """
    try:
        host = require_host(host)
    except ValidationError:
        return None
    if isinstance(record, Record):
        record = record.to_dict()
    cleaned = sanitize_record(record, host)
    if cleaned is None:
        return None
    return {"schemaVersion": SCHEMA_VERSION, "host": host, "record": cleaned.to_dict()}


class Exporter:
    """Serializes a RecordStore, whole or in part."""

    def __init__(self, store: RecordStore):
        self._store = store

    def export_all(self) -> str:
        """Every host and record: ``{schemaVersion, records: {host: [...]}}``."""
        repaired = self._store.repair_all_ids()
        if repaired:
            logger.info("Assigned ids to %d record(s) before export", repaired)
        records = self._store.load().records
        return _dumps({"schemaVersion": SCHEMA_VERSION, "records": records})

    def export_host(self, host: Any) -> str:
        """
        One host's records in the bulk shape.

        Returns '' when *host* is invalid or reserved.
        """
        try:
            host = require_host(host)
        except ValidationError as e:
            logger.debug("Not exporting: %s", e)
            return ""
        self._store.repair_ids(host)
        bucket = self._store.load().records.get(host)
        if not isinstance(bucket, list):
            bucket = []
        return _dumps({"schemaVersion": SCHEMA_VERSION, "records": {host: bucket}})

    def export_record(self, host: Any, record: Any) -> str:
        """
        One record as ``{schemaVersion, host, record}``.

        Returns '' when the host or the record fails validation.
        """
        payload = single_record_payload(host, record)
        if payload is None:
            return ""
        return _dumps(payload)

    def export_records(self, selection: Iterable[tuple[Any, Any]]) -> str:
        """
        Several records as an array of single-record payloads.

        *selection* yields (host, record) pairs; invalid pairs are left out.
        """
        payloads = []
        for host, record in selection:
            payload = single_record_payload(host, record)
            if payload is None:
                logger.debug("Leaving invalid record for %r out of export", host)
                continue
            payloads.append(payload)
        return _dumps(payloads)
