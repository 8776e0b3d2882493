"""
Record identifier generation.

Ids come from the OS random source (uuid4). When that source is missing the
generator degrades to time + weak randomness rather than failing, accepting a
small collision probability.

Records imported without an id get a content-addressed id instead, so
re-importing the same export is idempotent.
"""

import hashlib
import json
import logging
import random
import time
import uuid

logger = logging.getLogger(__name__)


def _fallback_id() -> str:
    """Millisecond clock in hex plus a non-cryptographic random suffix."""
    millis = int(time.time() * 1000)
    return f"{millis:x}-{random.getrandbits(52):x}"


def new_record_id() -> str:
    """Return a fresh record id, unique with overwhelming probability."""
    try:
        return str(uuid.uuid4())
    except NotImplementedError:
        # os.urandom has no entropy source on this platform
        logger.warning("No strong random source; using time-based record id")
        return _fallback_id()


def content_record_id(host: str, raw: dict) -> str:
    """
    Content-addressed id for an imported record that arrived without one.

    The same id-less record imported twice into the same host gets the same
    id, so the second import updates instead of duplicating:
    - same host, data, date and name → same id
    - any of those different → different id

    Args:
        host: Normalized host the record is imported into
        raw: The record as it arrived (before defaults are filled in)

    Returns:
        A UUID string, indistinguishable in form from new_record_id()
    """
    canonical = json.dumps(
        [host, raw.get("data"), raw.get("date"), raw.get("name")],
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
    )
    digest = hashlib.sha256(canonical.encode("utf-8")).digest()
    return str(uuid.UUID(bytes=digest[:16], version=4))
