"""
Data types for tokenkeep.
"""

import copy
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from urllib.parse import urlsplit

from .errors import ValidationError


# Namespace keys that would shadow object internals in the legacy JSON shape
RESERVED_HOST_KEYS = frozenset({"__proto__", "prototype", "constructor"})

# Version written into every export. Imports accept any version.
SCHEMA_VERSION = 1

# URI scheme pattern per RFC 3986: scheme = ALPHA *( ALPHA / DIGIT / "+" / "-" / "." )
_URI_SCHEME_PATTERN = re.compile(r'^[a-zA-Z][a-zA-Z0-9+.-]*://')

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def utc_now() -> str:
    """Current UTC timestamp: YYYY-MM-DDTHH:MM:SS.mmmZ.

    Millisecond precision with a 'Z' suffix, matching records written by
    the browser script.
    """
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_utc_timestamp(ts: str) -> datetime:
    """Parse a stored timestamp string to a timezone-aware UTC datetime.

    Accepts 'Z' or '+00:00' suffixes; naive values are taken as UTC.
    """
    ts = ts.strip().replace("Z", "+00:00")
    dt = datetime.fromisoformat(ts)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def local_datetime(utc_iso: Optional[str]) -> str:
    """Render a UTC ISO timestamp in the local timezone and locale.

    This is the fallback display name of a record. Missing input renders
    the current time; unparseable input is returned unchanged.
    """
    if not utc_iso or not utc_iso.strip():
        dt = datetime.now(timezone.utc)
    else:
        try:
            dt = parse_utc_timestamp(utc_iso)
        except (ValueError, OverflowError):
            return utc_iso
    return dt.astimezone().strftime("%x %X")


def _sort_timestamp(date: str) -> datetime:
    try:
        return parse_utc_timestamp(date)
    except (ValueError, OverflowError, AttributeError):
        return _EPOCH


# ---------------------------------------------------------------------------
# Host keys
# ---------------------------------------------------------------------------


def normalize_host(value: Any) -> str:
    """Canonicalize a namespace key. Returns '' when the input is unusable.

    Plain hostnames are taken verbatim (trimmed). Anything with a URI scheme
    prefix is parsed and reduced to its hostname.
    """
    if not isinstance(value, str):
        return ""
    trimmed = value.strip()
    if not trimmed:
        return ""

    if _URI_SCHEME_PATTERN.match(trimmed):
        try:
            parts = urlsplit(trimmed)
            _ = parts.port  # ValueError on a malformed port
        except ValueError:
            return ""
        hostname = parts.hostname or ""
        if hostname and ":" in hostname:
            # IPv6 literal
            return f"[{hostname}]"
        return hostname

    return trimmed


def is_safe_host_key(host: str) -> bool:
    """False for keys that collide with reserved property names."""
    return host not in RESERVED_HOST_KEYS


def require_host(value: Any) -> str:
    """Normalize and safety-check a host, raising ValidationError if either fails."""
    host = normalize_host(value)
    if not host:
        raise ValidationError(f"Invalid host: {value!r}")
    if not is_safe_host_key(host):
        raise ValidationError(f"Reserved name cannot be used as a host: {host!r}")
    return host


# ---------------------------------------------------------------------------
# Items and records
# ---------------------------------------------------------------------------


class ItemType(str, Enum):
    """Where a captured value lives on the page."""
    LOCAL = "localStorage"
    COOKIE = "Cookie"


@dataclass
class Item:
    """
    One captured key/value pair.

    The payload is opaque: the store copies it and never looks inside.
    """
    type: str
    key: str
    value: str = ""

    def to_dict(self) -> dict:
        t = self.type.value if isinstance(self.type, ItemType) else self.type
        return {"type": t, "key": self.key, "value": self.value}

    @property
    def is_local(self) -> bool:
        return self.type == ItemType.LOCAL.value


@dataclass
class Record:
    """
    A saved snapshot of captured items for one host.

    Fields:
        id: Unique within the store, immutable once assigned
        date: ISO-8601 creation time (UTC); default sort key
        name: User-editable label; see display_name
        data: Item dicts, copied verbatim from the capture
    """
    id: str
    date: str
    name: str = ""
    data: list = field(default_factory=list)

    @property
    def display_name(self) -> str:
        """Trimmed name, or the locale rendering of the date when blank."""
        trimmed = self.name.strip() if isinstance(self.name, str) else ""
        return trimmed or local_datetime(self.date)

    @property
    def sort_time(self) -> datetime:
        return _sort_timestamp(self.date)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": self.date,
            "data": copy.deepcopy(self.data),
            "name": self.name,
        }

    @classmethod
    def from_dict(cls, raw: Any) -> Optional["Record"]:
        """
        Build a Record from a persisted entry, or None if it is malformed.

        Persisted entries are trusted to have been sanitized when they were
        written, so this only checks the structural minimum: an object whose
        data is a list. Missing strings become ''.
        """
        if not isinstance(raw, dict) or not isinstance(raw.get("data"), list):
            return None

        def _str(key: str) -> str:
            value = raw.get(key)
            return value if isinstance(value, str) else ""

        return cls(
            id=_str("id"),
            date=_str("date"),
            name=_str("name"),
            data=copy.deepcopy(raw["data"]),
        )

    def __str__(self) -> str:
        return f"Record(id={self.id!r}, name={self.display_name!r}, items={len(self.data)})"
