"""
Capture-side helpers: turning page state into items and back.

Reading a live browser is outside this package. These helpers cover the
parts that are plain text handling (cookie headers, merging cookie sources)
and provide in-memory adapters for embedding and tests.
"""

from collections.abc import Mapping
from typing import Optional
from urllib.parse import quote, unquote

from .types import Item, ItemType

# Expiry used to delete a cookie
COOKIE_EPOCH = "Thu, 01 Jan 1970 00:00:00 GMT"

# Names with these prefixes are only accepted by browsers over HTTPS
_SECURE_PREFIXES = ("__Secure-", "__Host-")

# Characters encodeURIComponent leaves alone, beyond quote()'s defaults
_COOKIE_SAFE = "!*'()"


def parse_cookie_header(header: Optional[str]) -> dict[str, str]:
    """
    Parse a ``document.cookie`` / ``Cookie:`` header into a dict.

    Entries without '=' are ignored. Values are percent-decoded; the key is
    kept as written. Later duplicates win.
    """
    cookies: dict[str, str] = {}
    if not header:
        return cookies

    for raw in header.split(";"):
        trimmed = raw.strip()
        if not trimmed:
            continue
        eq = trimmed.find("=")
        if eq == -1:
            continue
        key = trimmed[:eq]
        cookies[key] = unquote(trimmed[eq + 1:])
    return cookies


def build_cookie_string(key: str, value: Optional[str], expires: Optional[str] = None) -> str:
    """Build a Set-Cookie style assignment scoped to path=/."""
    parts = [f"{key}={quote(value or '', safe=_COOKIE_SAFE)}", "path=/"]
    if expires:
        parts.append(f"expires={expires}")
    if key.startswith(_SECURE_PREFIXES):
        parts.append("Secure")
    return "; ".join(parts)


def collect_items(
    local: Optional[Mapping[str, str]] = None,
    cookies: Optional[Mapping[str, str]] = None,
    extra_cookies: Optional[Mapping[str, str]] = None,
) -> list[Item]:
    """
    Build the item list for a new record.

    Local entries come first, then cookies. ``extra_cookies`` is a second
    cookie source (e.g. an extension API that also sees HttpOnly cookies);
    it only fills names the primary source lacks. Empty keys are dropped.
    """
    items: list[Item] = []
    for key, value in (local or {}).items():
        if key:
            items.append(Item(ItemType.LOCAL.value, key, value or ""))

    merged = dict(cookies or {})
    for key, value in (extra_cookies or {}).items():
        if key not in merged:
            merged[key] = value if value is not None else ""

    for key, value in merged.items():
        if key:
            items.append(Item(ItemType.COOKIE.value, key, value))
    return items


class StaticCaptureAdapter:
    """Capture adapter over fixed local entries and a cookie header."""

    def __init__(
        self,
        local: Optional[Mapping[str, str]] = None,
        cookie_header: Optional[str] = None,
        extra_cookies: Optional[Mapping[str, str]] = None,
    ):
        self._local = dict(local or {})
        self._cookie_header = cookie_header
        self._extra = dict(extra_cookies or {})

    def collect(self) -> list[Item]:
        return collect_items(
            self._local,
            parse_cookie_header(self._cookie_header),
            self._extra,
        )


class MemoryMedium:
    """
    In-memory page state: local entries plus a cookie jar.

    Every cookie write is also recorded as the assignment string a browser
    would receive, in ``cookie_writes``.
    """

    def __init__(
        self,
        local: Optional[Mapping[str, str]] = None,
        cookies: Optional[Mapping[str, str]] = None,
    ):
        self._local = dict(local or {})
        self._cookies = dict(cookies or {})
        self.cookie_writes: list[str] = []

    def set_local(self, key: str, value: str) -> None:
        self._local[key] = value

    def remove_local(self, key: str) -> None:
        self._local.pop(key, None)

    def set_cookie(self, key: str, value: str, expires: Optional[str] = None) -> None:
        self.cookie_writes.append(build_cookie_string(key, value, expires))
        if expires == COOKIE_EPOCH:
            self._cookies.pop(key, None)
        else:
            self._cookies[key] = value

    def remove_cookie(self, key: str) -> None:
        self.set_cookie(key, "", COOKIE_EPOCH)

    def local_entries(self) -> dict[str, str]:
        return dict(self._local)

    def cookies(self) -> dict[str, str]:
        return dict(self._cookies)

    def collect(self) -> list[Item]:
        return collect_items(self._local, self._cookies)
