"""
Protocol definitions for the collaborators around the record store.

- PersistenceBackend: holds the one JSON blob the store lives in
- CaptureAdapter: reads the current cookies / local entries of a site
- ApplyTarget: receives items written back from a saved record
"""

from typing import Optional, Protocol, runtime_checkable

from .types import Item


@runtime_checkable
class PersistenceBackend(Protocol):
    """
    Synchronous string storage keyed by name.

    Implemented by:
    - MemoryBackend (tests, embedding)
    - FileBackend (one JSON file per key in the store directory)
    """

    def get(self, key: str, default: str) -> str: ...

    def set(self, key: str, value: str) -> None: ...


@runtime_checkable
class CaptureAdapter(Protocol):
    """
    Source of items for a new record.

    Returns an empty list, never raises, when nothing is found.
    """

    def collect(self) -> list[Item]: ...


@runtime_checkable
class ApplyTarget(Protocol):
    """External medium that saved items are written back to."""

    def set_local(self, key: str, value: str) -> None: ...

    def remove_local(self, key: str) -> None: ...

    def set_cookie(self, key: str, value: str, expires: Optional[str] = None) -> None: ...

    def remove_cookie(self, key: str) -> None: ...

    def local_entries(self) -> dict[str, str]: ...

    def cookies(self) -> dict[str, str]: ...
