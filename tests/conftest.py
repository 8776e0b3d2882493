"""
Shared pytest fixtures for tokenkeep tests.

Stores run over an in-memory backend unless a test needs files on disk.
"""

import json

import pytest

from tokenkeep.backend import MemoryBackend
from tokenkeep.config import DEFAULT_STORAGE_KEY
from tokenkeep.export import Exporter
from tokenkeep.reconcile import Reconciler
from tokenkeep.record_store import RecordStore
from tokenkeep.types import Item


def persisted(backend, key: str = DEFAULT_STORAGE_KEY) -> dict:
    """The host -> records mapping as it sits in the backend."""
    blob = json.loads(backend.get(key, "{}"))
    if isinstance(blob.get("revision"), int) and isinstance(blob.get("records"), dict):
        return blob["records"]
    return blob


def make_record(id=None, data=None, date="2026-01-01T00:00:00.000Z", name=None):
    """Build a raw record dict for seeding or import."""
    record = {"data": data if data is not None else [
        {"type": "Cookie", "key": "session", "value": "abc"},
    ]}
    if id is not None:
        record["id"] = id
    if date is not None:
        record["date"] = date
    if name is not None:
        record["name"] = name
    return record


def seed(backend, records: dict, key: str = DEFAULT_STORAGE_KEY) -> None:
    """Write a legacy (bare mapping) blob straight into the backend."""
    backend.set(key, json.dumps(records))


@pytest.fixture
def backend():
    return MemoryBackend()


@pytest.fixture
def store(backend):
    return RecordStore(backend)


@pytest.fixture
def reconciler(store):
    return Reconciler(store)


@pytest.fixture
def exporter(store):
    return Exporter(store)


@pytest.fixture
def fresh_store():
    """A second, empty store for transfer tests."""
    return RecordStore(MemoryBackend())


@pytest.fixture
def items():
    """A typical capture: one local entry and two cookies."""
    return [
        Item("localStorage", "access_token", "eyJhbGciOi"),
        Item("Cookie", "session", "abc"),
        Item("Cookie", "theme", "dark"),
    ]
