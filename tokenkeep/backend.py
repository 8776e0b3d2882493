"""
Pluggable persistence backend factory.

Creates the string store that holds the record blob, based on configuration.
Built-in backends are ``file`` (the default) and ``memory``. External backends
register via the ``tokenkeep.backends`` entry point group.

External backend packages provide a factory function::

    def create_backend(config: StoreConfig) -> PersistenceBackend:
        ...

and register it in their pyproject.toml::

    [project.entry-points."tokenkeep.backends"]
    my-backend = "my_package.backend:create_backend"
"""

import logging
import os
import re
import tempfile
from pathlib import Path

from .config import StoreConfig
from .errors import BackendError
from .protocol import PersistenceBackend

logger = logging.getLogger(__name__)

# Storage keys become file names
_KEY_PATTERN = re.compile(r'^[A-Za-z0-9_.-]+$')


class MemoryBackend:
    """Dict-backed backend. Nothing survives the process."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._values: dict[str, str] = dict(initial or {})
        self.writes = 0

    def get(self, key: str, default: str) -> str:
        return self._values.get(key, default)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value
        self.writes += 1


class FileBackend:
    """
    One UTF-8 file per key, under the store directory.

    Writes go to a temporary file that is renamed over the target, so a
    reader in another process sees either the old blob or the new one.
    """

    def __init__(self, root: Path):
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key) or key in (".", ".."):
            raise BackendError(f"Storage key is not a safe file name: {key!r}")
        return self._root / f"{key}.json"

    def get(self, key: str, default: str) -> str:
        path = self.path_for(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return default
        except OSError as e:
            raise BackendError(f"Cannot read {path}: {e}") from e

    def set(self, key: str, value: str) -> None:
        path = self.path_for(key)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{key}.", suffix=".tmp", dir=self._root)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except OSError as e:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise BackendError(f"Cannot write {path}: {e}") from e
        logger.debug("Wrote %d bytes to %s", len(value), path)


def create_backend(config: StoreConfig) -> PersistenceBackend:
    """
    Create the persistence backend named by the configuration.

    ``file`` stores blobs in the store directory, ``memory`` keeps them in
    process. Any other name is loaded from the ``tokenkeep.backends`` entry
    point group.
    """
    if config.backend == "file":
        return FileBackend(config.path)
    if config.backend == "memory":
        return MemoryBackend()
    return _load_backend(config.backend, config)


def _load_backend(name: str, config: StoreConfig) -> PersistenceBackend:
    """Load a backend by entry point name."""
    from importlib.metadata import entry_points

    eps = entry_points(group="tokenkeep.backends")
    for ep in eps:
        if ep.name == name:
            factory = ep.load()
            return factory(config)

    available = [ep.name for ep in eps]
    if available:
        raise BackendError(
            f"Unknown backend: {name!r}. Available: {available}"
        )
    raise BackendError(
        f"Unknown backend: {name!r}. No backends registered."
    )
