"""
Configuration management for tokenkeep stores.

The configuration is stored as a TOML file in the store directory.
It names the persistence backend, the storage key of the record blob, and
whether writes are guarded by an optimistic revision counter.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

import tomli_w


CONFIG_FILENAME = "tokenkeep.toml"
CONFIG_VERSION = 1

# Storage key used by the browser script; kept so blobs can be moved across
DEFAULT_STORAGE_KEY = "token_manager_records"
DEFAULT_BACKEND = "file"


@dataclass
class StoreConfig:
    """Complete store configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    backend: str = DEFAULT_BACKEND
    storage_key: str = DEFAULT_STORAGE_KEY
    optimistic_lock: bool = True

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def get_default_store_path() -> Path:
    """
    Resolve the store directory.

    TOKENKEEP_STORE_PATH wins; otherwise ~/.tokenkeep.
    """
    env_path = os.environ.get("TOKENKEEP_STORE_PATH")
    if env_path:
        return Path(env_path).expanduser().resolve()
    return Path.home() / ".tokenkeep"


def load_config(store_path: Path) -> StoreConfig:
    """
    Load configuration from a store directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = store_path / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    store = data.get("store", {})
    version = store.get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    storage_key = store.get("storage_key", DEFAULT_STORAGE_KEY)
    if not isinstance(storage_key, str) or not storage_key.strip():
        raise ValueError(f"Invalid storage_key in {config_path}: {storage_key!r}")

    return StoreConfig(
        path=store_path,
        version=version,
        created=store.get("created", ""),
        backend=store.get("backend", DEFAULT_BACKEND),
        storage_key=storage_key,
        optimistic_lock=bool(store.get("optimistic_lock", True)),
    )


def save_config(config: StoreConfig) -> None:
    """
    Save configuration to the store directory.

    Creates the directory if it doesn't exist.
    """
    config.path.mkdir(parents=True, exist_ok=True)

    data = {
        "store": {
            "version": config.version,
            "created": config.created,
            "backend": config.backend,
            "storage_key": config.storage_key,
            "optimistic_lock": config.optimistic_lock,
        },
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(store_path: Path) -> StoreConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    config_path = store_path / CONFIG_FILENAME

    if config_path.exists():
        return load_config(store_path)
    else:
        config = StoreConfig(path=store_path)
        save_config(config)
        return config
