"""Tests for store configuration, backend selection and error logging."""

import os
import stat
import tomllib

import pytest
import tomli_w

from tokenkeep.backend import FileBackend, MemoryBackend, create_backend
from tokenkeep.config import (
    CONFIG_FILENAME,
    DEFAULT_STORAGE_KEY,
    StoreConfig,
    get_default_store_path,
    load_config,
    load_or_create_config,
    save_config,
)
from tokenkeep.errors import BackendError, Conflict, log_exception
from tokenkeep.protocol import PersistenceBackend


def _write_config(path, store_table):
    path.mkdir(parents=True, exist_ok=True)
    with open(path / CONFIG_FILENAME, "wb") as f:
        tomli_w.dump({"store": store_table}, f)


class TestConfig:
    def test_round_trip(self, tmp_path):
        config = StoreConfig(path=tmp_path, backend="memory", storage_key="k", optimistic_lock=False)
        save_config(config)
        loaded = load_config(tmp_path)
        assert loaded.backend == "memory"
        assert loaded.storage_key == "k"
        assert loaded.optimistic_lock is False
        assert loaded.created == config.created

    def test_file_layout(self, tmp_path):
        save_config(StoreConfig(path=tmp_path))
        with open(tmp_path / CONFIG_FILENAME, "rb") as f:
            data = tomllib.load(f)
        assert data["store"]["storage_key"] == DEFAULT_STORAGE_KEY
        assert data["store"]["backend"] == "file"

    def test_defaults_for_missing_keys(self, tmp_path):
        _write_config(tmp_path, {"version": 1})
        config = load_config(tmp_path)
        assert config.backend == "file"
        assert config.storage_key == DEFAULT_STORAGE_KEY
        assert config.optimistic_lock is True

    def test_missing_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path)

    def test_newer_version_raises(self, tmp_path):
        _write_config(tmp_path, {"version": 99})
        with pytest.raises(ValueError, match="newer"):
            load_config(tmp_path)

    def test_blank_storage_key_raises(self, tmp_path):
        _write_config(tmp_path, {"storage_key": "  "})
        with pytest.raises(ValueError, match="storage_key"):
            load_config(tmp_path)

    def test_load_or_create(self, tmp_path):
        path = tmp_path / "new-store"
        config = load_or_create_config(path)
        assert config.exists()
        assert load_or_create_config(path).created == config.created

    def test_default_store_path_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TOKENKEEP_STORE_PATH", str(tmp_path))
        assert get_default_store_path() == tmp_path.resolve()

    def test_default_store_path_home(self, monkeypatch):
        monkeypatch.delenv("TOKENKEEP_STORE_PATH", raising=False)
        assert get_default_store_path().name == ".tokenkeep"


class TestBackends:
    def test_create_file(self, tmp_path):
        backend = create_backend(StoreConfig(path=tmp_path))
        assert isinstance(backend, FileBackend)
        assert isinstance(backend, PersistenceBackend)

    def test_create_memory(self, tmp_path):
        assert isinstance(create_backend(StoreConfig(path=tmp_path, backend="memory")), MemoryBackend)

    def test_unknown_backend(self, tmp_path):
        with pytest.raises(BackendError, match="Unknown backend"):
            create_backend(StoreConfig(path=tmp_path, backend="no-such-backend"))

    def test_file_get_default(self, tmp_path):
        assert FileBackend(tmp_path).get("missing", "{}") == "{}"

    def test_file_round_trip(self, tmp_path):
        backend = FileBackend(tmp_path)
        backend.set("blob", '{"é": 1}')
        assert backend.get("blob", "{}") == '{"é": 1}'
        assert (tmp_path / "blob.json").read_text(encoding="utf-8") == '{"é": 1}'

    def test_file_creates_root(self, tmp_path):
        FileBackend(tmp_path / "a" / "b").set("k", "v")
        assert (tmp_path / "a" / "b" / "k.json").exists()

    @pytest.mark.parametrize("key", ["", ".", "..", "../escape", "a/b", "a b"])
    def test_unsafe_keys(self, tmp_path, key):
        with pytest.raises(BackendError):
            FileBackend(tmp_path).path_for(key)

    def test_memory_counts_writes(self):
        backend = MemoryBackend({"k": "v"})
        assert backend.get("k", "") == "v"
        backend.set("k", "w")
        assert backend.writes == 1


class TestErrors:
    def test_conflict_message(self):
        e = Conflict(3, 5)
        assert (e.expected, e.actual) == (3, 5)
        assert "3" in str(e) and "5" in str(e)

    def test_log_exception(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TOKENKEEP_STORE_PATH", str(tmp_path))
        try:
            raise BackendError("disk on fire")
        except BackendError as e:
            path = log_exception(e, "save")

        assert path == tmp_path / "tokenkeep-errors.log"
        text = path.read_text()
        assert "save" in text
        assert "disk on fire" in text
        assert "Traceback" in text
        if os.name == "posix":
            assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_log_exception_explicit_store(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TOKENKEEP_STORE_PATH", str(tmp_path / "env"))
        chosen = tmp_path / "chosen"
        path = log_exception(BackendError("x"), "hosts", store_path=chosen)
        assert path == chosen / "tokenkeep-errors.log"
        assert path.exists()
        assert not (tmp_path / "env").exists()
