import pytest

import config
from local_store import LocalStore
from sync_coordinator import TradingStore
from tests.fakes import FakeBackend


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    """Keep every test on its own directories and short sync timings."""
    monkeypatch.setattr(config, "DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setattr(config, "BACKUP_DIR", str(tmp_path / "backups"))
    monkeypatch.setattr(config, "DATABASE_URL", "sqlite:///" + str(tmp_path / "data" / "portal.db"))
    monkeypatch.setattr(config, "RETRY_DELAY", 0)
    monkeypatch.setattr(config, "INITIAL_LOAD_TIMEOUT", 1.0)
    monkeypatch.setattr(config, "RETRY_LOAD_TIMEOUT", 1.0)
    monkeypatch.setattr(config, "WRITE_TIMEOUT", 1.0)
    monkeypatch.setattr(config, "PROBE_TIMEOUT", 1.0)


@pytest.fixture
def local_store(tmp_path):
    return LocalStore(data_dir=str(tmp_path / "data"))


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def store(backend, local_store):
    return TradingStore(backend=backend, local_store=local_store)


@pytest.fixture
def offline_store(local_store):
    """Store without any remote backend configured"""
    return TradingStore(backend=None, local_store=local_store)
