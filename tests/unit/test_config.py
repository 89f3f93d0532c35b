"""Tests for configuration loading and store selection."""

import pytest

import stepwright.db as db
from stepwright.config import load_config
from stepwright.db import get_store, normalize_database_url


def test_load_config_defaults_without_file():
    config = load_config()
    assert config.database_url is None
    assert config.log_level == "INFO"


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
database_url: sqlite:///from-file.db
definitions_path: workflow.yaml
log_level: DEBUG
"""
    )
    monkeypatch.setenv("STEPWRIGHT_CONFIG", str(config_path))

    config = load_config()
    assert config.database_url == "sqlite:///from-file.db"
    assert config.definitions_path == "workflow.yaml"
    assert config.log_level == "DEBUG"


def test_database_url_env_overrides_file(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("database_url: sqlite:///from-file.db\n")
    monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db/app")

    config = load_config(str(config_path))
    assert config.database_url == "postgresql://u:p@db/app"

    monkeypatch.setenv("STEPWRIGHT_DATABASE_URL", "sqlite:///preferred.db")
    assert load_config(str(config_path)).database_url == "sqlite:///preferred.db"


def test_normalize_database_url():
    assert normalize_database_url("sqlite:///x.db") == "sqlite+aiosqlite:///x.db"
    assert (
        normalize_database_url("postgres://u@h/db") == "postgresql+asyncpg://u@h/db"
    )
    assert (
        normalize_database_url("postgresql://u@h/db") == "postgresql+asyncpg://u@h/db"
    )
    assert (
        normalize_database_url("sqlite+aiosqlite:///x.db") == "sqlite+aiosqlite:///x.db"
    )
    with pytest.raises(ValueError):
        normalize_database_url("mysql://u@h/db")


def test_get_store_defaults_to_memory_and_is_cached():
    store = get_store()
    assert store.database_url == db.MEMORY_URL
    assert get_store() is store


def test_get_store_uses_configured_url(tmp_path, monkeypatch):
    monkeypatch.setenv("STEPWRIGHT_DATABASE_URL", f"sqlite:///{tmp_path / 'a.db'}")
    store = get_store()
    assert store.database_url == f"sqlite+aiosqlite:///{tmp_path / 'a.db'}"


def test_get_store_rejects_unknown_backend():
    with pytest.raises(ValueError):
        get_store("mysql://u@h/db")
