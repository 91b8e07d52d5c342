import os

import pytest

from org_stats import db_factory, firestore_db
from org_stats.app import DatabaseManager
from org_stats.config import DEFAULT_SCORING_PROJECT, AppConfig, load_configuration
from org_stats.firestore_db import FirestoreDatabaseManager


def test_sqlite_is_the_default(database_path):
    db_manager = db_factory.get_database_manager(AppConfig(database_path=database_path))
    assert isinstance(db_manager, DatabaseManager)
    assert db_manager.db_path == os.path.abspath(database_path)


def test_firestore_when_configured(monkeypatch, firestore_client):
    monkeypatch.setattr(firestore_db.firestore, "Client", lambda: firestore_client)
    db_manager = db_factory.get_database_manager(AppConfig(use_firestore=True))
    assert isinstance(db_manager, FirestoreDatabaseManager)
    assert db_manager.db is firestore_client


def test_resolve_creates_missing_directory(tmp_path):
    path = tmp_path / "nested" / "stats.db"
    assert db_factory.resolve_database_path(str(path)) == str(path)
    assert path.parent.is_dir()


def test_resolve_uses_fallback_when_allowed(tmp_path, monkeypatch):
    blocked = tmp_path / "blocked"
    blocked.write_text("a file, not a directory")
    fallback = tmp_path / "fallback" / "stats.db"
    monkeypatch.setenv("ALLOW_DB_FALLBACK", "true")
    monkeypatch.setenv("DATABASE_FALLBACK_PATH", str(fallback))

    assert db_factory.resolve_database_path(str(blocked / "stats.db")) == str(fallback)


def test_resolve_keeps_primary_without_fallback(tmp_path, monkeypatch):
    blocked = tmp_path / "blocked"
    blocked.write_text("a file, not a directory")
    monkeypatch.delenv("ALLOW_DB_FALLBACK", raising=False)

    assert db_factory.resolve_database_path(str(blocked / "stats.db")) == str(blocked / "stats.db")


def test_load_configuration(monkeypatch):
    monkeypatch.setenv("GITHUB_TOKEN", "secret")
    monkeypatch.setenv("ORGANIZATION_LIST", " acme, globex ,,")
    monkeypatch.setenv("DATABASE_PATH", "/data/stats.db")
    monkeypatch.setenv("USE_FIRESTORE", "TRUE")
    monkeypatch.delenv("SCORING_PROJECT", raising=False)

    config = load_configuration()

    assert config.github_token == "secret"
    assert config.organizations == ["acme", "globex"]
    assert config.organization_list == "acme,globex"
    assert config.database_path == "/data/stats.db"
    assert config.use_firestore
    assert config.scoring_project == DEFAULT_SCORING_PROJECT


def test_load_configuration_requires_token(monkeypatch):
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    with pytest.raises(ValueError):
        load_configuration(require_token=True)
