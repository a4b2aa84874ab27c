"""Summary: Shared pytest fixtures for TaskFlow tests.

Importance: Gives every test isolated storage and a complete configuration.
Alternatives: Load AppConfig from environment variables.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from fakes import build_config
from taskflow.config import AppConfig
from taskflow.storage.sqlite_store import SqliteStore


@pytest.fixture()
def config(tmp_path: Path) -> AppConfig:
    return build_config(str(tmp_path / "test.db"))


@pytest.fixture()
def store(config: AppConfig) -> SqliteStore:
    sqlite_store = SqliteStore(config.db_path)
    sqlite_store.initialize()
    return sqlite_store
