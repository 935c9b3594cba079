"""Shared pytest fixtures for the Trolley test suite."""

from __future__ import annotations

from typing import Generator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from trolley.config import Settings, get_settings
from trolley.db.repository import reset_repository_state
from trolley.engine import ShoppingListEngine
from trolley.host import RecordingHost
from trolley.server.app import create_app
from trolley.storage import InMemorySettingsStore, InMemoryShoppingStorage

from tests.utils import FakeClock


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Ensure each test uses an isolated SQLite database location."""

    db_path = tmp_path / "test_trolley.db"
    monkeypatch.setenv("TROLLEY_DATABASE_PATH", str(db_path))
    get_settings.cache_clear()
    reset_repository_state()
    yield
    reset_repository_state()
    monkeypatch.delenv("TROLLEY_DATABASE_PATH", raising=False)
    get_settings.cache_clear()


@pytest.fixture()
def app() -> Generator[FastAPI, None, None]:
    """Create a new FastAPI app instance for each test and reset overrides."""

    application = create_app()
    yield application
    application.state.list_state.close()
    application.dependency_overrides.clear()


@pytest.fixture()
def client(app) -> TestClient:
    """Return a test client bound to the FastAPI app."""

    return TestClient(app)


@pytest.fixture()
def settings_store() -> InMemorySettingsStore:
    return InMemorySettingsStore()


@pytest.fixture()
def host() -> RecordingHost:
    return RecordingHost()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def build_engine(settings_store, host, clock):
    """Return a factory for engines over in-memory storage seeded with ``items``.

    Regrouping runs inline; the directives of the initial load are discarded.
    """

    def _build(*items, executor=None, **overrides):
        storage = InMemoryShoppingStorage(items)
        engine = ShoppingListEngine(
            storage,
            settings_store,
            host,
            settings=Settings(**overrides),
            executor=executor,
            clock=clock,
        )
        if executor is None:
            engine.refresh()
        host.drain()
        return engine, storage

    return _build
