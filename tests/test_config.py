"""Tests for environment driven settings."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from trolley.config import Settings, get_settings


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("TROLLEY_UNDO_TIMEOUT", "2.5")
    monkeypatch.setenv("TROLLEY_MY_LIST_POSITION", "Last")
    monkeypatch.setenv("TROLLEY_SWEEP_ENABLED", "yes")
    get_settings.cache_clear()

    settings = get_settings()

    assert settings.undo_timeout_seconds == 2.5
    assert settings.my_list_first is False
    assert settings.sweep_enabled is True
    assert settings.database_path.name == "test_trolley.db"


def test_malformed_numbers_are_ignored(monkeypatch):
    monkeypatch.setenv("TROLLEY_UNDO_TIMEOUT", "soon")
    monkeypatch.setenv("TROLLEY_REBUILD_WORKERS", "many")
    get_settings.cache_clear()

    settings = get_settings()

    assert settings.undo_timeout_seconds == 4.0
    assert settings.rebuild_workers == 1


def test_invalid_values_are_rejected():
    with pytest.raises(ValidationError):
        Settings(my_list_position="middle")
    with pytest.raises(ValidationError):
        Settings(undo_timeout_seconds=0)
