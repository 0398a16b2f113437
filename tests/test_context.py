from __future__ import annotations

import logging
import os

import pytest

from context import ServiceSettings, load_service_env
from stats_store import DEFAULT_TIMEOUT


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for key in ("PICKEM_DATABASE_URL", "STATS_STORE_URL", "STATS_STORE_FIXTURE", "STATS_STORE_TIMEOUT", "PICKEM_API_KEY"):
        # Set first so the teardown also removes values the loader writes.
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    return monkeypatch


def test_env_files_fill_only_unset_service_variables(tmp_path, clean_env) -> None:
    (tmp_path / ".env.local").write_text("STATS_STORE_URL='http://local:9000'\n")
    (tmp_path / ".env").write_text(
        "# shared defaults\n"
        "STATS_STORE_URL=http://shared:9000\n"
        'export PICKEM_DATABASE_URL="sqlite+aiosqlite:///shared.db"\n'
        "STATS_STORE_TIMEOUT=4.5\n"
        "UNRELATED_SECRET=nope\n"
        "not a pair\n"
    )
    clean_env.setenv("STATS_STORE_TIMEOUT", "2")

    applied = load_service_env(tmp_path)

    assert applied == {
        "STATS_STORE_URL": "http://local:9000",
        "PICKEM_DATABASE_URL": "sqlite+aiosqlite:///shared.db",
    }
    service_settings = ServiceSettings.from_env()
    assert service_settings.stats_store_url == "http://local:9000"
    assert service_settings.database_url == "sqlite+aiosqlite:///shared.db"
    assert service_settings.stats_store_timeout == 2.0
    assert "UNRELATED_SECRET" not in os.environ


def test_missing_env_files_apply_nothing(tmp_path, clean_env) -> None:
    assert load_service_env(tmp_path) == {}


def test_invalid_timeout_falls_back_to_default(clean_env, caplog) -> None:
    clean_env.setenv("STATS_STORE_TIMEOUT", "soon")

    with caplog.at_level(logging.WARNING, logger="context"):
        service_settings = ServiceSettings.from_env()

    assert service_settings.stats_store_timeout == DEFAULT_TIMEOUT
    assert "STATS_STORE_TIMEOUT" in caplog.text
