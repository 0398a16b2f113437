from __future__ import annotations

import pytest

from config import SETTINGS_HELP, SettingsManager, settings


def test_every_knob_is_documented() -> None:
    assert set(SETTINGS_HELP) == set(settings.snapshot())


def test_numeric_knobs_are_coerced_to_their_default_type() -> None:
    manager = SettingsManager({"weight": 0.5, "teams": 7})
    manager.set("weight", 1)
    manager.set("teams", "8")

    assert manager.get("weight") == 1.0 and isinstance(manager.get("weight"), float)
    assert manager.get("teams") == 8
    with pytest.raises(ValueError):
        manager.set("teams", True)


def test_update_is_all_or_nothing() -> None:
    manager = SettingsManager({"a": 1.0, "b": 2.0})

    with pytest.raises(ValueError):
        manager.update({"a": 5, "b": "lots"})
    assert manager.snapshot() == {"a": 1.0, "b": 2.0}

    with pytest.raises(KeyError):
        manager.update({"a": 5, "c": 1})
    assert manager.get("a") == 1.0

    assert manager.update({"a": 3}) == {"a": 3.0, "b": 2.0}


def test_reset_restores_defaults() -> None:
    manager = SettingsManager({"a": 1.0, "b": 2.0})
    manager.update({"a": 9, "b": 9})
    manager.reset("a")
    assert manager.snapshot() == {"a": 1.0, "b": 9.0}
    manager.reset()
    assert manager.snapshot() == {"a": 1.0, "b": 2.0}
    with pytest.raises(KeyError):
        manager.get("missing")
