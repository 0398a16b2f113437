"""Runtime configuration knobs for the season analytics core.

Every numeric constant used by the power-ranking estimator, the outcome
predictor and the Game of the Week selector lives in a thread-safe
:class:`SettingsManager` so it can be tuned at runtime (``PATCH /config``)
without redeploying. Modules call ``settings.get(...)`` at computation time
instead of importing constants, which keeps every request consistent with
the current knob values.
"""

from __future__ import annotations

from threading import RLock
from typing import Any, Dict, Mapping


class SettingsManager:
    """Thread-safe store of tuning knobs, typed by their defaults.

    Numeric knobs are coerced to the type of their default on write, so a
    JSON ``5`` for a float knob is stored as ``5.0``. ``update`` applies a
    batch all-or-nothing.
    """

    def __init__(self, defaults: Dict[str, Any]) -> None:
        self._defaults = dict(defaults)
        self._settings = dict(defaults)
        self._lock = RLock()

    def _coerce(self, name: str, value: Any) -> Any:
        if name not in self._defaults:
            raise KeyError(f"Unknown setting '{name}'")
        default = self._defaults[name]
        if isinstance(default, (int, float)) and not isinstance(default, bool):
            if isinstance(value, bool):
                raise ValueError(f"Setting '{name}' expects a number, got {value!r}")
            try:
                return type(default)(value)
            except (TypeError, ValueError) as exc:
                raise ValueError(f"Setting '{name}' expects a number, got {value!r}") from exc
        return value

    def get(self, name: str) -> Any:
        with self._lock:
            if name not in self._settings:
                raise KeyError(f"Unknown setting '{name}'")
            return self._settings[name]

    def set(self, name: str, value: Any) -> None:
        with self._lock:
            self._settings[name] = self._coerce(name, value)

    def update(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        """Validate every value first, then apply them together."""

        with self._lock:
            coerced = {name: self._coerce(name, value) for name, value in values.items()}
            self._settings.update(coerced)
            return dict(self._settings)

    def reset(self, name: str | None = None) -> None:
        with self._lock:
            if name is None:
                self._settings = dict(self._defaults)
                return
            if name not in self._defaults:
                raise KeyError(f"Unknown setting '{name}'")
            self._settings[name] = self._defaults[name]

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._settings)


_DEFAULT_SETTINGS: Dict[str, Any] = {
    # Team strength estimator
    "power_margin_weight": 0.55,
    "power_yardage_weight": 0.30,
    "power_turnover_weight": 0.15,
    "power_margin_cap": 21.0,
    # Outcome predictor
    "home_field_advantage": 3.0,
    "neutral_power_score": 50.0,
    "baseline_points": 22.0,
    "max_margin": 21.0,
    "margin_gap_divisor": 40.0,
    "confidence_floor": 50.0,
    "confidence_ceiling": 95.0,
    "confidence_gap_divisor": 30.0,
    # Game of the Week selector
    "gotw_competitiveness_weight": 35.0,
    "gotw_quality_weight": 30.0,
    "gotw_stakes_weight": 25.0,
    "gotw_rivalry_bonus": 10.0,
    "gotw_playoff_teams": 7,
    "gotw_record_share": 0.75,
    "gotw_stakes_boost": 0.25,
    "gotw_elite_power": 140.0,
    "gotw_showdown_rank": 5,
    "gotw_coin_flip_confidence": 60,
}

SETTINGS_HELP: Dict[str, str] = {
    "power_margin_weight": "Weight of the capped scoring margin per game in the power score (dominant component).",
    "power_yardage_weight": "Weight of the yardage differential (net yards per play, or per game) in the power score.",
    "power_turnover_weight": "Weight of the turnover differential per game in the power score.",
    "power_margin_cap": "Absolute cap applied to average scoring margin before ranking (limits blowout inflation).",
    "home_field_advantage": "Power points added to the home team before comparing power scores.",
    "neutral_power_score": "Power score substituted for teams without history when no league average exists.",
    "baseline_points": "Points per team per game assumed when standings carry no scoring history.",
    "max_margin": "Upper bound of the predicted point margin (the score curve saturates here).",
    "margin_gap_divisor": "Power-gap divisor of the margin curve; larger values flatten predicted margins.",
    "confidence_floor": "Lowest confidence percentage a prediction may carry.",
    "confidence_ceiling": "Highest confidence percentage a prediction may carry.",
    "confidence_gap_divisor": "Power-gap divisor of the confidence curve; larger values approach the ceiling more slowly.",
    "gotw_competitiveness_weight": "Points awarded to a perfect coin-flip matchup in the GOTW composite.",
    "gotw_quality_weight": "Points awarded for combined team quality in the GOTW composite.",
    "gotw_stakes_weight": "Points awarded for standings stakes in the GOTW composite.",
    "gotw_rivalry_bonus": "Bonus points for divisional or listed rivalry matchups.",
    "gotw_playoff_teams": "Number of standings places treated as inside the playoff line.",
    "gotw_record_share": "Share of the stakes component earned by combined win percentage alone.",
    "gotw_stakes_boost": "Stakes share added for an unbeaten team or two teams inside the playoff line.",
    "gotw_elite_power": "Combined power score at or above which a matchup is called elite.",
    "gotw_showdown_rank": "Power rank both teams must reach for a top-N showdown note.",
    "gotw_coin_flip_confidence": "Confidence at or below which a matchup is called a coin flip.",
}

settings = SettingsManager(_DEFAULT_SETTINGS)
