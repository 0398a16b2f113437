"""Team strength estimator.

Turns a season's :class:`~stats_store.TeamGameRecord` rows into comparable
power scores on a 0-100 scale. Three per-game metrics feed the score:

* scoring margin (capped so blowouts do not dominate),
* yardage differential (net yards per play when plays are recorded for every
  team, otherwise net yards per game),
* turnover differential.

Each metric becomes a percentile among the teams that have played, and the
percentiles are blended with the ``power_*_weight`` knobs. Teams without a
game score 0 and rank last.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional

import numpy as np
import pandas as pd

from config import settings
from stats_store import TeamGameRecord

logger = logging.getLogger(__name__)

COMPONENTS = ("margin", "yardage", "turnovers")


@dataclass(frozen=True)
class PowerScore:
    team_id: int
    score: float
    rank: int
    games_played: int = 0
    breakdown: Dict[str, float] = field(default_factory=dict)
    raw_metrics: Dict[str, float] = field(default_factory=dict)


def _percentiles(values: pd.Series) -> pd.Series:
    if len(values) <= 1:
        return pd.Series(50.0, index=values.index)
    ranks = values.rank(method="average")
    return ((ranks - 1.0) / (len(values) - 1) * 100.0).clip(0.0, 100.0)


def _weights() -> Dict[str, float]:
    weights = {
        "margin": float(settings.get("power_margin_weight")),
        "yardage": float(settings.get("power_yardage_weight")),
        "turnovers": float(settings.get("power_turnover_weight")),
    }
    if sum(weights.values()) <= 0:
        raise ValueError("Power score weights must sum to a positive value")
    return weights


def _raw_metrics(records: List[TeamGameRecord]) -> pd.DataFrame:
    df = pd.DataFrame(
        {
            "team_id": [r.team_id for r in records],
            "games": [r.games_played for r in records],
            "points_for": [float(r.points_for) for r in records],
            "points_against": [float(r.points_against) for r in records],
            "off_yards": [float(r.total_off_yards) for r in records],
            "off_plays": [r.total_off_plays for r in records],
            "def_yards": [float(r.total_def_yards_allowed) for r in records],
            "def_plays": [r.total_def_plays_faced for r in records],
            "takeaways": [r.takeaways for r in records],
            "giveaways": [r.giveaways for r in records],
        }
    )
    games = df["games"].astype(float)
    cap = float(settings.get("power_margin_cap"))
    df["margin"] = np.clip((df["points_for"] - df["points_against"]) / games, -cap, cap)

    per_play = bool((df["off_plays"] > 0).all() and (df["def_plays"] > 0).all())
    if per_play:
        df["yardage"] = df["off_yards"] / df["off_plays"] - df["def_yards"] / df["def_plays"]
    else:
        df["yardage"] = (df["off_yards"] - df["def_yards"]) / games
    df["turnovers"] = (df["takeaways"] - df["giveaways"]) / games
    return df


def calculate_power_rankings(records: Iterable[TeamGameRecord]) -> List[PowerScore]:
    """Compute ordered power scores (rank 1 = strongest) for one season."""

    records = list(records)
    if not records:
        return []

    seen: Dict[int, TeamGameRecord] = {}
    for record in records:
        if record.team_id in seen:
            logger.warning("Duplicate game record for team %s; keeping the first", record.team_id)
            continue
        seen[record.team_id] = record

    played = [r for r in seen.values() if r.games_played > 0]
    idle = [r for r in seen.values() if r.games_played <= 0]
    weights = _weights()
    total_weight = sum(weights.values())

    entries: List[tuple[float, int, PowerScore]] = []
    if played:
        df = _raw_metrics(played)
        for component in COMPONENTS:
            df[f"{component}_pct"] = _percentiles(df[component])
        df["score"] = sum(weights[c] * df[f"{c}_pct"] for c in COMPONENTS) / total_weight

        for row in df.itertuples(index=False):
            score = round(float(row.score), 1)
            entries.append(
                (
                    score,
                    int(row.team_id),
                    PowerScore(
                        team_id=int(row.team_id),
                        score=score,
                        rank=0,
                        games_played=int(row.games),
                        breakdown={c: round(float(getattr(row, f"{c}_pct")), 1) for c in COMPONENTS},
                        raw_metrics={c: round(float(getattr(row, c)), 3) for c in COMPONENTS},
                    ),
                )
            )

    ordered = sorted(entries, key=lambda item: (-item[0], item[1]))
    idle_sorted = sorted(idle, key=lambda r: r.team_id)

    rankings: List[PowerScore] = [
        replace(entry, rank=idx) for idx, (_, _, entry) in enumerate(ordered, start=1)
    ]
    for idx, record in enumerate(idle_sorted, start=len(rankings) + 1):
        rankings.append(
            PowerScore(
                team_id=record.team_id,
                score=0.0,
                rank=idx,
                games_played=0,
                breakdown={c: 0.0 for c in COMPONENTS},
                raw_metrics={c: 0.0 for c in COMPONENTS},
            )
        )

    logger.debug("Computed power rankings for %d teams (%d idle)", len(rankings), len(idle_sorted))
    return rankings


def power_lookup(rankings: Iterable[PowerScore]) -> Dict[int, PowerScore]:
    return {entry.team_id: entry for entry in rankings}


def league_average_score(rankings: Iterable[PowerScore]) -> Optional[float]:
    """Mean power score of teams that have played, ``None`` if nobody has."""

    scores = [entry.score for entry in rankings if entry.games_played > 0]
    if not scores:
        return None
    return float(np.mean(scores))
