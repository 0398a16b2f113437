"""Async orchestration of the analytics pipeline against a stats store.

Nothing is cached: every call reads the store and recomputes, so results
always reflect the latest standings and the current knob values.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from errors import ValidationError
from gotw import GOTWSelection, select_marquee_game
from pickem import validate_season, validate_week
from power_rankings import PowerScore, calculate_power_rankings
from predictions import Prediction, predict_week
from stats_store import ScheduledGame, StatsStore, TeamStanding

logger = logging.getLogger(__name__)


@dataclass
class WeekAnalysis:
    season: int
    week: int
    games: List[ScheduledGame] = field(default_factory=list)
    standings: List[TeamStanding] = field(default_factory=list)
    rankings: List[PowerScore] = field(default_factory=list)
    predictions: List[Prediction] = field(default_factory=list)


async def get_power_rankings(store: StatsStore, season: int) -> List[PowerScore]:
    validate_season(season)
    records = await store.get_team_game_records(season)
    return calculate_power_rankings(records)


async def analyse_week(store: StatsStore, season: int, week: int) -> WeekAnalysis:
    validate_season(season)
    validate_week(week)
    games = await store.get_week_schedule(season, week)
    standings = await store.get_standings(season)
    records = await store.get_team_game_records(season)
    rankings = calculate_power_rankings(records)
    predictions = predict_week(games, records, standings, power_scores=rankings)
    logger.debug("Season %s week %s: %d games, %d predictions", season, week, len(games), len(predictions))
    return WeekAnalysis(
        season=season,
        week=week,
        games=games,
        standings=standings,
        rankings=rankings,
        predictions=predictions,
    )


async def get_week_predictions(store: StatsStore, season: int, week: int) -> List[Prediction]:
    analysis = await analyse_week(store, season, week)
    return analysis.predictions


async def get_marquee_game(
    store: StatsStore,
    season: int,
    week: int,
    *,
    rivalries: Optional[Iterable[Sequence[int]]] = None,
) -> Optional[GOTWSelection]:
    analysis = await analyse_week(store, season, week)
    return select_marquee_game(
        analysis.games,
        analysis.predictions,
        analysis.rankings,
        analysis.standings,
        rivalries=rivalries,
    )


def parse_rivalries(raw: Optional[str]) -> List[tuple[int, int]]:
    """Parse ``"1-2,3-4"`` into team id pairs."""

    pairs: List[tuple[int, int]] = []
    if not raw:
        return pairs
    for chunk in raw.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        left, sep, right = chunk.partition("-")
        if not sep:
            raise ValidationError(f"Rivalry '{chunk}' must look like 'teamA-teamB'")
        try:
            pairs.append((int(left), int(right)))
        except ValueError as exc:
            raise ValidationError(f"Rivalry '{chunk}' must use numeric team ids") from exc
    return pairs
