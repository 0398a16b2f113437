"""Outcome predictor: winner, plausible final score and confidence per game.

The power-score gap (plus a home-field adjustment) decides the winner. The gap
magnitude is mapped onto a saturating margin curve and a saturating
confidence curve, both shaped by knobs in :mod:`config`.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

import numpy as np

from config import settings
from power_rankings import PowerScore, calculate_power_rankings, league_average_score, power_lookup
from standings import league_scoring_average
from stats_store import ScheduledGame, TeamGameRecord, TeamStanding

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Prediction:
    game_id: int
    home_team_id: int
    away_team_id: int
    predicted_winner_team_id: int
    predicted_loser_team_id: int
    predicted_winner_score: int
    predicted_loser_score: int
    confidence_percent: int
    home_team_power_rank: Optional[int]
    away_team_power_rank: Optional[int]
    reasoning: str

    @property
    def home_predicted_to_win(self) -> bool:
        return self.predicted_winner_team_id == self.home_team_id


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _effective_score(entry: Optional[PowerScore], neutral: float) -> float:
    if entry is None or entry.games_played <= 0:
        return neutral
    return entry.score


def predicted_margin(gap: float) -> int:
    max_margin = float(settings.get("max_margin"))
    divisor = max(float(settings.get("margin_gap_divisor")), 1e-6)
    margin = _round_half_up(max_margin * float(np.tanh(abs(gap) / divisor)))
    return max(1, margin)


def confidence_for_gap(gap: float) -> int:
    floor = float(settings.get("confidence_floor"))
    ceiling = float(settings.get("confidence_ceiling"))
    divisor = max(float(settings.get("confidence_gap_divisor")), 1e-6)
    raw = floor + (ceiling - floor) * float(np.tanh(abs(gap) / divisor))
    return int(np.clip(round(raw), math.ceil(floor), math.floor(ceiling)))


def _reasoning(
    gap: float,
    home_wins: bool,
    winner_rank: Optional[int],
    loser_rank: Optional[int],
    substituted: bool,
) -> str:
    parts: List[str] = []
    if winner_rank is not None and loser_rank is not None:
        parts.append(f"#{winner_rank} vs #{loser_rank} power ranking matchup.")
    edge = abs(gap)
    if edge > 10:
        parts.append(f"Significant power advantage ({edge:.1f} points).")
    elif edge > 5:
        parts.append("Moderate power edge.")
    else:
        parts.append("Close matchup.")
    if substituted:
        parts.append("Limited history; league-average strength assumed.")
    if home_wins:
        parts.append("Home field advantage decisive." if edge <= float(settings.get("home_field_advantage")) else "Home team favoured.")
    else:
        parts.append("Road team overcomes home field.")
    return " ".join(parts)


def predict_game(
    game: ScheduledGame,
    rankings: Dict[int, PowerScore],
    *,
    neutral_score: Optional[float] = None,
    base_points: Optional[float] = None,
) -> Prediction:
    """Predict a single game from a ``team_id -> PowerScore`` lookup."""

    if neutral_score is None:
        neutral_score = league_average_score(rankings.values())
        if neutral_score is None:
            neutral_score = float(settings.get("neutral_power_score"))
    if base_points is None:
        base_points = float(settings.get("baseline_points"))

    home = rankings.get(game.home_team_id)
    away = rankings.get(game.away_team_id)
    substituted = any(entry is None or entry.games_played <= 0 for entry in (home, away))

    gap = (
        _effective_score(home, neutral_score)
        - _effective_score(away, neutral_score)
        + float(settings.get("home_field_advantage"))
    )
    home_wins = gap >= 0

    margin = predicted_margin(gap)
    loser_score = max(0, _round_half_up(base_points - margin / 2.0))
    winner_score = loser_score + margin

    home_rank = home.rank if home else None
    away_rank = away.rank if away else None
    winner_rank, loser_rank = (home_rank, away_rank) if home_wins else (away_rank, home_rank)

    return Prediction(
        game_id=game.game_id,
        home_team_id=game.home_team_id,
        away_team_id=game.away_team_id,
        predicted_winner_team_id=game.home_team_id if home_wins else game.away_team_id,
        predicted_loser_team_id=game.away_team_id if home_wins else game.home_team_id,
        predicted_winner_score=winner_score,
        predicted_loser_score=loser_score,
        confidence_percent=confidence_for_gap(gap),
        home_team_power_rank=home_rank,
        away_team_power_rank=away_rank,
        reasoning=_reasoning(gap, home_wins, winner_rank, loser_rank, substituted),
    )


def predict_week(
    games: Iterable[ScheduledGame],
    team_records: Iterable[TeamGameRecord],
    standings: Iterable[TeamStanding],
    *,
    power_scores: Optional[List[PowerScore]] = None,
) -> List[Prediction]:
    """Predict every game of a week, computing power scores unless provided."""

    standings = list(standings)
    if power_scores is None:
        power_scores = calculate_power_rankings(team_records)
    lookup = power_lookup(power_scores)

    neutral = league_average_score(power_scores)
    if neutral is None:
        neutral = float(settings.get("neutral_power_score"))
    base_points = league_scoring_average(standings)
    if base_points is None:
        base_points = float(settings.get("baseline_points"))

    predictions: List[Prediction] = []
    for game in games:
        if game.home_team_id == game.away_team_id:
            logger.warning("Skipping game %s: team %s listed on both sides", game.game_id, game.home_team_id)
            continue
        predictions.append(predict_game(game, lookup, neutral_score=neutral, base_points=base_points))
    return predictions
