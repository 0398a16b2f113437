"""Game of the Week selection.

Every predicted game gets a 0-100 composite built from four parts:

* competitiveness: how close the predicted confidence sits to a coin flip,
* quality: combined power score (combined win percentage when power scores
  are unavailable),
* stakes: combined win percentage, boosted when an undefeated team plays or
  both teams sit inside the playoff line,
* rivalry: flat bonus for division games and listed rivalries.

The highest composite wins. Ties go to the earlier schedule slot, then to
the earlier position in the schedule.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from config import settings
from power_rankings import PowerScore, power_lookup
from predictions import Prediction
from standings import standings_lookup, standings_ranks
from stats_store import ScheduledGame, TeamStanding

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GOTWSelection:
    game_id: int
    composite_score: float
    reasoning_points: List[str]
    prediction: Prediction
    components: Dict[str, float] = field(default_factory=dict)
    slot: int = 0


def _rivalry_pairs(rivalries: Optional[Iterable[Sequence[int]]]) -> set[FrozenSet[int]]:
    pairs: set[FrozenSet[int]] = set()
    for pair in rivalries or ():
        teams = frozenset(int(team) for team in pair)
        if len(teams) == 2:
            pairs.add(teams)
    return pairs


def _win_pct(row: Optional[TeamStanding]) -> float:
    if row is None or row.games_played <= 0:
        return 0.5
    return row.win_pct


def _undefeated(row: Optional[TeamStanding]) -> bool:
    return row is not None and row.games_played > 0 and row.losses == 0


def _score_game(
    game: ScheduledGame,
    prediction: Prediction,
    powers: Dict[int, PowerScore],
    table: Dict[int, TeamStanding],
    ranks: Dict[int, int],
    rivalry_pairs: set[FrozenSet[int]],
) -> Tuple[float, Dict[str, float], List[str]]:
    reasons: List[str] = []
    home_id, away_id = game.home_team_id, game.away_team_id

    floor = float(settings.get("confidence_floor"))
    ceiling = float(settings.get("confidence_ceiling"))
    spread = max(ceiling - floor, 1e-6)
    closeness = 1.0 - (float(prediction.confidence_percent) - floor) / spread
    closeness = min(max(closeness, 0.0), 1.0)
    competitiveness = float(settings.get("gotw_competitiveness_weight")) * closeness
    if prediction.confidence_percent <= int(settings.get("gotw_coin_flip_confidence")):
        reasons.append(f"Coin-flip matchup: only {prediction.confidence_percent}% confidence in the pick")

    home_standing = table.get(home_id)
    away_standing = table.get(away_id)
    combined_win_pct = (_win_pct(home_standing) + _win_pct(away_standing)) / 2.0

    home_power = powers.get(home_id)
    away_power = powers.get(away_id)
    quality_weight = float(settings.get("gotw_quality_weight"))
    if home_power is not None and away_power is not None and home_power.games_played > 0 and away_power.games_played > 0:
        combined_power = home_power.score + away_power.score
        quality = quality_weight * min(combined_power / 200.0, 1.0)
        if combined_power >= float(settings.get("gotw_elite_power")):
            reasons.append(f"Elite matchup: combined power score of {combined_power:.1f}")
        showdown = int(settings.get("gotw_showdown_rank"))
        if home_power.rank <= showdown and away_power.rank <= showdown:
            reasons.append(f"Top-{showdown} showdown: #{home_power.rank} vs #{away_power.rank}")
    else:
        quality = quality_weight * combined_win_pct
        reasons.append("Rated on records: power scores unavailable")

    stakes_share = float(settings.get("gotw_record_share")) * combined_win_pct
    boost = float(settings.get("gotw_stakes_boost"))
    if _undefeated(home_standing) and _undefeated(away_standing):
        stakes_share += boost
        reasons.append("Clash of the unbeatens: both teams without a loss")
    elif _undefeated(home_standing) or _undefeated(away_standing):
        stakes_share += boost
        reasons.append("Perfect record on the line")
    else:
        line = int(settings.get("gotw_playoff_teams"))
        home_rank = ranks.get(home_id)
        away_rank = ranks.get(away_id)
        if home_rank is not None and away_rank is not None and home_rank <= line and away_rank <= line:
            stakes_share += boost
            reasons.append(f"Playoff implications: both teams inside the top {line}")
    stakes = float(settings.get("gotw_stakes_weight")) * min(stakes_share, 1.0)

    rivalry = 0.0
    same_division = bool(
        home_standing is not None
        and away_standing is not None
        and home_standing.division
        and home_standing.division == away_standing.division
    )
    if same_division:
        rivalry = float(settings.get("gotw_rivalry_bonus"))
        reasons.append(f"Division battle in the {home_standing.division}")
    elif frozenset((home_id, away_id)) in rivalry_pairs:
        rivalry = float(settings.get("gotw_rivalry_bonus"))
        reasons.append("Rivalry game")

    components = {
        "competitiveness": round(competitiveness, 2),
        "quality": round(quality, 2),
        "stakes": round(stakes, 2),
        "rivalry": round(rivalry, 2),
    }
    composite = min(max(competitiveness + quality + stakes + rivalry, 0.0), 100.0)
    return round(composite, 1), components, reasons


def select_marquee_game(
    games: Iterable[ScheduledGame],
    predictions: Iterable[Prediction],
    rankings: Iterable[PowerScore],
    standings: Iterable[TeamStanding],
    *,
    rivalries: Optional[Iterable[Sequence[int]]] = None,
) -> Optional[GOTWSelection]:
    """Pick the week's marquee matchup, or ``None`` when nothing was predicted."""

    by_game = {prediction.game_id: prediction for prediction in predictions}
    standings = list(standings)
    powers = power_lookup(rankings)
    table = standings_lookup(standings)
    ranks = standings_ranks(standings)
    rivalry_pairs = _rivalry_pairs(rivalries)

    candidates: List[Tuple[float, int, int, GOTWSelection]] = []
    for position, game in enumerate(games):
        prediction = by_game.get(game.game_id)
        if prediction is None:
            logger.info("Skipping game %s for GOTW: no prediction", game.game_id)
            continue
        composite, components, reasons = _score_game(game, prediction, powers, table, ranks, rivalry_pairs)
        selection = GOTWSelection(
            game_id=game.game_id,
            composite_score=composite,
            reasoning_points=reasons,
            prediction=prediction,
            components=components,
            slot=game.slot,
        )
        candidates.append((composite, game.slot, position, selection))

    if not candidates:
        return None
    candidates.sort(key=lambda item: (-item[0], item[1], item[2]))
    return candidates[0][3]
