"""Statistics store access: standings, schedules, game results.

The analytics core never owns league statistics; it reads them through the
:class:`StatsStore` interface. Two implementations ship here:

* :class:`InMemoryStatsStore`: backed by plain dictionaries, loadable from a
  JSON fixture. Used by the CLI, the test-suite and single-process setups.
* :class:`HttpStatsStore`: an ``httpx`` async client against a remote stats
  service exposing the same payload shapes.

Payload shapes use camelCase keys (``teamId``, ``pointsFor`` ...) and are parsed
into the frozen dataclasses below.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import httpx

from errors import StatsStoreUnavailable

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


@dataclass(frozen=True)
class TeamStanding:
    team_id: int
    wins: int = 0
    losses: int = 0
    ties: int = 0
    points_for: float = 0.0
    points_against: float = 0.0
    team_name: Optional[str] = None
    division: Optional[str] = None

    @property
    def games_played(self) -> int:
        return self.wins + self.losses + self.ties

    @property
    def win_pct(self) -> float:
        if self.games_played == 0:
            return 0.0
        return (self.wins + 0.5 * self.ties) / self.games_played

    @property
    def record(self) -> str:
        if self.ties:
            return f"{self.wins}-{self.losses}-{self.ties}"
        return f"{self.wins}-{self.losses}"


@dataclass(frozen=True)
class TeamGameRecord:
    team_id: int
    games_played: int = 0
    wins: int = 0
    losses: int = 0
    ties: int = 0
    points_for: float = 0.0
    points_against: float = 0.0
    total_off_yards: float = 0.0
    total_off_plays: int = 0
    total_def_yards_allowed: float = 0.0
    total_def_plays_faced: int = 0
    takeaways: int = 0
    giveaways: int = 0
    opponent_team_ids: Tuple[int, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ScheduledGame:
    game_id: int
    home_team_id: int
    away_team_id: int
    season: Optional[int] = None
    week: Optional[int] = None
    slot: int = 0


@dataclass(frozen=True)
class GameResult:
    game_id: int
    winner_team_id: int
    home_score: int
    away_score: int


def team_records_from_standings(standings: Iterable[TeamStanding]) -> List[TeamGameRecord]:
    """Derive estimator input from standings when no box-score totals exist.

    Yardage and turnover totals stay at zero, which makes those components
    neutral (every team shares the same percentile).
    """

    return [
        TeamGameRecord(
            team_id=row.team_id,
            games_played=row.games_played,
            wins=row.wins,
            losses=row.losses,
            ties=row.ties,
            points_for=row.points_for,
            points_against=row.points_against,
        )
        for row in standings
    ]


def resolve_winner(game: ScheduledGame, home_score: int, away_score: int) -> int:
    """Winner for pick scoring; a tie resolves to the home team."""

    if away_score > home_score:
        return game.away_team_id
    return game.home_team_id


# Payload parsing --------------------------------------------------------

def _int(raw: Dict[str, Any], *keys: str, default: Optional[int] = None) -> int:
    for key in keys:
        value = raw.get(key)
        if value is None:
            continue
        try:
            return int(value)
        except (TypeError, ValueError) as exc:
            raise StatsStoreUnavailable(f"Field '{key}' is not an integer: {value!r}") from exc
    if default is None:
        raise StatsStoreUnavailable(f"Missing required field: {'/'.join(keys)}")
    return default


def _float(raw: Dict[str, Any], key: str) -> float:
    value = raw.get(key)
    if value is None:
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise StatsStoreUnavailable(f"Field '{key}' is not numeric: {value!r}") from exc


def parse_standing(raw: Dict[str, Any]) -> TeamStanding:
    return TeamStanding(
        team_id=_int(raw, "teamId"),
        wins=_int(raw, "wins", "totalWins", default=0),
        losses=_int(raw, "losses", "totalLosses", default=0),
        ties=_int(raw, "ties", "totalTies", default=0),
        points_for=_float(raw, "pointsFor"),
        points_against=_float(raw, "pointsAgainst"),
        team_name=raw.get("teamName"),
        division=raw.get("division"),
    )


def parse_team_record(raw: Dict[str, Any]) -> TeamGameRecord:
    wins = _int(raw, "wins", default=0)
    losses = _int(raw, "losses", default=0)
    ties = _int(raw, "ties", default=0)
    return TeamGameRecord(
        team_id=_int(raw, "teamId"),
        games_played=_int(raw, "gamesPlayed", default=wins + losses + ties),
        wins=wins,
        losses=losses,
        ties=ties,
        points_for=_float(raw, "pointsFor"),
        points_against=_float(raw, "pointsAgainst"),
        total_off_yards=_float(raw, "totalOffYards"),
        total_off_plays=_int(raw, "totalOffPlays", default=0),
        total_def_yards_allowed=_float(raw, "totalDefYardsAllowed"),
        total_def_plays_faced=_int(raw, "totalDefPlaysFaced", default=0),
        takeaways=_int(raw, "takeaways", default=0),
        giveaways=_int(raw, "giveaways", default=0),
        opponent_team_ids=tuple(int(opp) for opp in raw.get("opponentTeamIds") or []),
    )


def parse_game(raw: Dict[str, Any], *, season: Optional[int] = None, week: Optional[int] = None) -> ScheduledGame:
    return ScheduledGame(
        game_id=_int(raw, "gameId", "scheduleId"),
        home_team_id=_int(raw, "homeTeamId"),
        away_team_id=_int(raw, "awayTeamId"),
        season=raw.get("season", season),
        week=raw.get("week", week),
        slot=_int(raw, "slot", default=0),
    )


def parse_result(raw: Dict[str, Any], *, game_id: Optional[int] = None) -> GameResult:
    return GameResult(
        game_id=_int(raw, "gameId", default=game_id),
        winner_team_id=_int(raw, "winnerTeamId", "actualWinner"),
        home_score=_int(raw, "homeScore", default=0),
        away_score=_int(raw, "awayScore", default=0),
    )


# Store interface --------------------------------------------------------

class StatsStore(ABC):
    """Read-only view of league statistics consumed by the analytics core."""

    @abstractmethod
    async def get_standings(self, season: int) -> List[TeamStanding]:
        ...

    @abstractmethod
    async def get_week_schedule(self, season: int, week: int) -> List[ScheduledGame]:
        ...

    @abstractmethod
    async def get_game_result(self, game_id: int) -> Optional[GameResult]:
        ...

    async def get_team_game_records(self, season: int) -> List[TeamGameRecord]:
        return team_records_from_standings(await self.get_standings(season))

    async def aclose(self) -> None:
        return None


class InMemoryStatsStore(StatsStore):
    """Dictionary-backed store; mutate it with the ``set_*`` helpers."""

    def __init__(self) -> None:
        self._standings: Dict[int, List[TeamStanding]] = {}
        self._records: Dict[int, List[TeamGameRecord]] = {}
        self._schedules: Dict[Tuple[int, int], List[ScheduledGame]] = {}
        self._results: Dict[int, GameResult] = {}

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "InMemoryStatsStore":
        store = cls()
        for season_key, season_payload in (payload.get("seasons") or {}).items():
            season = int(season_key)
            standings = [parse_standing(row) for row in season_payload.get("standings") or []]
            store.set_standings(season, standings)
            if season_payload.get("teamRecords"):
                store.set_team_records(season, [parse_team_record(row) for row in season_payload["teamRecords"]])
            for week_key, games in (season_payload.get("weeks") or {}).items():
                week = int(week_key)
                store.set_schedule(season, week, [parse_game(row, season=season, week=week) for row in games])
        for game_key, raw in (payload.get("results") or {}).items():
            store.set_result(parse_result(raw, game_id=int(game_key)))
        return store

    @classmethod
    def from_json(cls, path: str | Path) -> "InMemoryStatsStore":
        json_path = Path(path)
        if not json_path.exists():
            raise FileNotFoundError(f"Stats fixture not found: {json_path}")
        return cls.from_payload(json.loads(json_path.read_text()))

    def set_standings(self, season: int, standings: List[TeamStanding]) -> None:
        self._standings[season] = list(standings)

    def set_team_records(self, season: int, records: List[TeamGameRecord]) -> None:
        self._records[season] = list(records)

    def set_schedule(self, season: int, week: int, games: List[ScheduledGame]) -> None:
        self._schedules[(season, week)] = list(games)

    def set_result(self, result: GameResult) -> None:
        self._results[result.game_id] = result

    async def get_standings(self, season: int) -> List[TeamStanding]:
        return list(self._standings.get(season, []))

    async def get_team_game_records(self, season: int) -> List[TeamGameRecord]:
        if season in self._records:
            return list(self._records[season])
        return await super().get_team_game_records(season)

    async def get_week_schedule(self, season: int, week: int) -> List[ScheduledGame]:
        return sorted(self._schedules.get((season, week), []), key=lambda game: game.slot)

    async def get_game_result(self, game_id: int) -> Optional[GameResult]:
        return self._results.get(game_id)


class HttpStatsStore(StatsStore):
    """Async client for a remote statistics service.

    Endpoints (all GET, JSON):

    * ``/seasons/{season}/standings`` -> list of standings rows
    * ``/seasons/{season}/team-records`` -> list of box-score totals (optional)
    * ``/seasons/{season}/weeks/{week}/schedule`` -> list of games
    * ``/games/{game_id}/result`` -> result, 404 while the game is not final
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"User-Agent": "pickem-core/stats-client"},
        )

    async def _get(self, path: str, *, allow_missing: bool = False) -> Any:
        try:
            response = await self._client.get(path)
        except httpx.HTTPError as exc:
            logger.warning("Stats store request %s failed: %s", path, exc)
            raise StatsStoreUnavailable(f"Stats store request failed: {exc}") from exc

        if response.status_code == 404 and allow_missing:
            return None
        if response.status_code >= 400:
            logger.warning("Stats store returned %s for %s", response.status_code, path)
            raise StatsStoreUnavailable(f"Stats store returned HTTP {response.status_code} for {path}")
        try:
            return response.json()
        except ValueError as exc:
            raise StatsStoreUnavailable(f"Stats store returned invalid JSON for {path}") from exc

    @staticmethod
    def _rows(payload: Any, path: str) -> List[Dict[str, Any]]:
        if isinstance(payload, dict):
            payload = payload.get("items", [])
        if not isinstance(payload, list):
            raise StatsStoreUnavailable(f"Expected a list payload from {path}")
        return payload

    async def get_standings(self, season: int) -> List[TeamStanding]:
        path = f"/seasons/{season}/standings"
        return [parse_standing(row) for row in self._rows(await self._get(path), path)]

    async def get_team_game_records(self, season: int) -> List[TeamGameRecord]:
        path = f"/seasons/{season}/team-records"
        payload = await self._get(path, allow_missing=True)
        if payload is None:
            return await super().get_team_game_records(season)
        return [parse_team_record(row) for row in self._rows(payload, path)]

    async def get_week_schedule(self, season: int, week: int) -> List[ScheduledGame]:
        path = f"/seasons/{season}/weeks/{week}/schedule"
        games = [parse_game(row, season=season, week=week) for row in self._rows(await self._get(path), path)]
        return sorted(games, key=lambda game: game.slot)

    async def get_game_result(self, game_id: int) -> Optional[GameResult]:
        payload = await self._get(f"/games/{game_id}/result", allow_missing=True)
        if payload is None:
            return None
        return parse_result(payload, game_id=game_id)

    async def aclose(self) -> None:
        await self._client.aclose()
