"""Weekly pick'em contests: seeding, picks, locking, scoring and leaderboards.

A contest moves ``OPEN -> LOCKED -> SCORED``. It is seeded with the
computer's baseline predictions, accepts member picks while open, locks
explicitly (an admin or a broadcast-start event) or implicitly once results
arrive, and is scored exactly once. Every operation returns a
:class:`PickemResult` whose :class:`Outcome` says what happened; benign
no-ops (already locked, already scored, nothing to score) are outcomes, not
exceptions.

Scoring applies each member's week to their season totals. The per-week
stats row is written in the same transaction as the increment, so a week can
never be counted twice for a member even if scoring is retried.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from errors import ValidationError
from pickem_db import BaselinePickRow, ContestDatabase, ContestRow, PickemRepository
from predictions import predict_week
from stats_store import GameResult, ScheduledGame, StatsStore, resolve_winner

logger = logging.getLogger(__name__)

ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
MAX_SEASON_INDEX = 99
MAX_WEEK_INDEX = 22
MAX_NAME_LENGTH = 100

COMPUTER_MEMBER_ID = "bot"
COMPUTER_MEMBER_NAME = "Computer"
LOCK_TRIGGERS = ("manual", "broadcast")


# Validation -------------------------------------------------------------

def validate_identifier(value: Any, label: str) -> str:
    if not isinstance(value, str) or not ID_PATTERN.match(value):
        raise ValidationError(f"{label} must be 1-64 characters of [A-Za-z0-9_-], got {value!r}")
    return value


def _validate_index(value: Any, label: str, upper: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{label} must be an integer, got {value!r}")
    if not 0 <= value <= upper:
        raise ValidationError(f"{label} must be between 0 and {upper}, got {value}")
    return value


def validate_season(season: Any) -> int:
    return _validate_index(season, "season", MAX_SEASON_INDEX)


def validate_week(week: Any) -> int:
    return _validate_index(week, "week", MAX_WEEK_INDEX)


@dataclass(frozen=True)
class ContestKey:
    guild_id: str
    league_id: str
    season: int
    week: int

    def __post_init__(self) -> None:
        validate_identifier(self.guild_id, "guild id")
        validate_identifier(self.league_id, "league id")
        validate_season(self.season)
        validate_week(self.week)

    def __str__(self) -> str:
        return f"{self.guild_id}/{self.league_id}/S{self.season}/W{self.week}"


# Snapshots --------------------------------------------------------------

class ContestState(str, Enum):
    OPEN = "open"
    LOCKED = "locked"
    SCORED = "scored"


class Outcome(str, Enum):
    SEEDED = "seeded"
    EXISTS = "exists"
    ACCEPTED = "accepted"
    LOCKED = "locked"
    ALREADY_LOCKED = "already_locked"
    UNLOCKED = "unlocked"
    NOT_LOCKED = "not_locked"
    NOT_UNLOCKABLE = "not_unlockable"
    SAVED = "saved"
    SCORED = "scored"
    ALREADY_SCORED = "already_scored"
    NO_RESULTS = "no_results"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class LockMarker:
    locked_at: datetime
    trigger: str
    actor: Optional[str] = None


@dataclass(frozen=True)
class BaselinePick:
    game_id: int
    slot: int
    home_team_id: int
    away_team_id: int
    predicted_winner_team_id: int
    predicted_winner_score: int
    predicted_loser_score: int
    confidence_percent: int
    home_team_power_rank: Optional[int] = None
    away_team_power_rank: Optional[int] = None
    reasoning: str = ""


@dataclass(frozen=True)
class MemberPick:
    member_id: str
    member_name: str
    game_id: int
    predicted_winner_team_id: int
    submitted_at: datetime


@dataclass(frozen=True)
class FinalScore:
    """Final score as reported by an admin; the winner is derived when omitted."""

    game_id: int
    home_score: int
    away_score: int
    winner_team_id: Optional[int] = None


@dataclass(frozen=True)
class Contest:
    key: ContestKey
    state: ContestState
    created_at: datetime
    lock: Optional[LockMarker]
    scored_at: Optional[datetime]
    baseline: List[BaselinePick] = field(default_factory=list)
    picks: List[MemberPick] = field(default_factory=list)
    results: List[GameResult] = field(default_factory=list)

    @property
    def members(self) -> List[str]:
        return sorted({pick.member_id for pick in self.picks})

    def picks_for(self, member_id: str) -> Dict[int, int]:
        return {pick.game_id: pick.predicted_winner_team_id for pick in self.picks if pick.member_id == member_id}


def accuracy_percent(correct: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return round(correct / total * 100.0, 1)


@dataclass(frozen=True)
class WeekBreakdown:
    week: int
    picks: int
    correct: int

    @property
    def accuracy(self) -> float:
        return accuracy_percent(self.correct, self.picks)


@dataclass(frozen=True)
class MemberSeasonStats:
    member_id: str
    member_name: str
    total_picks: int
    correct_picks: int
    weeks: List[WeekBreakdown] = field(default_factory=list)

    @property
    def accuracy(self) -> float:
        return accuracy_percent(self.correct_picks, self.total_picks)

    @property
    def is_computer(self) -> bool:
        return self.member_id == COMPUTER_MEMBER_ID


@dataclass(frozen=True)
class WeekTally:
    member_id: str
    member_name: str
    picks: int
    correct: int


@dataclass(frozen=True)
class PickemResult:
    outcome: Outcome
    changed: bool = False
    contest: Optional[Contest] = None
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)


# Pure helpers -----------------------------------------------------------

def rank_members(stats: Iterable[MemberSeasonStats]) -> List[MemberSeasonStats]:
    """Order by accuracy desc, total picks desc, member id asc."""

    def sort_key(entry: MemberSeasonStats):
        ratio = entry.correct_picks / entry.total_picks if entry.total_picks else 0.0
        return (-ratio, -entry.total_picks, entry.member_id)

    return sorted(stats, key=sort_key)


def tally_contest(contest: Contest) -> List[WeekTally]:
    """Graded picks per member (computer baseline included) against saved results.

    Picks on games without a saved result are not counted.
    """

    winners = {result.game_id: result.winner_team_id for result in contest.results}
    counts: Dict[str, List[Any]] = {}
    for pick in contest.picks:
        if pick.game_id not in winners:
            continue
        entry = counts.setdefault(pick.member_id, [pick.member_name, 0, 0])
        entry[0] = pick.member_name
        entry[1] += 1
        entry[2] += int(pick.predicted_winner_team_id == winners[pick.game_id])

    tallies = [
        WeekTally(member_id=member_id, member_name=name, picks=picks, correct=correct)
        for member_id, (name, picks, correct) in sorted(counts.items())
    ]
    graded = [pick for pick in contest.baseline if pick.game_id in winners]
    if graded:
        tallies.append(
            WeekTally(
                member_id=COMPUTER_MEMBER_ID,
                member_name=COMPUTER_MEMBER_NAME,
                picks=len(graded),
                correct=sum(int(pick.predicted_winner_team_id == winners[pick.game_id]) for pick in graded),
            )
        )
    return tallies


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _derive_state(row: ContestRow, has_results: bool) -> ContestState:
    if row.scored_at is not None:
        return ContestState.SCORED
    if row.locked_at is not None or has_results:
        return ContestState.LOCKED
    return ContestState.OPEN


def _winner_for(game: BaselinePick, score: Union[GameResult, FinalScore]) -> int:
    for value in (score.home_score, score.away_score):
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValidationError(f"Scores for game {score.game_id} must be non-negative integers")
    schedule = ScheduledGame(game_id=game.game_id, home_team_id=game.home_team_id, away_team_id=game.away_team_id)
    if score.home_score == score.away_score or score.winner_team_id is None:
        return resolve_winner(schedule, score.home_score, score.away_score)
    if score.winner_team_id not in (game.home_team_id, game.away_team_id):
        raise ValidationError(f"Team {score.winner_team_id} did not play in game {game.game_id}")
    return score.winner_team_id


# Manager ----------------------------------------------------------------

class ContestManager:
    """Async facade over the contest tables plus the stats store."""

    def __init__(self, database: ContestDatabase, stats_store: StatsStore) -> None:
        self.database = database
        self.stats_store = stats_store

    async def _load(self, repo: PickemRepository, key: ContestKey, row: ContestRow) -> Contest:
        baseline_rows = await repo.baseline(row.id)
        pick_rows = await repo.member_picks(row.id)
        result_rows = await repo.results(row.id)
        lock = None
        if row.locked_at is not None:
            lock = LockMarker(locked_at=row.locked_at, trigger=row.lock_trigger or "manual", actor=row.locked_by)
        return Contest(
            key=key,
            state=_derive_state(row, bool(result_rows)),
            created_at=row.created_at,
            lock=lock,
            scored_at=row.scored_at,
            baseline=[
                BaselinePick(
                    game_id=b.game_id,
                    slot=b.slot,
                    home_team_id=b.home_team_id,
                    away_team_id=b.away_team_id,
                    predicted_winner_team_id=b.predicted_winner_team_id,
                    predicted_winner_score=b.predicted_winner_score,
                    predicted_loser_score=b.predicted_loser_score,
                    confidence_percent=b.confidence_percent,
                    home_team_power_rank=b.home_team_power_rank,
                    away_team_power_rank=b.away_team_power_rank,
                    reasoning=b.reasoning,
                )
                for b in baseline_rows
            ],
            picks=[
                MemberPick(
                    member_id=p.member_id,
                    member_name=p.member_name,
                    game_id=p.game_id,
                    predicted_winner_team_id=p.predicted_winner_team_id,
                    submitted_at=p.submitted_at,
                )
                for p in pick_rows
            ],
            results=[
                GameResult(
                    game_id=r.game_id,
                    winner_team_id=r.winner_team_id,
                    home_score=r.home_score,
                    away_score=r.away_score,
                )
                for r in result_rows
            ],
        )

    async def _row(self, repo: PickemRepository, key: ContestKey, *, for_update: bool = False) -> Optional[ContestRow]:
        return await repo.get_contest(key.guild_id, key.league_id, key.season, key.week, for_update=for_update)

    async def get_contest(self, key: ContestKey) -> Optional[Contest]:
        async with self.database.transaction() as repo:
            row = await self._row(repo, key)
            if row is None:
                return None
            return await self._load(repo, key, row)

    # --- seeding ---

    async def seed_contest(self, key: ContestKey) -> PickemResult:
        existing = await self.get_contest(key)
        if existing is not None:
            return PickemResult(Outcome.EXISTS, contest=existing, message=f"Contest {key} already exists")

        games = await self.stats_store.get_week_schedule(key.season, key.week)
        if not games:
            logger.warning("No games scheduled for %s; contest not seeded", key)
            return PickemResult(Outcome.NOT_FOUND, message=f"No games scheduled for season {key.season} week {key.week}")
        standings = await self.stats_store.get_standings(key.season)
        records = await self.stats_store.get_team_game_records(key.season)

        unique_games: List[ScheduledGame] = []
        seen = set()
        for game in games:
            if game.game_id in seen:
                logger.warning("Duplicate game %s in schedule for %s; keeping the first", game.game_id, key)
                continue
            seen.add(game.game_id)
            unique_games.append(game)
        predictions = {p.game_id: p for p in predict_week(unique_games, records, standings)}

        now = _now()
        async with self.database.transaction() as repo:
            created = await repo.insert_contest(key.guild_id, key.league_id, key.season, key.week, now)
            if created:
                row = await self._row(repo, key)
                await repo.add_baseline(
                    BaselinePickRow(
                        contest_id=row.id,
                        game_id=game.game_id,
                        slot=game.slot,
                        home_team_id=game.home_team_id,
                        away_team_id=game.away_team_id,
                        predicted_winner_team_id=predictions[game.game_id].predicted_winner_team_id,
                        predicted_winner_score=predictions[game.game_id].predicted_winner_score,
                        predicted_loser_score=predictions[game.game_id].predicted_loser_score,
                        confidence_percent=predictions[game.game_id].confidence_percent,
                        home_team_power_rank=predictions[game.game_id].home_team_power_rank,
                        away_team_power_rank=predictions[game.game_id].away_team_power_rank,
                        reasoning=predictions[game.game_id].reasoning,
                    )
                    for game in unique_games
                    if game.game_id in predictions
                )

        contest = await self.get_contest(key)
        if not created:
            logger.info("Contest %s was seeded concurrently; returning the existing one", key)
            return PickemResult(Outcome.EXISTS, contest=contest, message=f"Contest {key} already exists")
        logger.info("Seeded contest %s with %d baseline picks", key, len(predictions))
        return PickemResult(Outcome.SEEDED, changed=True, contest=contest, details={"games": len(predictions)})

    # --- picks ---

    async def submit_picks(
        self,
        key: ContestKey,
        member_id: str,
        member_name: Optional[str],
        picks: Mapping[int, int],
    ) -> PickemResult:
        """Upsert a member's picks for the given games, leaving every other row alone."""

        validate_identifier(member_id, "member id")
        if member_id == COMPUTER_MEMBER_ID:
            raise ValidationError(f"Member id '{COMPUTER_MEMBER_ID}' is reserved for the computer baseline")
        name = (member_name or "").strip()[:MAX_NAME_LENGTH] or member_id
        if not picks:
            raise ValidationError("At least one pick is required")
        try:
            wanted = {int(game_id): int(winner) for game_id, winner in picks.items()}
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Picks must map game ids to team ids: {exc}") from exc

        now = _now()
        async with self.database.transaction() as repo:
            row = await self._row(repo, key, for_update=True)
            if row is None:
                return PickemResult(Outcome.NOT_FOUND, message=f"No contest for {key}")
            if row.scored_at is not None or row.locked_at is not None or await repo.has_results(row.id):
                logger.info("Rejected picks from %s for %s: contest locked", member_id, key)
                return PickemResult(Outcome.LOCKED, message=f"Picks for {key} are locked")

            baseline = {b.game_id: b for b in await repo.baseline(row.id)}
            for game_id, winner in wanted.items():
                game = baseline.get(game_id)
                if game is None:
                    raise ValidationError(f"Game {game_id} is not part of contest {key}")
                if winner not in (game.home_team_id, game.away_team_id):
                    raise ValidationError(f"Team {winner} does not play in game {game_id}")
            await repo.upsert_member_picks(row.id, member_id, name, wanted, now)

        logger.info("Accepted %d pick(s) from %s for %s", len(wanted), member_id, key)
        return PickemResult(
            Outcome.ACCEPTED,
            changed=True,
            contest=await self.get_contest(key),
            details={"accepted": len(wanted)},
        )

    # --- locking ---

    async def lock(self, key: ContestKey, *, trigger: str = "manual", actor: Optional[str] = None) -> PickemResult:
        if trigger not in LOCK_TRIGGERS:
            raise ValidationError(f"Lock trigger must be one of {', '.join(LOCK_TRIGGERS)}")
        if actor is not None:
            actor = str(actor)[:64]

        async with self.database.transaction() as repo:
            row = await self._row(repo, key)
            if row is None:
                return PickemResult(Outcome.NOT_FOUND, message=f"No contest for {key}")
            won = await repo.mark_locked(row.id, trigger, actor, _now())

        contest = await self.get_contest(key)
        if not won:
            logger.info("Contest %s already locked; %s lock ignored", key, trigger)
            return PickemResult(Outcome.ALREADY_LOCKED, contest=contest, message=f"Contest {key} is already locked")
        logger.info("Locked contest %s (trigger=%s, actor=%s)", key, trigger, actor)
        return PickemResult(Outcome.LOCKED, changed=True, contest=contest)

    async def unlock(self, key: ContestKey) -> PickemResult:
        async with self.database.transaction() as repo:
            row = await self._row(repo, key)
            if row is None:
                return PickemResult(Outcome.NOT_FOUND, message=f"No contest for {key}")
            cleared = await repo.clear_lock(row.id)
            was_open = row.locked_at is None and row.scored_at is None and not await repo.has_results(row.id)

        contest = await self.get_contest(key)
        if cleared:
            logger.info("Unlocked contest %s", key)
            return PickemResult(Outcome.UNLOCKED, changed=True, contest=contest)
        if was_open:
            return PickemResult(Outcome.NOT_LOCKED, contest=contest, message=f"Contest {key} is not locked")
        logger.warning("Refused to unlock contest %s: results saved or already scored", key)
        return PickemResult(Outcome.NOT_UNLOCKABLE, contest=contest, message="Results exist or the week is scored")

    async def is_locked(self, key: ContestKey) -> bool:
        """``True`` when picks are closed (lock marker, saved results or scored)."""

        contest = await self.get_contest(key)
        return contest is not None and contest.state is not ContestState.OPEN

    # --- results and scoring ---

    async def _fetch_results(self, baseline: List[BaselinePick]) -> List[GameResult]:
        fetched = await asyncio.gather(*(self.stats_store.get_game_result(pick.game_id) for pick in baseline))
        return [result for result in fetched if result is not None]

    async def save_results(
        self,
        key: ContestKey,
        results: Optional[Iterable[Union[GameResult, FinalScore]]] = None,
    ) -> PickemResult:
        """Store authoritative outcomes; fetches them from the stats store when omitted."""

        contest = await self.get_contest(key)
        if contest is None:
            return PickemResult(Outcome.NOT_FOUND, message=f"No contest for {key}")
        if contest.state is ContestState.SCORED:
            return PickemResult(Outcome.ALREADY_SCORED, contest=contest, message=f"Contest {key} is already scored")

        if results is None:
            results = await self._fetch_results(contest.baseline)
        baseline = {pick.game_id: pick for pick in contest.baseline}
        rows: Dict[int, Dict[str, int]] = {}
        for result in results:
            game = baseline.get(result.game_id)
            if game is None:
                raise ValidationError(f"Game {result.game_id} is not part of contest {key}")
            rows[result.game_id] = {
                "game_id": result.game_id,
                "winner_team_id": _winner_for(game, result),
                "home_score": result.home_score,
                "away_score": result.away_score,
            }
        if not rows:
            logger.info("No final results available for %s", key)
            return PickemResult(Outcome.NO_RESULTS, contest=contest, message="No final results available")

        async with self.database.transaction() as repo:
            row = await self._row(repo, key, for_update=True)
            if row.scored_at is not None:
                return PickemResult(Outcome.ALREADY_SCORED, message=f"Contest {key} is already scored")
            saved = await repo.upsert_results(row.id, rows.values())

        logger.info("Saved %d result(s) for %s", saved, key)
        return PickemResult(Outcome.SAVED, changed=True, contest=await self.get_contest(key), details={"saved": saved})

    async def finalize_week(self, key: ContestKey) -> PickemResult:
        """Save results and score once every baseline game is final."""

        contest = await self.get_contest(key)
        if contest is None:
            return PickemResult(Outcome.NOT_FOUND, message=f"No contest for {key}")
        if contest.state is ContestState.SCORED:
            # Re-running applies any member week a previous run failed to record.
            return await self.score_contest(key)

        fetched = await self._fetch_results(contest.baseline)
        if not contest.baseline or len(fetched) < len(contest.baseline):
            logger.info("%s: %d of %d games final; not scoring yet", key, len(fetched), len(contest.baseline))
            return PickemResult(
                Outcome.NO_RESULTS,
                contest=contest,
                message="Not every game is final",
                details={"final": len(fetched), "games": len(contest.baseline)},
            )

        saved = await self.save_results(key, fetched)
        if saved.outcome is not Outcome.SAVED:
            return saved
        return await self.score_contest(key)

    async def _apply_member_week(self, key: ContestKey, tally: WeekTally) -> bool:
        async with self.database.transaction() as repo:
            inserted = await repo.record_member_week(
                key.guild_id, key.league_id, key.season, tally.member_id, key.week, tally.picks, tally.correct
            )
            if not inserted:
                logger.info("Week %s already counted for %s; skipping", key.week, tally.member_id)
                return False
            await repo.increment_member_stats(
                key.guild_id,
                key.league_id,
                key.season,
                tally.member_id,
                tally.member_name,
                tally.picks,
                tally.correct,
                _now(),
            )
        return True

    async def score_contest(self, key: ContestKey) -> PickemResult:
        """Score the week exactly once.

        Later calls return ``ALREADY_SCORED`` and only apply member weeks that
        an earlier run failed to record.
        """

        async with self.database.transaction() as repo:
            row = await self._row(repo, key)
            if row is None:
                logger.warning("Cannot score %s: contest not found", key)
                return PickemResult(Outcome.NOT_FOUND, message=f"No contest for {key}")
            won = await repo.mark_scored(row.id, _now())

        # Read the outcome of a lost race after the fact; the pre-CAS row may be stale.
        contest = await self.get_contest(key)
        if not won and contest.state is not ContestState.SCORED:
            logger.warning("Cannot score %s: no results saved", key)
            return PickemResult(Outcome.NO_RESULTS, contest=contest, message="No results saved")

        tallies = tally_contest(contest)
        applied, failed = await self._apply_tallies(key, tallies)
        details: Dict[str, Any] = {
            "participants": len(tallies),
            "tallies": {t.member_id: {"picks": t.picks, "correct": t.correct} for t in tallies},
        }
        if failed:
            details["failed"] = failed

        if not won:
            if applied:
                logger.info("Contest %s already scored; applied %d missing week(s)", key, applied)
            else:
                logger.info("Contest %s already scored; nothing to do", key)
            details["applied"] = applied
            return PickemResult(Outcome.ALREADY_SCORED, changed=applied > 0, contest=contest, details=details)

        logger.info("Scored contest %s for %d participant(s)", key, applied)
        return PickemResult(Outcome.SCORED, changed=True, contest=contest, details=details)

    async def _apply_tallies(self, key: ContestKey, tallies: List[WeekTally]) -> tuple[int, List[str]]:
        """Apply every member's week; a failed member is retried by the next scoring call."""

        outcomes = await asyncio.gather(
            *(self._apply_member_week(key, tally) for tally in tallies),
            return_exceptions=True,
        )
        applied = 0
        failed: List[str] = []
        for tally, outcome in zip(tallies, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.error("Applying week %s for %s in %s failed: %s", key.week, tally.member_id, key, outcome)
                failed.append(tally.member_id)
            elif outcome:
                applied += 1
        return applied, failed

    # --- season statistics ---

    async def leaderboard(
        self,
        guild_id: str,
        league_id: str,
        season: int,
        *,
        include_computer: bool = True,
        limit: Optional[int] = None,
    ) -> List[MemberSeasonStats]:
        validate_identifier(guild_id, "guild id")
        validate_identifier(league_id, "league id")
        validate_season(season)
        async with self.database.transaction() as repo:
            rows = await repo.season_stats(guild_id, league_id, season)

        stats = [
            MemberSeasonStats(
                member_id=row.member_id,
                member_name=row.member_name,
                total_picks=row.total_picks,
                correct_picks=row.correct_picks,
            )
            for row in rows
            if include_computer or row.member_id != COMPUTER_MEMBER_ID
        ]
        ranked = rank_members(stats)
        if limit is not None:
            ranked = ranked[: max(limit, 0)]
        return ranked

    async def member_stats(
        self, guild_id: str, league_id: str, season: int, member_id: str
    ) -> Optional[MemberSeasonStats]:
        validate_identifier(guild_id, "guild id")
        validate_identifier(league_id, "league id")
        validate_season(season)
        validate_identifier(member_id, "member id")
        async with self.database.transaction() as repo:
            row = await repo.member_season(guild_id, league_id, season, member_id)
            if row is None:
                return None
            weeks = await repo.member_weeks(guild_id, league_id, season, member_id)
        return MemberSeasonStats(
            member_id=row.member_id,
            member_name=row.member_name,
            total_picks=row.total_picks,
            correct_picks=row.correct_picks,
            weeks=[WeekBreakdown(week=w.week, picks=w.picks, correct=w.correct) for w in weeks],
        )
