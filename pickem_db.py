"""Durable storage for pick'em contests and member season statistics.

Contest state is normalised so concurrent writers touch disjoint rows:

* ``pickem_contests``: one row per (guild, league, season, week) with the
  lock and scored markers,
* ``pickem_baseline_picks``: the computer's prediction snapshot per game,
* ``pickem_member_picks``: one row per (contest, member, game),
* ``pickem_game_results``: one row per (contest, game),
* ``pickem_member_stats`` / ``pickem_member_weeks``: cumulative season
  totals plus the per-week rows whose primary key guarantees a week is
  counted once per member.

State transitions are single conditional statements (``UPDATE ... WHERE
scored_at IS NULL`` and friends) so the affected row count tells the caller
whether it won the race.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
    exists,
    select,
    update,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.pool import NullPool

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///pickem.db"
SQLITE_BUSY_TIMEOUT = 30.0


class Base(DeclarativeBase):
    pass


class ContestRow(Base):
    __tablename__ = "pickem_contests"
    __table_args__ = (UniqueConstraint("guild_id", "league_id", "season", "week", name="uq_pickem_contest_key"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    guild_id: Mapped[str] = mapped_column(String(64), nullable=False)
    league_id: Mapped[str] = mapped_column(String(64), nullable=False)
    season: Mapped[int] = mapped_column(Integer, nullable=False)
    week: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    locked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    lock_trigger: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    locked_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    scored_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class BaselinePickRow(Base):
    __tablename__ = "pickem_baseline_picks"

    contest_id: Mapped[int] = mapped_column(ForeignKey("pickem_contests.id", ondelete="CASCADE"), primary_key=True)
    game_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    slot: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    home_team_id: Mapped[int] = mapped_column(Integer, nullable=False)
    away_team_id: Mapped[int] = mapped_column(Integer, nullable=False)
    predicted_winner_team_id: Mapped[int] = mapped_column(Integer, nullable=False)
    predicted_winner_score: Mapped[int] = mapped_column(Integer, nullable=False)
    predicted_loser_score: Mapped[int] = mapped_column(Integer, nullable=False)
    confidence_percent: Mapped[int] = mapped_column(Integer, nullable=False)
    home_team_power_rank: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    away_team_power_rank: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    reasoning: Mapped[str] = mapped_column(Text, nullable=False, default="")


class MemberPickRow(Base):
    __tablename__ = "pickem_member_picks"

    contest_id: Mapped[int] = mapped_column(ForeignKey("pickem_contests.id", ondelete="CASCADE"), primary_key=True)
    member_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    game_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    member_name: Mapped[str] = mapped_column(String(100), nullable=False)
    predicted_winner_team_id: Mapped[int] = mapped_column(Integer, nullable=False)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class GameResultRow(Base):
    __tablename__ = "pickem_game_results"

    contest_id: Mapped[int] = mapped_column(ForeignKey("pickem_contests.id", ondelete="CASCADE"), primary_key=True)
    game_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    winner_team_id: Mapped[int] = mapped_column(Integer, nullable=False)
    home_score: Mapped[int] = mapped_column(Integer, nullable=False)
    away_score: Mapped[int] = mapped_column(Integer, nullable=False)


class MemberStatsRow(Base):
    __tablename__ = "pickem_member_stats"

    guild_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    league_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    season: Mapped[int] = mapped_column(Integer, primary_key=True)
    member_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    member_name: Mapped[str] = mapped_column(String(100), nullable=False)
    total_picks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    correct_picks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class MemberWeekRow(Base):
    __tablename__ = "pickem_member_weeks"

    guild_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    league_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    season: Mapped[int] = mapped_column(Integer, primary_key=True)
    member_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    week: Mapped[int] = mapped_column(Integer, primary_key=True)
    picks: Mapped[int] = mapped_column(Integer, nullable=False)
    correct: Mapped[int] = mapped_column(Integer, nullable=False)


# Engine -----------------------------------------------------------------

def _is_memory_sqlite(url: str) -> bool:
    return url.startswith("sqlite") and (":memory:" in url or url.rstrip("/").endswith(":"))


def _install_sqlite_write_locks(engine: AsyncEngine) -> None:
    """Start every SQLite transaction with ``BEGIN IMMEDIATE``.

    pysqlite defers ``BEGIN`` until the first write, which lets two
    read-check-write sequences interleave. Taking the write lock up front
    serialises them; the busy timeout makes the loser wait instead of fail.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine(url: str = DEFAULT_DATABASE_URL, *, echo: bool = False) -> AsyncEngine:
    """Build an async engine for ``url``.

    SQLite databases must be files: every session gets its own connection
    (``NullPool``), so an in-memory database would be empty for each of them.
    """

    if _is_memory_sqlite(url):
        raise ValueError("In-memory SQLite is not supported; use a database file")
    kwargs: Dict[str, Any] = {"echo": echo}
    if url.startswith("sqlite"):
        kwargs["poolclass"] = NullPool
        kwargs["connect_args"] = {"timeout": SQLITE_BUSY_TIMEOUT}
    engine = create_async_engine(url, **kwargs)
    if engine.dialect.name == "sqlite":
        _install_sqlite_write_locks(engine)
    return engine


class ContestDatabase:
    """Owns the engine and hands out one-transaction sessions."""

    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine
        self._sessions = async_sessionmaker(engine, expire_on_commit=False)

    @classmethod
    def from_url(cls, url: str = DEFAULT_DATABASE_URL, *, echo: bool = False) -> "ContestDatabase":
        return cls(create_engine(url, echo=echo))

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    async def create_schema(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Pick'em schema ready on %s", self.dialect_name)

    async def dispose(self) -> None:
        await self.engine.dispose()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["PickemRepository"]:
        async with self._sessions() as session:
            async with session.begin():
                yield PickemRepository(session, self.dialect_name)


# Repository -------------------------------------------------------------

class PickemRepository:
    """Statements used by the contest manager, bound to one session."""

    def __init__(self, session: AsyncSession, dialect_name: str = "sqlite") -> None:
        self.session = session
        self.dialect_name = dialect_name

    def _insert(self, table):
        if self.dialect_name == "postgresql":
            return postgresql.insert(table)
        return sqlite.insert(table)

    # --- contests ---

    async def get_contest(
        self,
        guild_id: str,
        league_id: str,
        season: int,
        week: int,
        *,
        for_update: bool = False,
    ) -> Optional[ContestRow]:
        stmt = select(ContestRow).where(
            ContestRow.guild_id == guild_id,
            ContestRow.league_id == league_id,
            ContestRow.season == season,
            ContestRow.week == week,
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def insert_contest(self, guild_id: str, league_id: str, season: int, week: int, now: datetime) -> bool:
        """Create the contest row; ``False`` when another writer already did."""
        stmt = (
            self._insert(ContestRow)
            .values(guild_id=guild_id, league_id=league_id, season=season, week=week, created_at=now)
            .on_conflict_do_nothing(index_elements=["guild_id", "league_id", "season", "week"])
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def mark_locked(self, contest_id: int, trigger: str, actor: Optional[str], now: datetime) -> bool:
        stmt = (
            update(ContestRow)
            .where(ContestRow.id == contest_id, ContestRow.locked_at.is_(None), ContestRow.scored_at.is_(None))
            .values(locked_at=now, lock_trigger=trigger, locked_by=actor)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def clear_lock(self, contest_id: int) -> bool:
        no_results = ~exists().where(GameResultRow.contest_id == contest_id)
        stmt = (
            update(ContestRow)
            .where(
                ContestRow.id == contest_id,
                ContestRow.locked_at.is_not(None),
                ContestRow.scored_at.is_(None),
                no_results,
            )
            .values(locked_at=None, lock_trigger=None, locked_by=None)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def mark_scored(self, contest_id: int, now: datetime) -> bool:
        """Compare-and-set of the scored marker; ``True`` only for the winner."""
        has_results = exists().where(GameResultRow.contest_id == contest_id)
        stmt = (
            update(ContestRow)
            .where(ContestRow.id == contest_id, ContestRow.scored_at.is_(None), has_results)
            .values(scored_at=now)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    # --- baseline, picks, results ---

    async def add_baseline(self, rows: Iterable[BaselinePickRow]) -> None:
        self.session.add_all(list(rows))
        await self.session.flush()

    async def baseline(self, contest_id: int) -> List[BaselinePickRow]:
        stmt = (
            select(BaselinePickRow)
            .where(BaselinePickRow.contest_id == contest_id)
            .order_by(BaselinePickRow.slot, BaselinePickRow.game_id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def member_picks(self, contest_id: int) -> List[MemberPickRow]:
        stmt = (
            select(MemberPickRow)
            .where(MemberPickRow.contest_id == contest_id)
            .order_by(MemberPickRow.member_id, MemberPickRow.game_id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def upsert_member_picks(
        self,
        contest_id: int,
        member_id: str,
        member_name: str,
        picks: Dict[int, int],
        now: datetime,
    ) -> None:
        for game_id, winner in picks.items():
            stmt = self._insert(MemberPickRow).values(
                contest_id=contest_id,
                member_id=member_id,
                game_id=game_id,
                member_name=member_name,
                predicted_winner_team_id=winner,
                submitted_at=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["contest_id", "member_id", "game_id"],
                set_={
                    "member_name": stmt.excluded.member_name,
                    "predicted_winner_team_id": stmt.excluded.predicted_winner_team_id,
                    "submitted_at": stmt.excluded.submitted_at,
                },
            )
            await self.session.execute(stmt)
        # One display name per member, including games not in this submission.
        await self.session.execute(
            update(MemberPickRow)
            .where(
                MemberPickRow.contest_id == contest_id,
                MemberPickRow.member_id == member_id,
                MemberPickRow.member_name != member_name,
            )
            .values(member_name=member_name)
        )

    async def results(self, contest_id: int) -> List[GameResultRow]:
        stmt = select(GameResultRow).where(GameResultRow.contest_id == contest_id).order_by(GameResultRow.game_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def has_results(self, contest_id: int) -> bool:
        result = await self.session.execute(select(exists().where(GameResultRow.contest_id == contest_id)))
        return bool(result.scalar())

    async def upsert_results(self, contest_id: int, rows: Iterable[Dict[str, int]]) -> int:
        count = 0
        for row in rows:
            stmt = self._insert(GameResultRow).values(contest_id=contest_id, **row)
            stmt = stmt.on_conflict_do_update(
                index_elements=["contest_id", "game_id"],
                set_={
                    "winner_team_id": stmt.excluded.winner_team_id,
                    "home_score": stmt.excluded.home_score,
                    "away_score": stmt.excluded.away_score,
                },
            )
            await self.session.execute(stmt)
            count += 1
        return count

    # --- member season statistics ---

    async def record_member_week(
        self,
        guild_id: str,
        league_id: str,
        season: int,
        member_id: str,
        week: int,
        picks: int,
        correct: int,
    ) -> bool:
        """Insert the per-week row; ``False`` when the week was already counted."""
        stmt = (
            self._insert(MemberWeekRow)
            .values(
                guild_id=guild_id,
                league_id=league_id,
                season=season,
                member_id=member_id,
                week=week,
                picks=picks,
                correct=correct,
            )
            .on_conflict_do_nothing(index_elements=["guild_id", "league_id", "season", "member_id", "week"])
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def increment_member_stats(
        self,
        guild_id: str,
        league_id: str,
        season: int,
        member_id: str,
        member_name: str,
        picks: int,
        correct: int,
        now: datetime,
    ) -> None:
        stmt = self._insert(MemberStatsRow).values(
            guild_id=guild_id,
            league_id=league_id,
            season=season,
            member_id=member_id,
            member_name=member_name,
            total_picks=picks,
            correct_picks=correct,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["guild_id", "league_id", "season", "member_id"],
            set_={
                "member_name": stmt.excluded.member_name,
                "total_picks": MemberStatsRow.__table__.c.total_picks + stmt.excluded.total_picks,
                "correct_picks": MemberStatsRow.__table__.c.correct_picks + stmt.excluded.correct_picks,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await self.session.execute(stmt)

    async def season_stats(self, guild_id: str, league_id: str, season: int) -> List[MemberStatsRow]:
        stmt = select(MemberStatsRow).where(
            MemberStatsRow.guild_id == guild_id,
            MemberStatsRow.league_id == league_id,
            MemberStatsRow.season == season,
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def member_season(
        self, guild_id: str, league_id: str, season: int, member_id: str
    ) -> Optional[MemberStatsRow]:
        return await self.session.get(MemberStatsRow, (guild_id, league_id, season, member_id))

    async def member_weeks(self, guild_id: str, league_id: str, season: int, member_id: str) -> List[MemberWeekRow]:
        stmt = (
            select(MemberWeekRow)
            .where(
                MemberWeekRow.guild_id == guild_id,
                MemberWeekRow.league_id == league_id,
                MemberWeekRow.season == season,
                MemberWeekRow.member_id == member_id,
            )
            .order_by(MemberWeekRow.week)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
