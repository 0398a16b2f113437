from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, List

from fastapi import HTTPException, status

from api.models import LeaderboardEntry, MemberStatsModel, PickemResultResponse
from errors import StatsStoreUnavailable, ValidationError
from pickem import ContestKey, MemberSeasonStats, Outcome, PickemResult


@contextmanager
def translate_errors() -> Iterator[None]:
    """Map core exceptions onto HTTP status codes."""

    try:
        yield
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except StatsStoreUnavailable as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc


def contest_key(guild_id: str, league_id: str, season: int, week: int) -> ContestKey:
    with translate_errors():
        return ContestKey(guild_id, league_id, season, week)


def result_response(result: PickemResult) -> PickemResultResponse:
    if result.outcome is Outcome.NOT_FOUND:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=result.message or "Contest not found")
    return PickemResultResponse.from_result(result)


def build_leaderboard(stats: List[MemberSeasonStats]) -> List[LeaderboardEntry]:
    return [
        LeaderboardEntry(rank=idx, **MemberStatsModel.from_stats(entry).model_dump())
        for idx, entry in enumerate(stats, start=1)
    ]
