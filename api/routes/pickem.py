from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status

from api.dependencies import get_contest_manager, require_api_key
from api.models import (
    ContestModel,
    LeaderboardResponse,
    LockRequest,
    LockStatusResponse,
    MemberStatsModel,
    PickemResultResponse,
    PickSubmissionRequest,
    ResultsRequest,
)
from api.utils import build_leaderboard, contest_key, result_response, translate_errors
from pickem import ContestManager, FinalScore, Outcome

router = APIRouter(prefix="/pickem", tags=["pickem"], dependencies=[Depends(require_api_key)])

SEASON_PATH = "/{guild_id}/{league_id}/{season}"
WEEK_PATH = SEASON_PATH + "/{week}"


# Season-level routes are registered first so "leaderboard" and "members"
# are never parsed as a week number.

@router.get(SEASON_PATH + "/leaderboard", response_model=LeaderboardResponse, summary="Season pick'em leaderboard")
async def leaderboard(
    guild_id: str,
    league_id: str,
    season: int,
    include_computer: bool = Query(True, alias="includeComputer"),
    limit: Optional[int] = Query(None, ge=1, le=500),
    manager: ContestManager = Depends(get_contest_manager),
) -> LeaderboardResponse:
    with translate_errors():
        stats = await manager.leaderboard(
            guild_id, league_id, season, include_computer=include_computer, limit=limit
        )
    items = build_leaderboard(stats)
    return LeaderboardResponse(guild_id=guild_id, league_id=league_id, season=season, items=items, total=len(items))


@router.get(
    SEASON_PATH + "/members/{member_id}",
    response_model=MemberStatsModel,
    summary="One member's season statistics with weekly breakdown",
)
async def member_stats(
    guild_id: str,
    league_id: str,
    season: int,
    member_id: str,
    manager: ContestManager = Depends(get_contest_manager),
) -> MemberStatsModel:
    with translate_errors():
        stats = await manager.member_stats(guild_id, league_id, season, member_id)
    if stats is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No pick'em history for '{member_id}'")
    return MemberStatsModel.from_stats(stats)


@router.post(WEEK_PATH, response_model=PickemResultResponse, summary="Seed the week's contest (idempotent)")
async def seed_contest(
    guild_id: str,
    league_id: str,
    season: int,
    week: int,
    manager: ContestManager = Depends(get_contest_manager),
) -> PickemResultResponse:
    key = contest_key(guild_id, league_id, season, week)
    with translate_errors():
        result = await manager.seed_contest(key)
    return result_response(result)


@router.get(WEEK_PATH, response_model=ContestModel, summary="Read a contest with its derived state")
async def get_contest(
    guild_id: str,
    league_id: str,
    season: int,
    week: int,
    manager: ContestManager = Depends(get_contest_manager),
) -> ContestModel:
    key = contest_key(guild_id, league_id, season, week)
    contest = await manager.get_contest(key)
    if contest is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No contest for {key}")
    return ContestModel.from_contest(contest)


@router.put(WEEK_PATH + "/picks/{member_id}", response_model=PickemResultResponse, summary="Submit or update picks")
async def submit_picks(
    guild_id: str,
    league_id: str,
    season: int,
    week: int,
    member_id: str,
    payload: PickSubmissionRequest,
    manager: ContestManager = Depends(get_contest_manager),
) -> PickemResultResponse:
    key = contest_key(guild_id, league_id, season, week)
    with translate_errors():
        result = await manager.submit_picks(key, member_id, payload.member_name, payload.picks)
    if result.outcome is Outcome.LOCKED:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=result.message)
    return result_response(result)


@router.get(WEEK_PATH + "/lock", response_model=LockStatusResponse, summary="Whether picks are closed")
async def lock_status(
    guild_id: str,
    league_id: str,
    season: int,
    week: int,
    manager: ContestManager = Depends(get_contest_manager),
) -> LockStatusResponse:
    key = contest_key(guild_id, league_id, season, week)
    return LockStatusResponse(locked=await manager.is_locked(key))


@router.post(WEEK_PATH + "/lock", response_model=PickemResultResponse, summary="Lock the contest")
async def lock_contest(
    guild_id: str,
    league_id: str,
    season: int,
    week: int,
    payload: Optional[LockRequest] = Body(default=None),
    manager: ContestManager = Depends(get_contest_manager),
) -> PickemResultResponse:
    key = contest_key(guild_id, league_id, season, week)
    payload = payload or LockRequest()
    with translate_errors():
        result = await manager.lock(key, trigger=payload.trigger, actor=payload.actor)
    return result_response(result)


@router.post(WEEK_PATH + "/unlock", response_model=PickemResultResponse, summary="Reopen a locked contest")
async def unlock_contest(
    guild_id: str,
    league_id: str,
    season: int,
    week: int,
    manager: ContestManager = Depends(get_contest_manager),
) -> PickemResultResponse:
    key = contest_key(guild_id, league_id, season, week)
    return result_response(await manager.unlock(key))


@router.post(WEEK_PATH + "/results", response_model=PickemResultResponse, summary="Save final results")
async def save_results(
    guild_id: str,
    league_id: str,
    season: int,
    week: int,
    payload: Optional[ResultsRequest] = Body(default=None),
    manager: ContestManager = Depends(get_contest_manager),
) -> PickemResultResponse:
    key = contest_key(guild_id, league_id, season, week)
    results = None
    if payload is not None and payload.results is not None:
        results = [
            FinalScore(
                game_id=item.game_id,
                home_score=item.home_score,
                away_score=item.away_score,
                winner_team_id=item.winner_team_id,
            )
            for item in payload.results
        ]
    with translate_errors():
        result = await manager.save_results(key, results)
    return result_response(result)


@router.post(WEEK_PATH + "/score", response_model=PickemResultResponse, summary="Score the week (exactly once)")
async def score_contest(
    guild_id: str,
    league_id: str,
    season: int,
    week: int,
    manager: ContestManager = Depends(get_contest_manager),
) -> PickemResultResponse:
    key = contest_key(guild_id, league_id, season, week)
    return result_response(await manager.score_contest(key))


@router.post(WEEK_PATH + "/finalize", response_model=PickemResultResponse, summary="Fetch results and score when final")
async def finalize_week(
    guild_id: str,
    league_id: str,
    season: int,
    week: int,
    manager: ContestManager = Depends(get_contest_manager),
) -> PickemResultResponse:
    key = contest_key(guild_id, league_id, season, week)
    with translate_errors():
        result = await manager.finalize_week(key)
    return result_response(result)
