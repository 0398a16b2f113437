from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from analytics_service import get_marquee_game, parse_rivalries
from api.dependencies import get_stats_store, require_api_key
from api.models import GOTWModel, GOTWResponse
from api.utils import translate_errors
from stats_store import StatsStore

router = APIRouter(prefix="/gotw", tags=["gotw"], dependencies=[Depends(require_api_key)])


@router.get("", response_model=GOTWResponse, summary="Select the Game of the Week")
async def game_of_the_week(
    season: int = Query(..., ge=0, le=99),
    week: int = Query(..., ge=0, le=22),
    rivalries: Optional[str] = Query(None, description="Comma separated team pairs, e.g. '1-2,3-4'"),
    store: StatsStore = Depends(get_stats_store),
) -> GOTWResponse:
    with translate_errors():
        selection = await get_marquee_game(store, season, week, rivalries=parse_rivalries(rivalries))
    return GOTWResponse(
        season=season,
        week=week,
        selection=GOTWModel.from_selection(selection) if selection else None,
    )
