from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query

from analytics_service import get_power_rankings
from api.dependencies import get_stats_store, require_api_key
from api.models import PowerRankingsResponse, PowerScoreModel
from api.utils import translate_errors
from stats_store import StatsStore

router = APIRouter(prefix="/rankings", tags=["rankings"], dependencies=[Depends(require_api_key)])


@router.get("/power", response_model=PowerRankingsResponse, summary="Team power rankings for a season")
async def power_rankings(
    season: int = Query(..., ge=0, le=99),
    limit: Optional[int] = Query(None, ge=1, le=64),
    store: StatsStore = Depends(get_stats_store),
) -> PowerRankingsResponse:
    with translate_errors():
        rankings = await get_power_rankings(store, season)
    items = [PowerScoreModel.from_score(entry) for entry in rankings]
    if limit is not None:
        items = items[:limit]
    return PowerRankingsResponse(
        season=season,
        generated_at=datetime.now(timezone.utc),
        items=items,
        total=len(rankings),
    )
