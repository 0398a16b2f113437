from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from analytics_service import get_week_predictions
from api.dependencies import get_stats_store, require_api_key
from api.models import PredictionModel, PredictionsResponse
from api.utils import translate_errors
from stats_store import StatsStore

router = APIRouter(prefix="/predictions", tags=["predictions"], dependencies=[Depends(require_api_key)])


@router.get("", response_model=PredictionsResponse, summary="Predicted outcomes for every game of a week")
async def week_predictions(
    season: int = Query(..., ge=0, le=99),
    week: int = Query(..., ge=0, le=22),
    store: StatsStore = Depends(get_stats_store),
) -> PredictionsResponse:
    with translate_errors():
        predictions = await get_week_predictions(store, season, week)
    return PredictionsResponse(
        season=season,
        week=week,
        items=[PredictionModel.from_prediction(p) for p in predictions],
        total=len(predictions),
    )
