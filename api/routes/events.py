from __future__ import annotations

from fastapi import APIRouter, Depends

from api.dependencies import get_contest_manager, require_api_key
from api.models import BroadcastStartRequest, PickemResultResponse
from api.utils import result_response, translate_errors
from events import BroadcastStarted, handle_broadcast_started
from pickem import ContestManager

router = APIRouter(prefix="/events", tags=["events"], dependencies=[Depends(require_api_key)])


@router.post(
    "/broadcast-start",
    response_model=PickemResultResponse,
    summary="Lock the week's contest when a broadcast goes live",
)
async def broadcast_start(
    payload: BroadcastStartRequest,
    manager: ContestManager = Depends(get_contest_manager),
) -> PickemResultResponse:
    event = BroadcastStarted(
        guild_id=payload.guild_id,
        league_id=payload.league_id,
        season=payload.season,
        week=payload.week,
        title=payload.title,
        event_id=payload.event_id,
    )
    with translate_errors():
        result = await handle_broadcast_started(manager, event)
    return result_response(result)
