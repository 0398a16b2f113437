"""Reactions to events published by the league's event bus."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from pickem import ContestKey, ContestManager, PickemResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BroadcastStarted:
    guild_id: str
    league_id: str
    season: int
    week: int
    title: Optional[str] = None
    event_id: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "BroadcastStarted":
        return cls(
            guild_id=payload.get("guildId"),
            league_id=payload.get("leagueId"),
            season=payload.get("season"),
            week=payload.get("week"),
            title=payload.get("title"),
            event_id=payload.get("eventId"),
        )

    @property
    def key(self) -> ContestKey:
        return ContestKey(self.guild_id, self.league_id, self.season, self.week)


async def handle_broadcast_started(manager: ContestManager, event: BroadcastStarted) -> PickemResult:
    """Lock the week's contest; repeated deliveries of the same event are no-ops."""

    key = event.key
    logger.info("Broadcast started for %s (%s)", key, event.title or event.event_id or "untitled")
    return await manager.lock(key, trigger="broadcast", actor=event.event_id)
