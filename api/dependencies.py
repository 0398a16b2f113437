"""Shared FastAPI dependencies (auth, context access, etc.)."""

from __future__ import annotations

import os
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from context import ContextManager, context_manager
from pickem import ContestManager
from stats_store import StatsStore


class APISettings:
    """Runtime settings for the API layer."""

    def __init__(self) -> None:
        self.api_key = os.environ.get("PICKEM_API_KEY")


def get_api_settings() -> APISettings:
    return APISettings()


async def require_api_key(
    settings: Annotated[APISettings, Depends(get_api_settings)],
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> None:
    """Validate the ``X-API-Key`` header if an API key is configured."""

    if settings.api_key is None:
        return
    if x_api_key != settings.api_key:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")


def get_context_manager() -> ContextManager:
    return context_manager


def get_stats_store(manager: Annotated[ContextManager, Depends(get_context_manager)]) -> StatsStore:
    return manager.get().stats_store


def get_contest_manager(manager: Annotated[ContextManager, Depends(get_context_manager)]) -> ContestManager:
    return manager.get().contest_manager
