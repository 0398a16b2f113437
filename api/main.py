from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from api.routes import config, events, gotw, health, pickem, predictions, rankings
from context import context_manager


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    await context_manager.startup()
    try:
        yield
    finally:
        await context_manager.shutdown()


app = FastAPI(title="Pick'em & Season Analytics API", version="0.1.0", lifespan=lifespan)
app.include_router(health.router)
app.include_router(config.router)
app.include_router(rankings.router)
app.include_router(predictions.router)
app.include_router(gotw.router)
app.include_router(pickem.router)
app.include_router(events.router)


@app.get("/", summary="Root endpoint", tags=["health"])
async def root() -> dict[str, str]:
    return {"message": "Pick'em & Season Analytics API"}
