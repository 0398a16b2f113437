from __future__ import annotations

import asyncio
import copy
from typing import Any, Dict, Iterator

import pytest
from fastapi.testclient import TestClient

from config import settings
from context import context_manager
from pickem import ContestKey, ContestManager
from pickem_db import ContestDatabase
from stats_store import InMemoryStatsStore

SAMPLE_PAYLOAD: Dict[str, Any] = {
    "seasons": {
        "0": {
            "standings": [
                {"teamId": 1, "teamName": "Bears", "division": "North", "wins": 4, "losses": 0, "pointsFor": 120, "pointsAgainst": 70},
                {"teamId": 2, "teamName": "Wolves", "division": "North", "wins": 3, "losses": 1, "pointsFor": 100, "pointsAgainst": 80},
                {"teamId": 3, "teamName": "Hawks", "division": "North", "wins": 2, "losses": 2, "pointsFor": 90, "pointsAgainst": 90},
                {"teamId": 4, "teamName": "Sharks", "division": "South", "wins": 2, "losses": 2, "pointsFor": 85, "pointsAgainst": 88},
                {"teamId": 5, "teamName": "Foxes", "division": "South", "wins": 1, "losses": 3, "pointsFor": 70, "pointsAgainst": 100},
                {"teamId": 6, "teamName": "Owls", "division": "South", "wins": 0, "losses": 4, "pointsFor": 60, "pointsAgainst": 110},
            ],
            "weeks": {
                "1": [
                    {"gameId": 102, "homeTeamId": 3, "awayTeamId": 4, "slot": 1},
                    {"gameId": 101, "homeTeamId": 1, "awayTeamId": 2, "slot": 0},
                    {"gameId": 103, "homeTeamId": 5, "awayTeamId": 6, "slot": 2},
                ],
            },
        },
    },
}

# Final scores for week 1: home 1 wins, away 4 wins, home 5 wins.
WEEK_ONE_RESULTS = {
    "101": {"winnerTeamId": 1, "homeScore": 24, "awayScore": 17},
    "102": {"winnerTeamId": 4, "homeScore": 13, "awayScore": 20},
    "103": {"winnerTeamId": 5, "homeScore": 30, "awayScore": 10},
}


@pytest.fixture(autouse=True)
def reset_knobs() -> Iterator[None]:
    yield
    settings.reset()


@pytest.fixture
def sample_payload() -> Dict[str, Any]:
    return copy.deepcopy(SAMPLE_PAYLOAD)


@pytest.fixture
def store(sample_payload: Dict[str, Any]) -> InMemoryStatsStore:
    return InMemoryStatsStore.from_payload(sample_payload)


@pytest.fixture
def finished_store(sample_payload: Dict[str, Any]) -> InMemoryStatsStore:
    payload = dict(sample_payload, results=copy.deepcopy(WEEK_ONE_RESULTS))
    return InMemoryStatsStore.from_payload(payload)


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'pickem.db'}"


@pytest.fixture
def database(database_url: str) -> Iterator[ContestDatabase]:
    db = ContestDatabase.from_url(database_url)
    asyncio.run(db.create_schema())
    yield db
    asyncio.run(db.dispose())


@pytest.fixture
def manager(database: ContestDatabase, store: InMemoryStatsStore) -> ContestManager:
    return ContestManager(database, store)


@pytest.fixture
def week_one() -> ContestKey:
    return ContestKey("guild1", "league1", 0, 1)


@pytest.fixture
def client(database_url: str, store: InMemoryStatsStore, monkeypatch) -> Iterator[TestClient]:
    from api.main import app

    monkeypatch.delenv("PICKEM_API_KEY", raising=False)
    context_manager.configure(database_url=database_url, stats_store=store)
    with TestClient(app) as test_client:
        yield test_client
    context_manager.reset()
