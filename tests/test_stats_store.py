from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from errors import StatsStoreUnavailable
from stats_store import (
    HttpStatsStore,
    InMemoryStatsStore,
    ScheduledGame,
    parse_result,
    parse_standing,
    resolve_winner,
)


def test_payload_parsing(store) -> None:
    standings = asyncio.run(store.get_standings(0))
    assert len(standings) == 6
    bears = standings[0]
    assert (bears.team_id, bears.team_name, bears.division, bears.record) == (1, "Bears", "North", "4-0")
    assert bears.win_pct == 1.0

    records = asyncio.run(store.get_team_game_records(0))
    assert {r.team_id: r.games_played for r in records}[6] == 4
    assert all(r.total_off_yards == 0 for r in records)


def test_schedule_is_ordered_by_slot(store) -> None:
    games = asyncio.run(store.get_week_schedule(0, 1))

    assert [game.game_id for game in games] == [101, 102, 103]
    assert all(game.season == 0 and game.week == 1 for game in games)
    assert asyncio.run(store.get_week_schedule(0, 9)) == []


def test_fixture_results_and_json_loading(tmp_path, sample_payload) -> None:
    sample_payload["results"] = {"101": {"winnerTeamId": 2, "homeScore": 10, "awayScore": 14}}
    path = tmp_path / "stats.json"
    path.write_text(json.dumps(sample_payload))

    loaded = InMemoryStatsStore.from_json(path)
    result = asyncio.run(loaded.get_game_result(101))

    assert (result.game_id, result.winner_team_id, result.home_score, result.away_score) == (101, 2, 10, 14)
    assert asyncio.run(loaded.get_game_result(102)) is None
    with pytest.raises(FileNotFoundError):
        InMemoryStatsStore.from_json(tmp_path / "missing.json")


def test_malformed_rows_raise_store_errors() -> None:
    with pytest.raises(StatsStoreUnavailable):
        parse_standing({"teamName": "No id"})
    with pytest.raises(StatsStoreUnavailable):
        parse_standing({"teamId": "abc"})
    with pytest.raises(StatsStoreUnavailable):
        parse_result({"homeScore": 3}, game_id=4)


def test_tie_resolves_to_home_team() -> None:
    game = ScheduledGame(game_id=1, home_team_id=10, away_team_id=20)
    assert resolve_winner(game, 17, 17) == 10
    assert resolve_winner(game, 14, 21) == 20
    assert resolve_winner(game, 30, 3) == 10


def _http_store(handler) -> HttpStatsStore:
    return HttpStatsStore("http://stats.test/", transport=httpx.MockTransport(handler))


def test_http_store_reads_lists_and_wrapped_items() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/seasons/2/standings":
            return httpx.Response(200, json=[{"teamId": 1, "wins": 2}, {"teamId": 2, "losses": 2}])
        if request.url.path == "/seasons/2/weeks/3/schedule":
            return httpx.Response(
                200,
                json={"items": [
                    {"scheduleId": 8, "homeTeamId": 1, "awayTeamId": 2, "slot": 4},
                    {"gameId": 7, "homeTeamId": 2, "awayTeamId": 1, "slot": 0},
                ]},
            )
        return httpx.Response(404)

    async def run():
        store = _http_store(handler)
        try:
            return await store.get_standings(2), await store.get_week_schedule(2, 3), await store.get_team_game_records(2)
        finally:
            await store.aclose()

    standings, games, records = asyncio.run(run())

    assert [row.team_id for row in standings] == [1, 2]
    assert [game.game_id for game in games] == [7, 8]
    assert games[0].week == 3
    # Missing team-records endpoint falls back to standings.
    assert [(r.team_id, r.games_played) for r in records] == [(1, 2), (2, 2)]


def test_http_store_result_lifecycle() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/games/5/result":
            return httpx.Response(200, json={"winnerTeamId": 3, "homeScore": 21, "awayScore": 20})
        if request.url.path == "/games/6/result":
            return httpx.Response(404, json={"detail": "not final"})
        return httpx.Response(500)

    async def run():
        store = _http_store(handler)
        try:
            final = await store.get_game_result(5)
            pending = await store.get_game_result(6)
            with pytest.raises(StatsStoreUnavailable):
                await store.get_standings(1)
            return final, pending
        finally:
            await store.aclose()

    final, pending = asyncio.run(run())

    assert final.game_id == 5 and final.winner_team_id == 3
    assert pending is None


def test_http_store_wraps_transport_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async def run():
        store = _http_store(handler)
        try:
            await store.get_week_schedule(1, 1)
        finally:
            await store.aclose()

    with pytest.raises(StatsStoreUnavailable):
        asyncio.run(run())
