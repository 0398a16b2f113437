from __future__ import annotations

import json

import pytest

from main import build_parser, main


@pytest.fixture
def fixture_path(tmp_path, sample_payload):
    path = tmp_path / "stats.json"
    path.write_text(json.dumps(sample_payload))
    return str(path)


def test_rankings_command(fixture_path, capsys) -> None:
    main(["--fixture", fixture_path, "rankings", "--season", "0", "--limit", "3"])
    out = capsys.readouterr().out

    assert "Power Rankings" in out
    assert "Bears (1)" in out
    assert "Hawks (3)" in out
    assert "Sharks (4)" not in out


def test_predict_command(fixture_path, capsys) -> None:
    main(["--fixture", fixture_path, "predict", "--season", "0", "--week", "1"])
    out = capsys.readouterr().out

    assert "Wolves (2) @ Bears (1)" in out
    assert "101:" in out and "103:" in out


def test_gotw_command(fixture_path, capsys) -> None:
    main(["--fixture", fixture_path, "gotw", "--season", "0", "--week", "1", "--rivalries", "5-6"])
    out = capsys.readouterr().out

    assert "GAME OF THE WEEK" in out
    assert "Wolves (2) @ Bears (1)" in out
    assert "Division battle in the North" in out


def test_gotw_command_without_games(fixture_path, capsys) -> None:
    main(["--fixture", fixture_path, "gotw", "--season", "0", "--week", "4"])
    assert "No predicted games this week." in capsys.readouterr().out


def test_leaderboard_command_on_empty_database(fixture_path, database_url, capsys) -> None:
    main(["--fixture", fixture_path, "--database-url", database_url, "leaderboard",
          "--guild", "guild1", "--league", "league1", "--season", "0"])
    out = capsys.readouterr().out

    assert "Pick'em Leaderboard" in out
    assert "guild1/league1" in out


def test_parser_requires_a_command() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args([])
