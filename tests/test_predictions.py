from __future__ import annotations

import logging

import pytest

from config import settings
from power_rankings import PowerScore, power_lookup
from predictions import confidence_for_gap, predict_game, predict_week, predicted_margin
from stats_store import ScheduledGame, TeamGameRecord, TeamStanding


def _score(team_id: int, score: float, rank: int, games: int = 5) -> PowerScore:
    return PowerScore(team_id=team_id, score=score, rank=rank, games_played=games)


def test_strong_home_team_scenario() -> None:
    lookup = power_lookup([_score(1, 70.0, 1), _score(2, 50.0, 2)])
    game = ScheduledGame(game_id=10, home_team_id=1, away_team_id=2)

    prediction = predict_game(game, lookup, base_points=22.0)

    assert prediction.predicted_winner_team_id == 1
    assert prediction.predicted_loser_team_id == 2
    assert prediction.confidence_percent > 50
    assert prediction.confidence_percent == 79
    assert (prediction.predicted_winner_score, prediction.predicted_loser_score) == (28, 17)
    assert prediction.home_team_power_rank == 1 and prediction.away_team_power_rank == 2
    assert predict_game(game, lookup, base_points=22.0) == prediction


def test_much_stronger_road_team_wins() -> None:
    lookup = power_lookup([_score(1, 30.0, 2), _score(2, 80.0, 1)])
    prediction = predict_game(ScheduledGame(game_id=11, home_team_id=1, away_team_id=2), lookup)

    assert prediction.predicted_winner_team_id == 2
    assert not prediction.home_predicted_to_win
    assert "Road team" in prediction.reasoning


def test_equal_teams_go_to_home_field() -> None:
    lookup = power_lookup([_score(1, 50.0, 1), _score(2, 50.0, 2)])
    prediction = predict_game(ScheduledGame(game_id=12, home_team_id=1, away_team_id=2), lookup, base_points=22.0)

    assert prediction.predicted_winner_team_id == 1
    assert prediction.predicted_winner_score - prediction.predicted_loser_score == 2
    assert prediction.confidence_percent == 54
    assert "Home field advantage decisive" in prediction.reasoning


def test_zero_gap_still_favours_home_with_minimum_margin() -> None:
    settings.set("home_field_advantage", 0.0)
    lookup = power_lookup([_score(1, 50.0, 1), _score(2, 50.0, 2)])
    prediction = predict_game(ScheduledGame(game_id=13, home_team_id=1, away_team_id=2), lookup)

    assert prediction.predicted_winner_team_id == 1
    assert prediction.predicted_winner_score - prediction.predicted_loser_score == 1
    assert prediction.confidence_percent == 50


@pytest.mark.parametrize("gap", [-120.0, -40.0, -3.5, 0.0, 0.4, 7.0, 25.0, 60.0, 200.0])
def test_confidence_and_margin_bounds(gap: float) -> None:
    confidence = confidence_for_gap(gap)
    margin = predicted_margin(gap)

    assert 50 <= confidence <= 95
    assert 1 <= margin <= 21


def test_unknown_or_idle_team_gets_neutral_score() -> None:
    lookup = power_lookup([_score(1, 80.0, 1), _score(2, 40.0, 2), _score(3, 0.0, 3, games=0)])
    neutral = 60.0

    vs_missing = predict_game(ScheduledGame(game_id=14, home_team_id=99, away_team_id=3), lookup, neutral_score=neutral)
    assert vs_missing.predicted_winner_team_id == 99
    assert vs_missing.confidence_percent == confidence_for_gap(3.0)
    assert "league-average" in vs_missing.reasoning

    vs_strong = predict_game(ScheduledGame(game_id=15, home_team_id=3, away_team_id=1), lookup, neutral_score=neutral)
    assert vs_strong.predicted_winner_team_id == 1
    assert vs_strong.confidence_percent == confidence_for_gap(60.0 - 80.0 + 3.0)


def test_loser_score_never_negative() -> None:
    settings.set("max_margin", 60.0)
    lookup = power_lookup([_score(1, 100.0, 1), _score(2, 0.0, 2)])
    prediction = predict_game(ScheduledGame(game_id=16, home_team_id=1, away_team_id=2), lookup, base_points=10.0)

    assert prediction.predicted_loser_score == 0
    assert prediction.predicted_winner_score > prediction.predicted_loser_score


def test_predict_week_uses_league_scoring_average() -> None:
    standings = [
        TeamStanding(team_id=1, wins=5, losses=5, points_for=300, points_against=300),
        TeamStanding(team_id=2, wins=5, losses=5, points_for=300, points_against=300),
    ]
    scores = [_score(1, 50.0, 1, games=10), _score(2, 50.0, 2, games=10)]
    games = [ScheduledGame(game_id=20, home_team_id=1, away_team_id=2)]

    [prediction] = predict_week(games, [], standings, power_scores=scores)

    assert (prediction.predicted_winner_score, prediction.predicted_loser_score) == (31, 29)


def test_predict_week_computes_power_scores() -> None:
    records = [
        TeamGameRecord(team_id=1, games_played=4, points_for=120, points_against=60),
        TeamGameRecord(team_id=2, games_played=4, points_for=60, points_against=120),
    ]
    games = [ScheduledGame(game_id=21, home_team_id=2, away_team_id=1)]

    [prediction] = predict_week(games, records, [])

    assert prediction.predicted_winner_team_id == 1
    assert prediction.away_team_power_rank == 1


def test_predict_week_skips_self_matchups(caplog) -> None:
    games = [
        ScheduledGame(game_id=30, home_team_id=1, away_team_id=1),
        ScheduledGame(game_id=31, home_team_id=1, away_team_id=2),
    ]
    scores = [_score(1, 60.0, 1), _score(2, 40.0, 2)]

    with caplog.at_level(logging.WARNING, logger="predictions"):
        predictions = predict_week(games, [], [], power_scores=scores)

    assert [p.game_id for p in predictions] == [31]
    assert "listed on both sides" in caplog.text


def test_predict_week_is_deterministic() -> None:
    records = [
        TeamGameRecord(team_id=t, games_played=3, points_for=60 + 7 * t, points_against=70, total_off_yards=900 + 25 * t,
                       total_off_plays=180, total_def_yards_allowed=950, total_def_plays_faced=185, takeaways=t, giveaways=3)
        for t in range(1, 7)
    ]
    games = [ScheduledGame(game_id=40 + t, home_team_id=t, away_team_id=7 - t) for t in range(1, 4)]

    first = predict_week(games, records, [])
    second = predict_week(games, records, [])

    assert first == second
    for prediction in first:
        assert 50 <= prediction.confidence_percent <= 95
        assert prediction.predicted_winner_score >= prediction.predicted_loser_score
