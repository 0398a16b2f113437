"""Standings helpers shared by the predictor, the GOTW selector and the CLI."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from stats_store import TeamStanding

STANDINGS_COLUMNS = [
    "TeamId",
    "Team",
    "Division",
    "Wins",
    "Losses",
    "Ties",
    "GamesPlayed",
    "PointsFor",
    "PointsAgainst",
    "WinPct",
    "Rank",
]


def build_standings_dataframe(standings: Iterable[TeamStanding]) -> pd.DataFrame:
    """Turn standings rows into a sorted dataframe with a 1-based ``Rank`` column."""

    rows: List[Dict[str, Any]] = [
        {
            "TeamId": row.team_id,
            "Team": row.team_name or str(row.team_id),
            "Division": row.division,
            "Wins": row.wins,
            "Losses": row.losses,
            "Ties": row.ties,
            "GamesPlayed": row.games_played,
            "PointsFor": float(row.points_for),
            "PointsAgainst": float(row.points_against),
            "WinPct": row.win_pct,
        }
        for row in standings
    ]
    if not rows:
        return pd.DataFrame(columns=STANDINGS_COLUMNS)

    df = pd.DataFrame(rows)
    df = df.sort_values(
        ["WinPct", "PointsFor", "PointsAgainst", "TeamId"],
        ascending=[False, False, True, True],
    ).reset_index(drop=True)
    df["Rank"] = df.index + 1
    return df


def standings_lookup(standings: Iterable[TeamStanding]) -> Dict[int, TeamStanding]:
    return {row.team_id: row for row in standings}


def standings_ranks(standings: Iterable[TeamStanding]) -> Dict[int, int]:
    df = build_standings_dataframe(standings)
    if df.empty:
        return {}
    return {int(team_id): int(rank) for team_id, rank in zip(df["TeamId"], df["Rank"])}


def league_scoring_average(standings: Iterable[TeamStanding]) -> Optional[float]:
    """Average points scored per team per game, or ``None`` without games."""

    df = build_standings_dataframe(standings)
    if df.empty:
        return None
    games = float(df["GamesPlayed"].sum())
    if games <= 0:
        return None
    return float(df["PointsFor"].sum()) / games
