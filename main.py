# main.py  (print-only version)

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Callable, List, Optional, Sequence

from analytics_service import analyse_week, get_power_rankings, parse_rivalries
from context import ServiceSettings, build_context, build_stats_store
from gotw import select_marquee_game
from pickem import ContestManager
from standings import build_standings_dataframe


def hr(char="─", n=80):  # horizontal rule
    print(char * n)


def print_board(title, rows, headers: Sequence[str], widths: Sequence[int], fmt: Optional[Callable] = None):
    print(title); hr()
    print("".join(f"{h:<{w}}" for h, w in zip(headers, widths)))
    hr("-", 80)
    for row in rows:
        cells = fmt(row) if fmt else row
        print("".join(f"{str(c):<{w}}" for c, w in zip(cells, widths)))
    print()


def team_label(team_id: int, names: dict) -> str:
    name = names.get(team_id)
    return f"{name} ({team_id})" if name else str(team_id)


async def show_rankings(store, season: int, limit: Optional[int] = None):
    rankings = await get_power_rankings(store, season)
    standings = build_standings_dataframe(await store.get_standings(season))
    names = dict(zip(standings["TeamId"], standings["Team"])) if not standings.empty else {}
    rows = rankings[:limit] if limit else rankings
    print_board(
        f"Power Rankings — Season {season}",
        rows,
        ["#", "Team", "Score", "GP", "Margin", "Yardage", "TO"],
        [5, 30, 8, 5, 9, 9, 6],
        fmt=lambda r: [
            r.rank,
            team_label(r.team_id, names),
            f"{r.score:.1f}",
            r.games_played,
            f"{r.breakdown.get('margin', 0.0):.0f}",
            f"{r.breakdown.get('yardage', 0.0):.0f}",
            f"{r.breakdown.get('turnovers', 0.0):.0f}",
        ],
    )
    return rankings


async def show_predictions(store, season: int, week: int):
    analysis = await analyse_week(store, season, week)
    names = {row.team_id: row.team_name for row in analysis.standings if row.team_name}
    print_board(
        f"Predictions — Season {season} Week {week}",
        analysis.predictions,
        ["Game", "Matchup (away @ home)", "Pick", "Score", "Conf"],
        [8, 36, 20, 9, 6],
        fmt=lambda p: [
            p.game_id,
            f"{team_label(p.away_team_id, names)} @ {team_label(p.home_team_id, names)}",
            team_label(p.predicted_winner_team_id, names),
            f"{p.predicted_winner_score}-{p.predicted_loser_score}",
            f"{p.confidence_percent}%",
        ],
    )
    for p in analysis.predictions:
        print(f"  {p.game_id}: {p.reasoning}")
    print()
    return analysis.predictions


async def show_gotw(store, season: int, week: int, rivalries: Optional[str] = None):
    analysis = await analyse_week(store, season, week)
    selection = select_marquee_game(
        analysis.games,
        analysis.predictions,
        analysis.rankings,
        analysis.standings,
        rivalries=parse_rivalries(rivalries),
    )
    hr("="); print(f"GAME OF THE WEEK — Season {season} Week {week}"); hr("=")
    if selection is None:
        print("No predicted games this week.")
        return None
    names = {row.team_id: row.team_name for row in analysis.standings if row.team_name}
    p = selection.prediction
    print(f"{team_label(p.away_team_id, names)} @ {team_label(p.home_team_id, names)}")
    print(f"GOTW score: {selection.composite_score:.1f}/100")
    for reason in selection.reasoning_points:
        print(f"  • {reason}")
    print(
        f"Prediction: {team_label(p.predicted_winner_team_id, names)} "
        f"{p.predicted_winner_score}-{p.predicted_loser_score} ({p.confidence_percent}% confidence)"
    )
    print()
    return selection


async def show_leaderboard(manager: ContestManager, guild_id: str, league_id: str, season: int, limit: Optional[int]):
    stats = await manager.leaderboard(guild_id, league_id, season, limit=limit)
    print_board(
        f"Pick'em Leaderboard — {guild_id}/{league_id} Season {season}",
        list(enumerate(stats, 1)),
        ["#", "Member", "Correct", "Picks", "Accuracy"],
        [5, 30, 9, 7, 9],
        fmt=lambda item: [
            item[0],
            item[1].member_name,
            item[1].correct_picks,
            item[1].total_picks,
            f"{item[1].accuracy:.1f}%",
        ],
    )
    return stats


async def run(args: argparse.Namespace) -> None:
    env = ServiceSettings.from_env()
    service_settings = ServiceSettings(
        database_url=args.database_url or env.database_url,
        stats_store_url=args.stats_url or env.stats_store_url,
        stats_store_fixture=args.fixture or env.stats_store_fixture,
        stats_store_timeout=env.stats_store_timeout,
    )

    if args.command == "leaderboard":
        ctx = build_context(service_settings)
        try:
            await ctx.database.create_schema()
            await show_leaderboard(ctx.contest_manager, args.guild, args.league, args.season, args.limit)
        finally:
            await ctx.database.dispose()
            await ctx.stats_store.aclose()
        return

    store = build_stats_store(service_settings)
    try:
        if args.command == "rankings":
            await show_rankings(store, args.season, args.limit)
        elif args.command == "predict":
            await show_predictions(store, args.season, args.week)
        elif args.command == "gotw":
            await show_gotw(store, args.season, args.week, args.rivalries)
    finally:
        await store.aclose()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Season analytics and pick'em reports.")
    parser.add_argument("--fixture", help="JSON stats fixture (overrides STATS_STORE_FIXTURE).")
    parser.add_argument("--stats-url", help="Remote stats service base URL (overrides STATS_STORE_URL).")
    parser.add_argument("--database-url", help="Async SQLAlchemy URL (overrides PICKEM_DATABASE_URL).")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING).")
    sub = parser.add_subparsers(dest="command", required=True)

    rankings = sub.add_parser("rankings", help="Print team power rankings.")
    rankings.add_argument("--season", type=int, required=True)
    rankings.add_argument("--limit", type=int, default=None)

    predict = sub.add_parser("predict", help="Print predictions for a week.")
    predict.add_argument("--season", type=int, required=True)
    predict.add_argument("--week", type=int, required=True)

    gotw = sub.add_parser("gotw", help="Print the Game of the Week.")
    gotw.add_argument("--season", type=int, required=True)
    gotw.add_argument("--week", type=int, required=True)
    gotw.add_argument("--rivalries", default=None, help="Comma separated team pairs, e.g. '1-2,3-4'.")

    leaderboard = sub.add_parser("leaderboard", help="Print the pick'em leaderboard.")
    leaderboard.add_argument("--guild", required=True)
    leaderboard.add_argument("--league", required=True)
    leaderboard.add_argument("--season", type=int, required=True)
    leaderboard.add_argument("--limit", type=int, default=None)
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    asyncio.run(run(args))


if __name__ == "__main__":
    main()
