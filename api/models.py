"""Pydantic schemas used by the API endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from gotw import GOTWSelection
from pickem import Contest, MemberSeasonStats, PickemResult
from power_rankings import PowerScore
from predictions import Prediction


class ConfigResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    knobs: Dict[str, Any]


class ConfigUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    updates: Dict[str, Any] = Field(default_factory=dict)


# Analytics ---------------------------------------------------------------

class PowerScoreModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    team_id: int = Field(..., alias="teamId")
    score: float
    rank: int
    games_played: int = Field(default=0, alias="gamesPlayed")
    breakdown: Dict[str, float] = Field(default_factory=dict)
    raw_metrics: Dict[str, float] = Field(default_factory=dict, alias="rawMetrics")

    @classmethod
    def from_score(cls, entry: PowerScore) -> "PowerScoreModel":
        return cls(
            team_id=entry.team_id,
            score=entry.score,
            rank=entry.rank,
            games_played=entry.games_played,
            breakdown=dict(entry.breakdown),
            raw_metrics=dict(entry.raw_metrics),
        )


class PowerRankingsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    season: int
    generated_at: datetime = Field(..., alias="generatedAt")
    items: List[PowerScoreModel]
    total: int


class PredictionModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    game_id: int = Field(..., alias="gameId")
    home_team_id: int = Field(..., alias="homeTeamId")
    away_team_id: int = Field(..., alias="awayTeamId")
    predicted_winner_team_id: int = Field(..., alias="predictedWinnerTeamId")
    predicted_loser_team_id: int = Field(..., alias="predictedLoserTeamId")
    predicted_winner_score: int = Field(..., alias="predictedWinnerScore")
    predicted_loser_score: int = Field(..., alias="predictedLoserScore")
    confidence_percent: int = Field(..., alias="confidencePercent", ge=0, le=100)
    home_team_power_rank: Optional[int] = Field(default=None, alias="homeTeamPowerRank")
    away_team_power_rank: Optional[int] = Field(default=None, alias="awayTeamPowerRank")
    reasoning: str = ""

    @classmethod
    def from_prediction(cls, prediction: Prediction) -> "PredictionModel":
        return cls(
            game_id=prediction.game_id,
            home_team_id=prediction.home_team_id,
            away_team_id=prediction.away_team_id,
            predicted_winner_team_id=prediction.predicted_winner_team_id,
            predicted_loser_team_id=prediction.predicted_loser_team_id,
            predicted_winner_score=prediction.predicted_winner_score,
            predicted_loser_score=prediction.predicted_loser_score,
            confidence_percent=prediction.confidence_percent,
            home_team_power_rank=prediction.home_team_power_rank,
            away_team_power_rank=prediction.away_team_power_rank,
            reasoning=prediction.reasoning,
        )


class PredictionsResponse(BaseModel):
    season: int
    week: int
    items: List[PredictionModel]
    total: int


class GOTWModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    game_id: int = Field(..., alias="gameId")
    composite_score: float = Field(..., alias="compositeScore")
    reasoning_points: List[str] = Field(default_factory=list, alias="reasoningPoints")
    components: Dict[str, float] = Field(default_factory=dict)
    prediction: PredictionModel

    @classmethod
    def from_selection(cls, selection: GOTWSelection) -> "GOTWModel":
        return cls(
            game_id=selection.game_id,
            composite_score=selection.composite_score,
            reasoning_points=list(selection.reasoning_points),
            components=dict(selection.components),
            prediction=PredictionModel.from_prediction(selection.prediction),
        )


class GOTWResponse(BaseModel):
    season: int
    week: int
    selection: Optional[GOTWModel] = None


# Pick'em -----------------------------------------------------------------

class LockMarkerModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    locked_at: datetime = Field(..., alias="lockedAt")
    trigger: str
    actor: Optional[str] = None


class BaselinePickModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    game_id: int = Field(..., alias="gameId")
    slot: int = 0
    home_team_id: int = Field(..., alias="homeTeamId")
    away_team_id: int = Field(..., alias="awayTeamId")
    predicted_winner_team_id: int = Field(..., alias="predictedWinnerTeamId")
    predicted_winner_score: int = Field(..., alias="predictedWinnerScore")
    predicted_loser_score: int = Field(..., alias="predictedLoserScore")
    confidence_percent: int = Field(..., alias="confidencePercent")
    reasoning: str = ""


class MemberPickModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    member_id: str = Field(..., alias="memberId")
    member_name: str = Field(..., alias="memberName")
    game_id: int = Field(..., alias="gameId")
    predicted_winner_team_id: int = Field(..., alias="predictedWinnerTeamId")
    submitted_at: datetime = Field(..., alias="submittedAt")


class GameResultModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    game_id: int = Field(..., alias="gameId")
    winner_team_id: int = Field(..., alias="winnerTeamId")
    home_score: int = Field(..., alias="homeScore")
    away_score: int = Field(..., alias="awayScore")


class ContestModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    guild_id: str = Field(..., alias="guildId")
    league_id: str = Field(..., alias="leagueId")
    season: int
    week: int
    state: str
    created_at: datetime = Field(..., alias="createdAt")
    lock: Optional[LockMarkerModel] = None
    scored_at: Optional[datetime] = Field(default=None, alias="scoredAt")
    baseline: List[BaselinePickModel] = Field(default_factory=list)
    picks: List[MemberPickModel] = Field(default_factory=list)
    results: List[GameResultModel] = Field(default_factory=list)

    @classmethod
    def from_contest(cls, contest: Contest) -> "ContestModel":
        lock = None
        if contest.lock is not None:
            lock = LockMarkerModel(
                locked_at=contest.lock.locked_at,
                trigger=contest.lock.trigger,
                actor=contest.lock.actor,
            )
        return cls(
            guild_id=contest.key.guild_id,
            league_id=contest.key.league_id,
            season=contest.key.season,
            week=contest.key.week,
            state=contest.state.value,
            created_at=contest.created_at,
            lock=lock,
            scored_at=contest.scored_at,
            baseline=[
                BaselinePickModel(
                    game_id=b.game_id,
                    slot=b.slot,
                    home_team_id=b.home_team_id,
                    away_team_id=b.away_team_id,
                    predicted_winner_team_id=b.predicted_winner_team_id,
                    predicted_winner_score=b.predicted_winner_score,
                    predicted_loser_score=b.predicted_loser_score,
                    confidence_percent=b.confidence_percent,
                    reasoning=b.reasoning,
                )
                for b in contest.baseline
            ],
            picks=[
                MemberPickModel(
                    member_id=p.member_id,
                    member_name=p.member_name,
                    game_id=p.game_id,
                    predicted_winner_team_id=p.predicted_winner_team_id,
                    submitted_at=p.submitted_at,
                )
                for p in contest.picks
            ],
            results=[
                GameResultModel(
                    game_id=r.game_id,
                    winner_team_id=r.winner_team_id,
                    home_score=r.home_score,
                    away_score=r.away_score,
                )
                for r in contest.results
            ],
        )


class PickemResultResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    outcome: str
    changed: bool = False
    message: str = ""
    details: Dict[str, Any] = Field(default_factory=dict)
    contest: Optional[ContestModel] = None

    @classmethod
    def from_result(cls, result: PickemResult) -> "PickemResultResponse":
        return cls(
            outcome=result.outcome.value,
            changed=result.changed,
            message=result.message,
            details=dict(result.details),
            contest=ContestModel.from_contest(result.contest) if result.contest else None,
        )


class PickSubmissionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    member_name: Optional[str] = Field(default=None, alias="memberName")
    picks: Dict[int, int] = Field(default_factory=dict)


class LockRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    trigger: str = "manual"
    actor: Optional[str] = None


class LockStatusResponse(BaseModel):
    locked: bool


class FinalScoreModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    game_id: int = Field(..., alias="gameId")
    home_score: int = Field(..., alias="homeScore", ge=0)
    away_score: int = Field(..., alias="awayScore", ge=0)
    winner_team_id: Optional[int] = Field(default=None, alias="winnerTeamId")


class ResultsRequest(BaseModel):
    results: Optional[List[FinalScoreModel]] = None


class WeekBreakdownModel(BaseModel):
    week: int
    picks: int
    correct: int
    accuracy: float


class MemberStatsModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    member_id: str = Field(..., alias="memberId")
    member_name: str = Field(..., alias="memberName")
    total_picks: int = Field(..., alias="totalPicks")
    correct_picks: int = Field(..., alias="correctPicks")
    accuracy: float
    is_computer: bool = Field(default=False, alias="isComputer")
    weeks: List[WeekBreakdownModel] = Field(default_factory=list)

    @classmethod
    def from_stats(cls, stats: MemberSeasonStats) -> "MemberStatsModel":
        return cls(
            member_id=stats.member_id,
            member_name=stats.member_name,
            total_picks=stats.total_picks,
            correct_picks=stats.correct_picks,
            accuracy=stats.accuracy,
            is_computer=stats.is_computer,
            weeks=[
                WeekBreakdownModel(week=w.week, picks=w.picks, correct=w.correct, accuracy=w.accuracy)
                for w in stats.weeks
            ],
        )


class LeaderboardEntry(MemberStatsModel):
    rank: int


class LeaderboardResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    guild_id: str = Field(..., alias="guildId")
    league_id: str = Field(..., alias="leagueId")
    season: int
    items: List[LeaderboardEntry]
    total: int


class BroadcastStartRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    guild_id: str = Field(..., alias="guildId")
    league_id: str = Field(..., alias="leagueId")
    season: int
    week: int
    title: Optional[str] = None
    event_id: Optional[str] = Field(default=None, alias="eventId")
