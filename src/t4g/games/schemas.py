"""Pydantic request/response models for game endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from t4g.games.scoring import GameAnswers


class PlayRequest(BaseModel):
    answers: GameAnswers


class PlayResponse(BaseModel):
    attempt_id: int
    score: int
    max_score: int
    completion_percentage: float
    points_earned: int
    attempts_remaining: int
    challenge_score: int | None = None
    message: str


class CreateGameRequest(BaseModel):
    game_type: str
    title: str = Field(..., min_length=1, max_length=200)
    game_data: dict[str, Any] = {}
    challenge_id: int | None = None
    description: str | None = None
    points_per_completion: int = 50
    max_attempts_per_user: int = 3
    time_limit_seconds: int = 300


class GameResponse(BaseModel):
    id: int
    tenant_id: int
    challenge_id: int | None = None
    game_type: str
    title: str
    description: str | None = None
    points_per_completion: int
    max_attempts_per_user: int
    time_limit_seconds: int


class GameListResponse(BaseModel):
    games: list[GameResponse]


class GameLeaderboardEntry(BaseModel):
    user_id: int
    score: int
    max_score: int
    completion_percentage: float
    completed_at: datetime


class GameLeaderboardResponse(BaseModel):
    game_id: int
    entries: list[GameLeaderboardEntry]
