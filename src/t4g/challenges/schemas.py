"""Pydantic request/response models for challenge endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class CreateChallengeRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    start_date: datetime
    end_date: datetime
    challenge_type: str = "open"
    challenge_category: str | None = None
    description: str | None = None
    max_participants: int | None = None
    entry_fee_points: int = 0
    geofence_radius: int | None = None
    rules: dict[str, Any] | None = None


class ChallengeResponse(BaseModel):
    id: int
    tenant_id: int
    title: str
    challenge_type: str
    challenge_category: str | None = None
    status: str
    start_date: datetime
    end_date: datetime
    max_participants: int | None = None
    entry_fee_points: int
    completed_at: datetime | None = None


class ParticipantResponse(BaseModel):
    challenge_id: int
    user_id: int
    current_score: int
    completion_status: str
    joined_at: datetime
    final_ranking: int | None = None


class ScoreRequest(BaseModel):
    # Positivity is enforced by the engine so it reports invalid_input.
    delta: int


class ScoreResponse(BaseModel):
    challenge_id: int
    user_id: int
    current_score: int


class StandingEntry(BaseModel):
    rank: int
    user_id: int
    score: int
    joined_at: datetime


class StandingsResponse(BaseModel):
    challenge_id: int
    standings: list[StandingEntry]
