"""Pydantic response models for points endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class PointsResponse(BaseModel):
    user_id: int
    points: int
    level: int
    next_level_at: int


class LedgerEntryResponse(BaseModel):
    id: int
    amount: int
    source: str
    source_id: str | None = None
    description: str | None = None
    balance_after: int
    created_at: datetime


class LedgerHistoryResponse(BaseModel):
    entries: list[LedgerEntryResponse]
    total: int
    page: int
    per_page: int


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: int
    username: str
    points: int
    level: int


class LeaderboardResponse(BaseModel):
    entries: list[LeaderboardEntry]
