"""Pydantic request/response models for share endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class ShareRequest(BaseModel):
    platform: str = Field(..., min_length=1, max_length=50)
    share_type: str
    challenge_id: int | None = None
    tenant_id: int | None = None
    share_content: str | None = None


class ShareResponse(BaseModel):
    id: int
    platform: str
    share_type: str
    points_earned: int
    shared_at: datetime


class ShareListResponse(BaseModel):
    shares: list[ShareResponse]
