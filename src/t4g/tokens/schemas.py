"""Pydantic request/response models for token endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class TokenResponse(BaseModel):
    id: int
    tenant_id: int
    token_name: str
    token_description: str | None = None
    token_type: str
    token_value: float
    required_points: int
    quantity_available: int
    quantity_claimed: int
    expiry_date: datetime | None = None
    is_active: bool


class TokenListResponse(BaseModel):
    tokens: list[TokenResponse]


class CreateTokenRequest(BaseModel):
    token_name: str = Field(..., min_length=1, max_length=200)
    required_points: int
    quantity_available: int
    token_type: str = "voucher"
    token_value: float = 0
    token_description: str | None = None
    expiry_date: datetime | None = None


class ClaimResponse(BaseModel):
    claim_id: int
    token_id: int
    claim_code: str
    points_spent: int
    status: str
    claimed_at: datetime
    expires_at: datetime
    redeemed_at: datetime | None = None


class ClaimTokenResponse(ClaimResponse):
    new_balance: int


class RedeemRequest(BaseModel):
    claim_code: str = Field(..., min_length=1, max_length=20)


class ClaimListResponse(BaseModel):
    claims: list[ClaimResponse]
