"""Token API endpoints: catalogue, claim, redeem."""

from __future__ import annotations

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from t4g.auth.dependencies import Actor, require_tenant, require_user
from t4g.database import get_session
from t4g.db.models import Token, TokenClaim
from t4g.redis_client import get_redis
from t4g.tokens.schemas import (
    ClaimListResponse,
    ClaimResponse,
    ClaimTokenResponse,
    CreateTokenRequest,
    RedeemRequest,
    TokenListResponse,
    TokenResponse,
)
from t4g.tokens.service import claim_token, create_token, get_user_claims, list_available_tokens, redeem_claim

router = APIRouter(prefix="/api/v1", tags=["Tokens"])


def _token_response(t: Token) -> TokenResponse:
    return TokenResponse(
        id=t.id,
        tenant_id=t.tenant_id,
        token_name=t.token_name,
        token_description=t.token_description,
        token_type=t.token_type,
        token_value=t.token_value,
        required_points=t.required_points,
        quantity_available=t.quantity_available,
        quantity_claimed=t.quantity_claimed,
        expiry_date=t.expiry_date,
        is_active=t.is_active,
    )


def _claim_response(c: TokenClaim) -> ClaimResponse:
    return ClaimResponse(
        claim_id=c.id,
        token_id=c.token_id,
        claim_code=c.claim_code,
        points_spent=c.points_spent,
        status=c.status,
        claimed_at=c.claimed_at,
        expires_at=c.expires_at,
        redeemed_at=c.redeemed_at,
    )


@router.get("/tokens", response_model=TokenListResponse)
async def list_tokens(db: AsyncSession = Depends(get_session)) -> TokenListResponse:
    """Active, unexpired tokens that still have stock."""
    tokens = await list_available_tokens(db)
    return TokenListResponse(tokens=[_token_response(t) for t in tokens])


@router.post("/tokens", response_model=TokenResponse, status_code=201)
async def add_token(
    body: CreateTokenRequest,
    tenant: Actor = Depends(require_tenant),
    db: AsyncSession = Depends(get_session),
) -> TokenResponse:
    token = await create_token(
        db,
        tenant.id,
        body.token_name,
        body.required_points,
        body.quantity_available,
        token_type=body.token_type,
        token_value=body.token_value,
        token_description=body.token_description,
        expiry_date=body.expiry_date,
    )
    return _token_response(token)


@router.post("/tokens/redeem", response_model=ClaimResponse)
async def redeem(
    body: RedeemRequest,
    tenant: Actor = Depends(require_tenant),
    db: AsyncSession = Depends(get_session),
    redis: aioredis.Redis = Depends(get_redis),
) -> ClaimResponse:
    """Redeem a claim code at the issuing tenant."""
    claim = await redeem_claim(db, redis, body.claim_code, tenant.id)
    return _claim_response(claim)


@router.post("/tokens/{token_id}/claim", response_model=ClaimTokenResponse)
async def claim(
    token_id: int,
    user: Actor = Depends(require_user),
    db: AsyncSession = Depends(get_session),
    redis: aioredis.Redis = Depends(get_redis),
) -> ClaimTokenResponse:
    result = await claim_token(db, redis, token_id, user.id)
    return ClaimTokenResponse(
        **_claim_response(result.claim).model_dump(),
        new_balance=result.new_balance,
    )


@router.get("/users/me/claims", response_model=ClaimListResponse)
async def my_claims(
    user: Actor = Depends(require_user),
    db: AsyncSession = Depends(get_session),
) -> ClaimListResponse:
    claims = await get_user_claims(db, user.id)
    return ClaimListResponse(claims=[_claim_response(c) for c in claims])
