"""Social share API endpoints."""

from __future__ import annotations

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from t4g.auth.dependencies import Actor, require_user
from t4g.database import get_session
from t4g.db.models import SocialShare
from t4g.redis_client import get_redis
from t4g.shares.schemas import ShareListResponse, ShareRequest, ShareResponse
from t4g.shares.service import create_share, get_user_shares

router = APIRouter(prefix="/api/v1", tags=["Shares"])


def _share_response(s: SocialShare) -> ShareResponse:
    return ShareResponse(
        id=s.id,
        platform=s.platform,
        share_type=s.share_type,
        points_earned=s.points_earned,
        shared_at=s.shared_at,
    )


@router.post("/shares", response_model=ShareResponse, status_code=201)
async def share(
    body: ShareRequest,
    user: Actor = Depends(require_user),
    db: AsyncSession = Depends(get_session),
    redis: aioredis.Redis = Depends(get_redis),
) -> ShareResponse:
    created = await create_share(
        db,
        redis,
        user.id,
        body.platform,
        body.share_type,
        challenge_id=body.challenge_id,
        tenant_id=body.tenant_id,
        share_content=body.share_content,
    )
    return _share_response(created)


@router.get("/users/me/shares", response_model=ShareListResponse)
async def my_shares(
    user: Actor = Depends(require_user),
    db: AsyncSession = Depends(get_session),
) -> ShareListResponse:
    shares = await get_user_shares(db, user.id)
    return ShareListResponse(shares=[_share_response(s) for s in shares])
