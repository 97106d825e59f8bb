"""Challenge API endpoints."""

from __future__ import annotations

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from t4g.auth.dependencies import Actor, get_current_actor, require_tenant, require_user
from t4g.challenges.schemas import (
    ChallengeResponse,
    CreateChallengeRequest,
    ParticipantResponse,
    ScoreRequest,
    ScoreResponse,
    StandingEntry,
    StandingsResponse,
)
from t4g.challenges.service import (
    activate_challenge,
    add_score,
    cancel_challenge,
    complete_challenge,
    create_challenge,
    get_standings,
    join_challenge,
    leave_challenge,
)
from t4g.database import get_session
from t4g.db.models import Challenge, ChallengeParticipant
from t4g.redis_client import get_redis

router = APIRouter(prefix="/api/v1/challenges", tags=["Challenges"])


def _challenge_response(c: Challenge) -> ChallengeResponse:
    return ChallengeResponse(
        id=c.id,
        tenant_id=c.tenant_id,
        title=c.title,
        challenge_type=c.challenge_type,
        challenge_category=c.challenge_category,
        status=c.status,
        start_date=c.start_date,
        end_date=c.end_date,
        max_participants=c.max_participants,
        entry_fee_points=c.entry_fee_points,
        completed_at=c.completed_at,
    )


def _participant_response(p: ChallengeParticipant) -> ParticipantResponse:
    return ParticipantResponse(
        challenge_id=p.challenge_id,
        user_id=p.user_id,
        current_score=p.current_score,
        completion_status=p.completion_status,
        joined_at=p.joined_at,
        final_ranking=p.final_ranking,
    )


# ── Tenant lifecycle ──


@router.post("", response_model=ChallengeResponse, status_code=201)
async def create(
    body: CreateChallengeRequest,
    tenant: Actor = Depends(require_tenant),
    db: AsyncSession = Depends(get_session),
) -> ChallengeResponse:
    challenge = await create_challenge(
        db,
        tenant.id,
        body.title,
        body.start_date,
        body.end_date,
        challenge_type=body.challenge_type,
        challenge_category=body.challenge_category,
        description=body.description,
        max_participants=body.max_participants,
        entry_fee_points=body.entry_fee_points,
        geofence_radius=body.geofence_radius,
        rules=body.rules,
    )
    return _challenge_response(challenge)


@router.post("/{challenge_id}/activate", response_model=ChallengeResponse)
async def activate(
    challenge_id: int,
    tenant: Actor = Depends(require_tenant),
    db: AsyncSession = Depends(get_session),
) -> ChallengeResponse:
    return _challenge_response(await activate_challenge(db, challenge_id, tenant.id))


@router.post("/{challenge_id}/cancel", response_model=ChallengeResponse)
async def cancel(
    challenge_id: int,
    tenant: Actor = Depends(require_tenant),
    db: AsyncSession = Depends(get_session),
) -> ChallengeResponse:
    return _challenge_response(await cancel_challenge(db, challenge_id, tenant.id))


@router.post("/{challenge_id}/complete", response_model=StandingsResponse)
async def complete(
    challenge_id: int,
    tenant: Actor = Depends(require_tenant),
    db: AsyncSession = Depends(get_session),
    redis: aioredis.Redis = Depends(get_redis),
) -> StandingsResponse:
    """Close the challenge and freeze final rankings."""
    ranked = await complete_challenge(db, redis, challenge_id, tenant.id)
    return StandingsResponse(
        challenge_id=challenge_id,
        standings=[
            StandingEntry(rank=r["rank"], user_id=r["user_id"], score=r["score"], joined_at=r["joined_at"])
            for r in ranked
        ],
    )


# ── Participation ──


@router.post("/{challenge_id}/join", response_model=ParticipantResponse, status_code=201)
async def join(
    challenge_id: int,
    user: Actor = Depends(require_user),
    db: AsyncSession = Depends(get_session),
) -> ParticipantResponse:
    return _participant_response(await join_challenge(db, challenge_id, user.id))


@router.post("/{challenge_id}/leave", response_model=ParticipantResponse)
async def leave(
    challenge_id: int,
    user: Actor = Depends(require_user),
    db: AsyncSession = Depends(get_session),
) -> ParticipantResponse:
    return _participant_response(await leave_challenge(db, challenge_id, user.id))


@router.post("/{challenge_id}/score", response_model=ScoreResponse)
async def score(
    challenge_id: int,
    body: ScoreRequest,
    user: Actor = Depends(require_user),
    db: AsyncSession = Depends(get_session),
) -> ScoreResponse:
    new_score = await add_score(db, challenge_id, user.id, body.delta)
    return ScoreResponse(challenge_id=challenge_id, user_id=user.id, current_score=new_score)


@router.get("/{challenge_id}/standings", response_model=StandingsResponse)
async def standings(
    challenge_id: int,
    _actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
) -> StandingsResponse:
    rows = await get_standings(db, challenge_id)
    return StandingsResponse(
        challenge_id=challenge_id,
        standings=[
            StandingEntry(
                rank=p.final_ranking if p.final_ranking is not None else i,
                user_id=p.user_id,
                score=p.current_score,
                joined_at=p.joined_at,
            )
            for i, p in enumerate(rows, start=1)
        ],
    )
