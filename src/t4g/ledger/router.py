"""Points balance, history and leaderboard endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from t4g.auth.dependencies import Actor, require_user
from t4g.config import get_settings
from t4g.database import get_session
from t4g.ledger.schemas import (
    LeaderboardEntry,
    LeaderboardResponse,
    LedgerEntryResponse,
    LedgerHistoryResponse,
    PointsResponse,
)
from t4g.ledger.service import get_balance, get_history, get_leaderboard

router = APIRouter(prefix="/api/v1", tags=["Points"])


@router.get("/users/me/points", response_model=PointsResponse)
async def my_points(
    user: Actor = Depends(require_user),
    db: AsyncSession = Depends(get_session),
) -> PointsResponse:
    row = await get_balance(db, user.id)
    step = get_settings().level_points_step
    return PointsResponse(
        user_id=row.id,
        points=row.points,
        level=row.level,
        next_level_at=(row.points // step + 1) * step,
    )


@router.get("/users/me/points/history", response_model=LedgerHistoryResponse)
async def my_history(
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=100),
    user: Actor = Depends(require_user),
    db: AsyncSession = Depends(get_session),
) -> LedgerHistoryResponse:
    """Paginated ledger entries, newest first."""
    entries, total = await get_history(db, user.id, page, per_page)
    return LedgerHistoryResponse(
        entries=[
            LedgerEntryResponse(
                id=e.id,
                amount=e.amount,
                source=e.source,
                source_id=e.source_id,
                description=e.description,
                balance_after=e.balance_after,
                created_at=e.created_at,
            )
            for e in entries
        ],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def leaderboard(
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_session),
) -> LeaderboardResponse:
    users = await get_leaderboard(db, limit)
    return LeaderboardResponse(entries=[
        LeaderboardEntry(rank=i, user_id=u.id, username=u.username, points=u.points, level=u.level)
        for i, u in enumerate(users, start=1)
    ])
