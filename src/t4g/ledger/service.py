"""Points ledger: the only writer of ``users.points`` and ``users.level``.

award/spend lock the user row for the rest of the caller's transaction, so
concurrent mutations of one balance serialize. They flush but never commit;
the calling engine owns the unit of work.
"""

from __future__ import annotations

import logging
from typing import NamedTuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from t4g.clock import utcnow
from t4g.config import get_settings
from t4g.db.models import PointsLedgerEntry, User
from t4g.errors import InsufficientPoints, InvalidInput, NotFound

logger = logging.getLogger(__name__)


class LedgerResult(NamedTuple):
    balance: int
    level: int
    previous_level: int

    @property
    def leveled_up(self) -> bool:
        return self.level > self.previous_level


def compute_level(points: int, step: int | None = None) -> int:
    """Level for a balance: one level per ``step`` points, starting at 1."""
    step = step or get_settings().level_points_step
    return max(0, points) // step + 1


async def lock_user(db: AsyncSession, user_id: int) -> User:
    """Load a user with a row lock held until the transaction ends."""
    result = await db.execute(
        select(User)
        .where(User.id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFound(f"User {user_id} not found")
    return user


async def award(
    db: AsyncSession,
    user_id: int,
    amount: int,
    source: str,
    source_id: str | None = None,
    description: str | None = None,
) -> LedgerResult:
    """Add ``amount`` points. Level follows the new balance upward."""
    if amount <= 0:
        raise InvalidInput("Award amount must be positive")

    user = await lock_user(db, user_id)
    previous_level = user.level
    now = utcnow()

    user.points += amount
    user.level = max(user.level, compute_level(user.points))
    user.updated_at = now
    db.add(PointsLedgerEntry(
        user_id=user_id,
        amount=amount,
        source=source,
        source_id=source_id,
        description=description,
        balance_after=user.points,
        created_at=now,
    ))
    await db.flush()

    logger.info("Awarded %d points to user %d (%s) -> %d", amount, user_id, source, user.points)
    return LedgerResult(user.points, user.level, previous_level)


async def spend(
    db: AsyncSession,
    user_id: int,
    amount: int,
    source: str,
    source_id: str | None = None,
    description: str | None = None,
) -> LedgerResult:
    """Deduct ``amount`` points or raise InsufficientPoints.

    The level is sticky: spending never lowers it.
    """
    if amount <= 0:
        raise InvalidInput("Spend amount must be positive")

    user = await lock_user(db, user_id)
    if user.points < amount:
        raise InsufficientPoints(user.points, amount)

    now = utcnow()
    user.points -= amount
    user.updated_at = now
    db.add(PointsLedgerEntry(
        user_id=user_id,
        amount=-amount,
        source=source,
        source_id=source_id,
        description=description,
        balance_after=user.points,
        created_at=now,
    ))
    await db.flush()

    logger.info("Spent %d points for user %d (%s) -> %d", amount, user_id, source, user.points)
    return LedgerResult(user.points, user.level, user.level)


async def get_balance(db: AsyncSession, user_id: int) -> User:
    """Point-in-time read of a user's balance and level."""
    result = await db.execute(
        select(User).where(User.id == user_id).execution_options(populate_existing=True)
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFound(f"User {user_id} not found")
    return user


async def get_history(
    db: AsyncSession,
    user_id: int,
    page: int = 1,
    per_page: int = 50,
) -> tuple[list[PointsLedgerEntry], int]:
    """Ledger entries for a user, newest first, with the total count."""
    total = await db.execute(
        select(func.count()).select_from(PointsLedgerEntry).where(PointsLedgerEntry.user_id == user_id)
    )
    result = await db.execute(
        select(PointsLedgerEntry)
        .where(PointsLedgerEntry.user_id == user_id)
        .order_by(PointsLedgerEntry.created_at.desc(), PointsLedgerEntry.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return list(result.scalars().all()), total.scalar_one()


async def get_leaderboard(db: AsyncSession, limit: int = 10) -> list[User]:
    """Active users with the highest balances (ties by lowest id)."""
    result = await db.execute(
        select(User)
        .where(User.status == "active")
        .order_by(User.points.desc(), User.id.asc())
        .limit(limit)
    )
    return list(result.scalars().all())
