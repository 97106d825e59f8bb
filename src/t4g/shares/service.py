"""Social shares: a daily per-platform quota and a fixed points table."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from t4g import events as ev
from t4g.clock import utcnow
from t4g.config import get_settings
from t4g.database import run_in_transaction
from t4g.db.models import SocialShare
from t4g.errors import InvalidInput, RateLimited
from t4g.events import EventSink
from t4g.ledger.service import award
from t4g.ratelimit.guard import RateGuard, WindowMode

logger = logging.getLogger(__name__)

SHARE_POINTS: dict[str, dict[str, int]] = {
    "instagram": {"story": 5, "post": 10, "tag": 3},
    "facebook": {"story": 4, "post": 8, "tag": 2},
    "tiktok": {"story": 6, "post": 12, "tag": 4},
    "whatsapp": {"story": 3, "post": 6, "tag": 2},
}
SHARE_TYPES = ("story", "post", "tag")
DEFAULT_SHARE_POINTS = 5
_DAY_SECONDS = 86_400


def calculate_share_points(platform: str, share_type: str) -> int:
    return SHARE_POINTS.get(platform, {}).get(share_type, DEFAULT_SHARE_POINTS)


async def create_share(
    db: AsyncSession,
    redis: object,
    user_id: int,
    platform: str,
    share_type: str,
    *,
    challenge_id: int | None = None,
    tenant_id: int | None = None,
    share_content: str | None = None,
    guard: RateGuard | None = None,
    sink: EventSink | None = None,
) -> SocialShare:
    """Record a share and award its points."""
    settings = get_settings()
    guard = guard or RateGuard(redis)  # type: ignore[arg-type]
    sink = sink or EventSink(redis)

    platform = platform.lower()
    if platform not in SHARE_POINTS:
        raise InvalidInput(f"Unsupported platform: {platform}")
    if share_type not in SHARE_TYPES:
        raise InvalidInput(f"share_type must be one of {', '.join(SHARE_TYPES)}")

    limit = settings.share_daily_limit_per_platform
    try:
        await guard.check_and_consume(
            {"share": f"{user_id}:{platform}"}, {"share": limit}, _DAY_SECONDS, WindowMode.FIXED,
        )
    except RateLimited as exc:
        raise RateLimited("share", f"Maximum {limit} shares per day on {platform}") from exc

    points = calculate_share_points(platform, share_type)

    async def _record() -> SocialShare:
        share = SocialShare(
            user_id=user_id,
            challenge_id=challenge_id,
            tenant_id=tenant_id,
            platform=platform,
            share_type=share_type,
            share_content=share_content,
            points_earned=points,
            verification_status="verified",
            shared_at=utcnow(),
        )
        db.add(share)
        await db.flush()
        await award(db, user_id, points, "social_share", str(share.id), f"Shared on {platform}")
        return share

    share = await run_in_transaction(db, _record)

    await sink.emit(ev.SHARE_CREATED, {
        "share_id": share.id, "user_id": user_id, "platform": platform, "points": points,
    })
    return share


async def get_user_shares(db: AsyncSession, user_id: int, limit: int = 50) -> list[SocialShare]:
    result = await db.execute(
        select(SocialShare)
        .where(SocialShare.user_id == user_id)
        .order_by(SocialShare.shared_at.desc(), SocialShare.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
