"""NFC scan engine.

A scan passes these gates in order, each failing fast with no side effect
on points or scan records:

    coordinates -> rate limits (user/tag/ip) -> tag lookup -> geofence
    -> cooldown (user, tag) -> per-tag daily cap

Then the award and the scan row are written in one transaction. The
cooldown is reserved atomically before the transaction and released again
if it fails, so two devices scanning at once cannot both be paid.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from t4g import events as ev
from t4g.clock import start_of_day, utcnow
from t4g.config import get_settings
from t4g.database import run_in_transaction
from t4g.db.models import NfcScan, NfcTag
from t4g.errors import Forbidden, Inactive, InvalidInput, NotFound, OutOfRange, RateLimited, TransientFailure
from t4g.events import EventSink
from t4g.geo import Coordinate, distance_meters, is_within_radius, validate_coordinate
from t4g.ledger.service import award
from t4g.ratelimit.guard import RateGuard, WindowMode

logger = logging.getLogger(__name__)


@dataclass
class ScanResult:
    scan_id: int
    points_awarded: int
    new_balance: int
    level: int
    tag_id: int
    tag_identifier: str
    tenant_id: int
    distance_m: float
    message: str


def _cooldown_key(user_id: int, tag_id: int) -> str:
    return f"nfc:{user_id}:{tag_id}"


async def _release_cooldown(guard: RateGuard, key: str) -> None:
    """Best effort; the caller is already propagating the real failure."""
    try:
        await guard.release_cooldown(key)
    except TransientFailure:
        logger.warning("Could not release cooldown %s", key, exc_info=True)


async def resolve_tag(db: AsyncSession, tag_identifier: str) -> NfcTag:
    """Load an active tag whose tenant is active."""
    result = await db.execute(select(NfcTag).where(NfcTag.tag_identifier == tag_identifier))
    tag = result.scalar_one_or_none()
    if tag is None:
        raise NotFound("NFC tag not found")
    if not tag.is_active:
        raise Inactive("NFC tag is inactive")
    if tag.tenant.status != "active":
        raise Inactive("NFC tag owner is not active")
    return tag


async def count_scans_today(db: AsyncSession, user_id: int, tag_id: int) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(NfcScan)
        .where(
            NfcScan.user_id == user_id,
            NfcScan.nfc_tag_id == tag_id,
            NfcScan.scanned_at >= start_of_day(utcnow()),
        )
    )
    return result.scalar_one()


async def scan_tag(
    db: AsyncSession,
    redis: object,
    user_id: int,
    tag_identifier: str,
    latitude: float,
    longitude: float,
    ip_address: str | None,
    device_info: dict[str, Any] | None = None,
    *,
    guard: RateGuard | None = None,
    sink: EventSink | None = None,
) -> ScanResult:
    """Validate a scan attempt and award the tag's points."""
    settings = get_settings()
    guard = guard or RateGuard(redis)  # type: ignore[arg-type]
    sink = sink or EventSink(redis)
    logger.info("NFC scan attempt: %s by user %d", tag_identifier, user_id)

    point = validate_coordinate(latitude, longitude)

    scopes = {"user": str(user_id), "tag": tag_identifier}
    limits = {"user": settings.nfc_user_daily_limit, "tag": settings.nfc_tag_daily_limit}
    # Without a client address there is nothing to key an ip quota on.
    if ip_address:
        scopes["ip"] = ip_address
        limits["ip"] = settings.nfc_ip_daily_limit
    await guard.check_and_consume(
        scopes,
        limits,
        settings.nfc_rate_window_seconds,
        WindowMode.FIXED,
    )

    tag = await resolve_tag(db, tag_identifier)
    tag_id, tenant_id = tag.id, tag.tenant_id
    points = tag.points_per_scan
    daily_cap = tag.max_daily_scans

    distance = distance_meters(point.latitude, point.longitude, tag.latitude, tag.longitude)
    if not is_within_radius(point, Coordinate(tag.latitude, tag.longitude), tag.scan_radius):
        raise OutOfRange(distance, tag.scan_radius)

    cooldown_key = _cooldown_key(user_id, tag_id)
    await guard.acquire_cooldown(cooldown_key, settings.nfc_cooldown_seconds)

    async def _record() -> tuple[int, int, int]:
        if await count_scans_today(db, user_id, tag_id) >= daily_cap:
            raise RateLimited("tag_daily", f"Maximum {daily_cap} scans per day reached for this tag")

        result = await award(
            db, user_id, points, "nfc_scan", str(tag_id), f"NFC scan: {tag_identifier}",
        )
        scan = NfcScan(
            user_id=user_id,
            nfc_tag_id=tag_id,
            tenant_id=tenant_id,
            points_earned=points,
            latitude=point.latitude,
            longitude=point.longitude,
            distance_m=round(distance, 2),
            ip_address=ip_address,
            device_info=device_info,
            is_valid=True,
            scanned_at=utcnow(),
        )
        db.add(scan)
        await db.flush()
        return scan.id, result.balance, result.level

    try:
        scan_id, balance, level = await run_in_transaction(db, _record)
    except Exception:
        await _release_cooldown(guard, cooldown_key)
        raise

    try:
        await guard.set_cooldown(cooldown_key, settings.nfc_cooldown_seconds)
    except TransientFailure:
        # The reservation from acquire_cooldown still holds the full duration.
        logger.warning("Could not restart cooldown %s after scan %d", cooldown_key, scan_id)

    await sink.emit(ev.NFC_SCANNED, {
        "scan_id": scan_id,
        "user_id": user_id,
        "tag_id": tag_id,
        "tenant_id": tenant_id,
        "points": points,
    })
    await sink.emit(ev.POINTS_AWARDED, {
        "user_id": user_id, "amount": points, "source": "nfc_scan", "balance": balance,
    })

    return ScanResult(
        scan_id=scan_id,
        points_awarded=points,
        new_balance=balance,
        level=level,
        tag_id=tag_id,
        tag_identifier=tag_identifier,
        tenant_id=tenant_id,
        distance_m=round(distance, 1),
        message=f"Successfully scanned! You earned {points} points.",
    )


# ---------------------------------------------------------------------------
# Tag management (tenant side)
# ---------------------------------------------------------------------------


async def create_tag(
    db: AsyncSession,
    tenant_id: int,
    tag_identifier: str,
    latitude: float,
    longitude: float,
    *,
    tag_name: str | None = None,
    location_description: str | None = None,
    scan_radius: int = 100,
    points_per_scan: int = 10,
    max_daily_scans: int = 5,
    is_active: bool = True,
) -> NfcTag:
    """Register a tag for a tenant; the identifier must be globally unique."""
    point = validate_coordinate(latitude, longitude)
    if scan_radius <= 0 or points_per_scan <= 0 or max_daily_scans <= 0:
        raise InvalidInput("Radius, points and daily cap must be positive")

    tag = NfcTag(
        tenant_id=tenant_id,
        tag_identifier=tag_identifier,
        tag_name=tag_name,
        location_description=location_description,
        latitude=point.latitude,
        longitude=point.longitude,
        scan_radius=scan_radius,
        points_per_scan=points_per_scan,
        max_daily_scans=max_daily_scans,
        is_active=is_active,
    )
    db.add(tag)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise InvalidInput("NFC tag with this identifier already exists") from exc
    await db.refresh(tag)
    return tag


async def set_tag_active(db: AsyncSession, tag_id: int, tenant_id: int, is_active: bool) -> NfcTag:
    result = await db.execute(select(NfcTag).where(NfcTag.id == tag_id))
    tag = result.scalar_one_or_none()
    if tag is None:
        raise NotFound("NFC tag not found")
    if tag.tenant_id != tenant_id:
        raise Forbidden("Cannot update NFC tag that does not belong to you")
    tag.is_active = is_active
    await db.commit()
    return tag


async def get_user_scan_history(db: AsyncSession, user_id: int, limit: int = 50) -> list[NfcScan]:
    result = await db.execute(
        select(NfcScan)
        .where(NfcScan.user_id == user_id)
        .order_by(NfcScan.scanned_at.desc(), NfcScan.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_tag_stats(db: AsyncSession, tag_id: int, tenant_id: int) -> dict[str, Any]:
    """Scan totals for a tenant's tag."""
    result = await db.execute(select(NfcTag).where(NfcTag.id == tag_id, NfcTag.tenant_id == tenant_id))
    tag = result.scalar_one_or_none()
    if tag is None:
        raise NotFound("NFC tag not found")

    totals = await db.execute(
        select(
            func.count(NfcScan.id),
            func.count(func.distinct(NfcScan.user_id)),
            func.coalesce(func.sum(NfcScan.points_earned), 0),
        ).where(NfcScan.nfc_tag_id == tag_id)
    )
    total_scans, unique_users, total_points = totals.one()
    today = await db.execute(
        select(func.count())
        .select_from(NfcScan)
        .where(NfcScan.nfc_tag_id == tag_id, NfcScan.scanned_at >= start_of_day(utcnow()))
    )

    return {
        "tag_id": tag.id,
        "tag_identifier": tag.tag_identifier,
        "total_scans": total_scans,
        "unique_users": unique_users,
        "today_scans": today.scalar_one(),
        "total_points_awarded": int(total_points),
        "average_points_per_scan": (total_points / total_scans) if total_scans else 0.0,
    }
