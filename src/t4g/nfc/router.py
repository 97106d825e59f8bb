"""NFC API endpoints."""

from __future__ import annotations

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from t4g.auth.dependencies import Actor, require_tenant, require_user
from t4g.database import get_session
from t4g.db.models import NfcTag
from t4g.nfc.schemas import (
    CreateTagRequest,
    ScanHistoryEntry,
    ScanHistoryResponse,
    ScanRequest,
    ScanResponse,
    ScanTagInfo,
    TagActiveRequest,
    TagResponse,
    TagStatsResponse,
)
from t4g.nfc.service import create_tag, get_tag_stats, get_user_scan_history, scan_tag, set_tag_active
from t4g.redis_client import get_redis

router = APIRouter(prefix="/api/v1/nfc", tags=["NFC"])


def _tag_response(tag: NfcTag) -> TagResponse:
    return TagResponse(
        id=tag.id,
        tenant_id=tag.tenant_id,
        tag_identifier=tag.tag_identifier,
        tag_name=tag.tag_name,
        latitude=tag.latitude,
        longitude=tag.longitude,
        scan_radius=tag.scan_radius,
        points_per_scan=tag.points_per_scan,
        max_daily_scans=tag.max_daily_scans,
        is_active=tag.is_active,
    )


@router.post("/scan", response_model=ScanResponse)
async def scan(
    body: ScanRequest,
    request: Request,
    user: Actor = Depends(require_user),
    db: AsyncSession = Depends(get_session),
    redis: aioredis.Redis = Depends(get_redis),
) -> ScanResponse:
    """Scan a tag on site and earn its points."""
    ip_address = request.client.host if request.client else None
    result = await scan_tag(
        db, redis, user.id, body.tag_identifier, body.latitude, body.longitude,
        ip_address, body.device_info,
    )
    return ScanResponse(
        scan_id=result.scan_id,
        points_awarded=result.points_awarded,
        new_balance=result.new_balance,
        level=result.level,
        distance_m=result.distance_m,
        message=result.message,
        tag=ScanTagInfo(id=result.tag_id, identifier=result.tag_identifier, tenant_id=result.tenant_id),
    )


@router.get("/scans/me", response_model=ScanHistoryResponse)
async def my_scans(
    limit: int = Query(50, ge=1, le=200),
    user: Actor = Depends(require_user),
    db: AsyncSession = Depends(get_session),
) -> ScanHistoryResponse:
    scans = await get_user_scan_history(db, user.id, limit)
    return ScanHistoryResponse(scans=[
        ScanHistoryEntry(
            id=s.id,
            nfc_tag_id=s.nfc_tag_id,
            tenant_id=s.tenant_id,
            points_earned=s.points_earned,
            distance_m=s.distance_m,
            scanned_at=s.scanned_at,
        )
        for s in scans
    ])


# ── Tenant endpoints ──


@router.post("/tags", response_model=TagResponse, status_code=201)
async def register_tag(
    body: CreateTagRequest,
    tenant: Actor = Depends(require_tenant),
    db: AsyncSession = Depends(get_session),
) -> TagResponse:
    tag = await create_tag(
        db,
        tenant.id,
        body.tag_identifier,
        body.latitude,
        body.longitude,
        tag_name=body.tag_name,
        location_description=body.location_description,
        scan_radius=body.scan_radius,
        points_per_scan=body.points_per_scan,
        max_daily_scans=body.max_daily_scans,
    )
    return _tag_response(tag)


@router.patch("/tags/{tag_id}", response_model=TagResponse)
async def toggle_tag(
    tag_id: int,
    body: TagActiveRequest,
    tenant: Actor = Depends(require_tenant),
    db: AsyncSession = Depends(get_session),
) -> TagResponse:
    tag = await set_tag_active(db, tag_id, tenant.id, body.is_active)
    return _tag_response(tag)


@router.get("/tags/{tag_id}/stats", response_model=TagStatsResponse)
async def tag_stats(
    tag_id: int,
    tenant: Actor = Depends(require_tenant),
    db: AsyncSession = Depends(get_session),
) -> TagStatsResponse:
    return TagStatsResponse(**await get_tag_stats(db, tag_id, tenant.id))
