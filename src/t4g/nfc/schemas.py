"""Pydantic request/response models for NFC endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class ScanRequest(BaseModel):
    tag_identifier: str = Field(..., min_length=1, max_length=100)
    # Range checks happen in the engine so bad coordinates map to invalid_coordinate.
    latitude: float
    longitude: float
    device_info: dict[str, Any] | None = None


class ScanTagInfo(BaseModel):
    id: int
    identifier: str
    tenant_id: int


class ScanResponse(BaseModel):
    scan_id: int
    points_awarded: int
    new_balance: int
    level: int
    distance_m: float
    message: str
    tag: ScanTagInfo


class ScanHistoryEntry(BaseModel):
    id: int
    nfc_tag_id: int
    tenant_id: int
    points_earned: int
    distance_m: float
    scanned_at: datetime


class ScanHistoryResponse(BaseModel):
    scans: list[ScanHistoryEntry]


class CreateTagRequest(BaseModel):
    tag_identifier: str = Field(..., min_length=1, max_length=100)
    latitude: float
    longitude: float
    tag_name: str | None = None
    location_description: str | None = None
    scan_radius: int = 100
    points_per_scan: int = 10
    max_daily_scans: int = 5


class TagResponse(BaseModel):
    id: int
    tenant_id: int
    tag_identifier: str
    tag_name: str | None
    latitude: float
    longitude: float
    scan_radius: int
    points_per_scan: int
    max_daily_scans: int
    is_active: bool


class TagActiveRequest(BaseModel):
    is_active: bool


class TagStatsResponse(BaseModel):
    tag_id: int
    tag_identifier: str
    total_scans: int
    unique_users: int
    today_scans: int
    total_points_awarded: int
    average_points_per_scan: float
