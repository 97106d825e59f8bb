"""FastAPI identity dependencies.

The engines only see an ``Actor``; everything about tokens stays here.
"""

from __future__ import annotations

from dataclasses import dataclass

import jwt
from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from t4g.auth.jwt import verify_token
from t4g.config import get_settings
from t4g.database import get_session
from t4g.db.models import Tenant, User

_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Actor:
    id: int
    type: str  # "user" | "tenant"
    status: str


def _dev_bypass(request: Request) -> tuple[int, str] | None:
    """Header-based identity for local development only."""
    settings = get_settings()
    if not (settings.dev_auth_bypass and settings.environment == "development"):
        return None
    actor_id = request.headers.get("X-Dev-Actor-Id")
    if actor_id is None:
        return None
    actor_type = request.headers.get("X-Dev-Actor-Type", "user")
    try:
        return int(actor_id), actor_type
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid dev actor id") from None


async def get_current_actor(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
    db: AsyncSession = Depends(get_session),
) -> Actor:
    """Resolve the authenticated actor; 401 on bad credentials, 403 when inactive."""
    identity = _dev_bypass(request)
    if identity is None:
        if credentials is None:
            raise HTTPException(status_code=401, detail="Not authenticated")
        try:
            payload = verify_token(credentials.credentials)
        except jwt.InvalidTokenError as e:
            raise HTTPException(status_code=401, detail=str(e)) from e
        identity = (int(payload["sub"]), payload["type"])

    actor_id, actor_type = identity
    model = User if actor_type == "user" else Tenant
    result = await db.execute(select(model.status).where(model.id == actor_id))
    status = result.scalar_one_or_none()
    if status is None:
        raise HTTPException(status_code=401, detail=f"{actor_type.capitalize()} not found")
    if status != "active":
        raise HTTPException(status_code=403, detail=f"{actor_type.capitalize()} is not active")
    return Actor(id=actor_id, type=actor_type, status=status)


async def require_user(actor: Actor = Depends(get_current_actor)) -> Actor:
    if actor.type != "user":
        raise HTTPException(status_code=403, detail="User account required")
    return actor


async def require_tenant(actor: Actor = Depends(get_current_actor)) -> Actor:
    if actor.type != "tenant":
        raise HTTPException(status_code=403, detail="Tenant account required")
    return actor
