"""HS256 JWT helpers for the identity collaborator.

Tokens carry ``sub`` (actor id) and ``type`` ("user" or "tenant").
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Literal

import jwt

from t4g.clock import utcnow
from t4g.config import get_settings

ActorType = Literal["user", "tenant"]


def create_access_token(actor_id: int, actor_type: ActorType = "user") -> str:
    """Create an access token for a user or tenant."""
    settings = get_settings()
    now = utcnow()
    payload: dict[str, Any] = {
        "sub": str(actor_id),
        "type": actor_type,
        "iat": now,
        "exp": now + timedelta(minutes=settings.jwt_access_token_expire_minutes),
        "iss": settings.jwt_issuer,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> dict[str, Any]:
    """Decode and validate a token. Raises jwt.InvalidTokenError on failure."""
    settings = get_settings()
    payload: dict[str, Any] = jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
        issuer=settings.jwt_issuer,
        options={"require": ["sub", "type", "exp"]},
    )
    if payload["type"] not in ("user", "tenant"):
        raise jwt.InvalidTokenError("Unknown actor type")
    return payload
