"""Fire-and-forget domain events over Redis pub/sub."""

from __future__ import annotations

import json
import logging
from typing import Any

from t4g.clock import utcnow

logger = logging.getLogger(__name__)

NFC_SCANNED = "nfc.scanned"
POINTS_AWARDED = "points.awarded"
POINTS_SPENT = "points.spent"
TOKEN_CLAIMED = "token.claimed"
TOKEN_REDEEMED = "token.redeemed"
CHALLENGE_COMPLETED = "challenge.completed"
GAME_PLAYED = "game.played"
SHARE_CREATED = "share.created"


class EventSink:
    """Publishes events for notifications and analytics consumers.

    Emission never fails the caller; errors are logged and dropped.
    """

    def __init__(self, redis: object | None, channel_prefix: str = "events") -> None:
        self._redis = redis
        self._prefix = channel_prefix

    async def emit(self, name: str, payload: dict[str, Any]) -> None:
        if self._redis is None:
            return
        message = json.dumps({"event": name, "at": utcnow().isoformat(), **payload}, default=str)
        try:
            await self._redis.publish(f"{self._prefix}:{name}", message)  # type: ignore[attr-defined]
        except Exception:
            logger.warning("Failed to publish %s event", name, exc_info=True)
