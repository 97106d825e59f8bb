"""Deterministic final ranking for challenges.

Participants are ranked by current_score DESC, then joined_at ASC (earlier
join wins a tie), then participant id ASC. Ranks are 1..N with no gaps and
no shared places.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from t4g.clock import ensure_utc

_FAR_FUTURE = datetime(2099, 12, 31, 23, 59, 59, tzinfo=timezone.utc)


def rank_participants(participants: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Sort and number participants.

    Input dicts need ``score``; ``joined_at`` and ``id`` are used for ties.
    Returns the same dicts, sorted, each with ``rank`` added.
    """
    if not participants:
        return []

    def sort_key(p: dict[str, Any]) -> tuple[int, datetime, int]:
        joined = p.get("joined_at")
        return (
            -p.get("score", 0),
            ensure_utc(joined) if joined is not None else _FAR_FUTURE,
            p.get("id", 0),
        )

    ranked = sorted(participants, key=sort_key)
    for idx, p in enumerate(ranked):
        p["rank"] = idx + 1
    return ranked
