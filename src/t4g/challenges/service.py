"""Challenge lifecycle, participation and scoring."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from t4g import events as ev
from t4g.challenges.ranking import rank_participants
from t4g.clock import ensure_utc, utcnow
from t4g.config import get_settings
from t4g.database import run_in_transaction
from t4g.db.models import Challenge, ChallengeParticipant
from t4g.errors import (
    AlreadyParticipating,
    Expired,
    Forbidden,
    Inactive,
    InvalidInput,
    NotFound,
)
from t4g.events import EventSink
from t4g.ledger.service import spend

logger = logging.getLogger(__name__)

CHALLENGE_TYPES = ("open", "closed")
CHALLENGE_CATEGORIES = ("treasure_hunt", "cops_robbers", "quiz", "mixed")

# Challenge states
DRAFT = "draft"
ACTIVE = "active"
COMPLETED = "completed"
CANCELLED = "cancelled"

# Participant states
P_ACTIVE = "active"
P_COMPLETED = "completed"
P_ABANDONED = "abandoned"


async def _load_challenge(db: AsyncSession, challenge_id: int, *, lock: bool = False) -> Challenge:
    stmt = select(Challenge).where(Challenge.id == challenge_id).execution_options(populate_existing=True)
    if lock:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    challenge = result.scalar_one_or_none()
    if challenge is None:
        raise NotFound("Challenge not found")
    return challenge


def _require_owner(challenge: Challenge, tenant_id: int) -> None:
    if challenge.tenant_id != tenant_id:
        raise Forbidden("Challenge belongs to another tenant")


# ---------------------------------------------------------------------------
# Lifecycle (tenant side)
# ---------------------------------------------------------------------------


async def create_challenge(
    db: AsyncSession,
    tenant_id: int,
    title: str,
    start_date: datetime,
    end_date: datetime,
    *,
    challenge_type: str = "open",
    challenge_category: str | None = None,
    description: str | None = None,
    max_participants: int | None = None,
    entry_fee_points: int = 0,
    geofence_radius: int | None = None,
    rules: dict[str, Any] | None = None,
) -> Challenge:
    """Create a challenge in draft state."""
    if challenge_type not in CHALLENGE_TYPES:
        raise InvalidInput(f"challenge_type must be one of {', '.join(CHALLENGE_TYPES)}")
    if challenge_category is not None and challenge_category not in CHALLENGE_CATEGORIES:
        raise InvalidInput(f"challenge_category must be one of {', '.join(CHALLENGE_CATEGORIES)}")
    if ensure_utc(end_date) <= ensure_utc(start_date):
        raise InvalidInput("end_date must be after start_date")
    if max_participants is not None and max_participants <= 0:
        raise InvalidInput("max_participants must be positive")
    if entry_fee_points < 0:
        raise InvalidInput("entry_fee_points cannot be negative")

    challenge = Challenge(
        tenant_id=tenant_id,
        title=title,
        description=description,
        challenge_type=challenge_type,
        challenge_category=challenge_category,
        start_date=start_date,
        end_date=end_date,
        max_participants=max_participants,
        entry_fee_points=entry_fee_points,
        geofence_radius=geofence_radius,
        rules=rules,
        status=DRAFT,
    )
    db.add(challenge)
    await db.commit()
    await db.refresh(challenge)
    return challenge


async def activate_challenge(db: AsyncSession, challenge_id: int, tenant_id: int) -> Challenge:
    async def _activate() -> Challenge:
        challenge = await _load_challenge(db, challenge_id, lock=True)
        _require_owner(challenge, tenant_id)
        if challenge.status != DRAFT:
            raise Inactive(f"Cannot activate a {challenge.status} challenge")
        challenge.status = ACTIVE
        await db.flush()
        return challenge

    return await run_in_transaction(db, _activate)


async def cancel_challenge(db: AsyncSession, challenge_id: int, tenant_id: int) -> Challenge:
    """Cancel a draft or active challenge; active participants become abandoned."""

    async def _cancel() -> Challenge:
        challenge = await _load_challenge(db, challenge_id, lock=True)
        _require_owner(challenge, tenant_id)
        if challenge.status not in (DRAFT, ACTIVE):
            raise Inactive(f"Cannot cancel a {challenge.status} challenge")
        await db.execute(
            update(ChallengeParticipant)
            .where(
                ChallengeParticipant.challenge_id == challenge_id,
                ChallengeParticipant.completion_status == P_ACTIVE,
            )
            .values(completion_status=P_ABANDONED)
        )
        challenge.status = CANCELLED
        await db.flush()
        return challenge

    return await run_in_transaction(db, _cancel)


# ---------------------------------------------------------------------------
# Participation (user side)
# ---------------------------------------------------------------------------


async def join_challenge(db: AsyncSession, challenge_id: int, user_id: int) -> ChallengeParticipant:
    """Join an active open challenge, paying its entry fee if it has one."""

    async def _join() -> ChallengeParticipant:
        now = utcnow()
        # Row lock serializes joins so the capacity check cannot be raced.
        challenge = await _load_challenge(db, challenge_id, lock=True)
        if challenge.status != ACTIVE:
            raise Inactive("Challenge is not active")
        if challenge.challenge_type != "open":
            raise Forbidden("Challenge is not open to new participants")
        if now >= ensure_utc(challenge.end_date):
            raise Expired("Challenge has ended")

        existing = await db.execute(
            select(ChallengeParticipant.id).where(
                ChallengeParticipant.challenge_id == challenge_id,
                ChallengeParticipant.user_id == user_id,
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise AlreadyParticipating()

        if challenge.max_participants is not None:
            count = await db.execute(
                select(func.count())
                .select_from(ChallengeParticipant)
                .where(
                    ChallengeParticipant.challenge_id == challenge_id,
                    ChallengeParticipant.completion_status != P_ABANDONED,
                )
            )
            if count.scalar_one() >= challenge.max_participants:
                raise Inactive("Challenge is full")

        if challenge.entry_fee_points > 0:
            await spend(
                db, user_id, challenge.entry_fee_points, "challenge_entry", str(challenge_id),
                f"Entry fee: {challenge.title}",
            )

        participant = ChallengeParticipant(
            challenge_id=challenge_id,
            user_id=user_id,
            joined_at=now,
            current_score=0,
            completion_status=P_ACTIVE,
        )
        db.add(participant)
        try:
            await db.flush()
        except IntegrityError as exc:
            raise AlreadyParticipating() from exc
        return participant

    participant = await run_in_transaction(db, _join)
    logger.info("User %d joined challenge %d", user_id, challenge_id)
    return participant


async def leave_challenge(db: AsyncSession, challenge_id: int, user_id: int) -> ChallengeParticipant:
    """Abandon participation. Entry fees are not refunded."""

    async def _leave() -> ChallengeParticipant:
        changed = await db.execute(
            update(ChallengeParticipant)
            .where(
                ChallengeParticipant.challenge_id == challenge_id,
                ChallengeParticipant.user_id == user_id,
                ChallengeParticipant.completion_status == P_ACTIVE,
            )
            .values(completion_status=P_ABANDONED)
        )
        if changed.rowcount != 1:
            raise NotFound("No active participation in this challenge")
        return await get_participant(db, challenge_id, user_id)

    return await run_in_transaction(db, _leave)


async def get_participant(db: AsyncSession, challenge_id: int, user_id: int) -> ChallengeParticipant:
    result = await db.execute(
        select(ChallengeParticipant)
        .where(
            ChallengeParticipant.challenge_id == challenge_id,
            ChallengeParticipant.user_id == user_id,
        )
        .execution_options(populate_existing=True)
    )
    participant = result.scalar_one_or_none()
    if participant is None:
        raise NotFound("Participant not found")
    return participant


async def apply_score(db: AsyncSession, challenge_id: int, user_id: int, delta: int) -> int:
    """Increment an active participant's score inside the caller's transaction."""
    if delta <= 0:
        raise InvalidInput("Score delta must be positive")

    changed = await db.execute(
        update(ChallengeParticipant)
        .where(
            ChallengeParticipant.challenge_id == challenge_id,
            ChallengeParticipant.user_id == user_id,
            ChallengeParticipant.completion_status == P_ACTIVE,
        )
        .values(current_score=ChallengeParticipant.current_score + delta)
    )
    if changed.rowcount != 1:
        raise NotFound("No active participation in this challenge")
    participant = await get_participant(db, challenge_id, user_id)
    return participant.current_score


async def add_score(db: AsyncSession, challenge_id: int, user_id: int, delta: int) -> int:
    """Add a self-reported ``delta`` to a participant's score; returns the new score.

    Game results go through ``apply_score`` directly and are not capped.
    """
    cap = get_settings().challenge_max_score_delta
    if delta > cap:
        raise InvalidInput(f"Score delta may not exceed {cap}", max_delta=cap)
    return await run_in_transaction(db, lambda: apply_score(db, challenge_id, user_id, delta))


async def is_active_participant(db: AsyncSession, challenge_id: int, user_id: int) -> bool:
    result = await db.execute(
        select(ChallengeParticipant.id).where(
            ChallengeParticipant.challenge_id == challenge_id,
            ChallengeParticipant.user_id == user_id,
            ChallengeParticipant.completion_status == P_ACTIVE,
        )
    )
    return result.scalar_one_or_none() is not None


# ---------------------------------------------------------------------------
# Completion & standings
# ---------------------------------------------------------------------------


async def complete_challenge(
    db: AsyncSession,
    redis: object,
    challenge_id: int,
    owner_tenant_id: int,
    *,
    sink: EventSink | None = None,
) -> list[dict[str, Any]]:
    """Rank active participants and close the challenge, all in one transaction."""
    sink = sink or EventSink(redis)

    async def _complete() -> list[dict[str, Any]]:
        challenge = await _load_challenge(db, challenge_id, lock=True)
        _require_owner(challenge, owner_tenant_id)
        if challenge.status != ACTIVE:
            raise Inactive(f"Cannot complete a {challenge.status} challenge")

        result = await db.execute(
            select(ChallengeParticipant)
            .where(
                ChallengeParticipant.challenge_id == challenge_id,
                ChallengeParticipant.completion_status == P_ACTIVE,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        rows = {p.id: p for p in result.scalars().all()}

        ranked = rank_participants([
            {"id": p.id, "user_id": p.user_id, "score": p.current_score, "joined_at": p.joined_at}
            for p in rows.values()
        ])
        for entry in ranked:
            participant = rows[entry["id"]]
            participant.final_ranking = entry["rank"]
            participant.completion_status = P_COMPLETED

        challenge.status = COMPLETED
        challenge.completed_at = utcnow()
        await db.flush()
        return ranked

    standings = await run_in_transaction(db, _complete)
    logger.info("Challenge %d completed with %d ranked participants", challenge_id, len(standings))

    await sink.emit(ev.CHALLENGE_COMPLETED, {
        "challenge_id": challenge_id,
        "tenant_id": owner_tenant_id,
        "participants": len(standings),
        "winner_user_id": standings[0]["user_id"] if standings else None,
    })
    return standings


async def get_standings(db: AsyncSession, challenge_id: int) -> list[ChallengeParticipant]:
    """Live standings (non-abandoned), in ranking order."""
    await _load_challenge(db, challenge_id)
    result = await db.execute(
        select(ChallengeParticipant)
        .where(
            ChallengeParticipant.challenge_id == challenge_id,
            ChallengeParticipant.completion_status != P_ABANDONED,
        )
        .order_by(
            ChallengeParticipant.current_score.desc(),
            ChallengeParticipant.joined_at.asc(),
            ChallengeParticipant.id.asc(),
        )
    )
    return list(result.scalars().all())
