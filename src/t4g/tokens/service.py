"""Token claim and redemption engine.

A claim is one unit of work: the conditional quantity increment, the
ledger spend and the claim insert commit together or not at all. The
pre-checks before it give precise errors; the conditional UPDATE and the
(user_id, token_id) unique constraint keep the invariants under
concurrency.
"""

from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from t4g import events as ev
from t4g.clock import ensure_utc, utcnow
from t4g.config import get_settings
from t4g.database import run_in_transaction
from t4g.db.models import Token, TokenClaim
from t4g.errors import (
    AlreadyClaimed,
    AlreadyRedeemed,
    Expired,
    Forbidden,
    Inactive,
    InsufficientPoints,
    InvalidInput,
    NotFound,
    SoldOut,
    TransientFailure,
)
from t4g.events import EventSink
from t4g.ledger.service import get_balance, spend

logger = logging.getLogger(__name__)

CLAIM_CODE_ALPHABET = string.ascii_uppercase + string.digits

STATUS_CLAIMED = "claimed"
STATUS_REDEEMED = "redeemed"


@dataclass
class ClaimResult:
    claim: TokenClaim
    claim_code: str
    new_balance: int


def generate_claim_code(length: int | None = None) -> str:
    """Random code from A-Z0-9 (36^8 ≈ 2.8e12 for the default length)."""
    length = length or get_settings().claim_code_length
    return "".join(secrets.choice(CLAIM_CODE_ALPHABET) for _ in range(length))


async def _unique_claim_code(db: AsyncSession) -> str:
    settings = get_settings()
    for _ in range(settings.claim_code_max_attempts):
        code = generate_claim_code(settings.claim_code_length)
        taken = await db.execute(select(TokenClaim.id).where(TokenClaim.claim_code == code))
        if taken.scalar_one_or_none() is None:
            return code
    raise TransientFailure("Could not allocate a claim code")


def _check_claimable(token: Token | None, now: datetime) -> Token:
    if token is None:
        raise NotFound("Token not found")
    if not token.is_active:
        raise Inactive("Token is not active")
    if token.expiry_date is not None and ensure_utc(token.expiry_date) <= now:
        raise Expired("Token has expired")
    if token.quantity_claimed >= token.quantity_available:
        raise SoldOut()
    return token


async def claim_token(
    db: AsyncSession,
    redis: object,
    token_id: int,
    user_id: int,
    *,
    sink: EventSink | None = None,
) -> ClaimResult:
    """Spend ``required_points`` for one unit of a token."""
    sink = sink or EventSink(redis)
    settings = get_settings()

    async def _claim() -> ClaimResult:
        now = utcnow()
        result = await db.execute(
            select(Token).where(Token.id == token_id).execution_options(populate_existing=True)
        )
        token = _check_claimable(result.scalar_one_or_none(), now)

        existing = await db.execute(
            select(TokenClaim.id).where(TokenClaim.user_id == user_id, TokenClaim.token_id == token_id)
        )
        if existing.scalar_one_or_none() is not None:
            raise AlreadyClaimed()

        user = await get_balance(db, user_id)
        if user.points < token.required_points:
            raise InsufficientPoints(user.points, token.required_points)

        code = await _unique_claim_code(db)

        # Conditional increment: zero rows means another claim took the last unit.
        bumped = await db.execute(
            update(Token)
            .where(Token.id == token_id, Token.quantity_claimed < Token.quantity_available)
            .values(quantity_claimed=Token.quantity_claimed + 1)
        )
        if bumped.rowcount != 1:
            raise SoldOut()

        ledger = await spend(
            db, user_id, token.required_points, "token_claim", str(token_id),
            f"Claimed token: {token.token_name}",
        )

        expires_at = ensure_utc(token.expiry_date) if token.expiry_date else now + timedelta(
            days=settings.claim_validity_days
        )
        claim = TokenClaim(
            user_id=user_id,
            token_id=token_id,
            tenant_id=token.tenant_id,
            claim_code=code,
            points_spent=token.required_points,
            status=STATUS_CLAIMED,
            claimed_at=now,
            expires_at=expires_at,
        )
        db.add(claim)
        try:
            await db.flush()
        except IntegrityError as exc:
            # Lost a race on (user_id, token_id); the whole unit rolls back.
            raise AlreadyClaimed() from exc
        return ClaimResult(claim=claim, claim_code=code, new_balance=ledger.balance)

    outcome = await run_in_transaction(db, _claim)
    logger.info("User %d claimed token %d (code %s)", user_id, token_id, outcome.claim_code)

    await sink.emit(ev.TOKEN_CLAIMED, {
        "claim_id": outcome.claim.id,
        "user_id": user_id,
        "token_id": token_id,
        "tenant_id": outcome.claim.tenant_id,
        "points_spent": outcome.claim.points_spent,
    })
    await sink.emit(ev.POINTS_SPENT, {
        "user_id": user_id,
        "amount": outcome.claim.points_spent,
        "source": "token_claim",
        "balance": outcome.new_balance,
    })
    return outcome


async def redeem_claim(
    db: AsyncSession,
    redis: object,
    claim_code: str,
    requesting_tenant_id: int | None = None,
    *,
    sink: EventSink | None = None,
) -> TokenClaim:
    """Mark a claim redeemed. Terminal; a second redemption always fails."""
    sink = sink or EventSink(redis)
    code = claim_code.strip().upper()

    async def _redeem() -> TokenClaim:
        now = utcnow()
        result = await db.execute(
            select(TokenClaim)
            .where(TokenClaim.claim_code == code)
            .execution_options(populate_existing=True)
        )
        claim = result.scalar_one_or_none()
        if claim is None:
            raise NotFound("Claim code not found")
        if claim.status == STATUS_REDEEMED:
            raise AlreadyRedeemed()
        if requesting_tenant_id is not None and claim.token.tenant_id != requesting_tenant_id:
            raise Forbidden("This claim belongs to another tenant")
        if ensure_utc(claim.expires_at) <= now:
            raise Expired("Claim has expired")

        changed = await db.execute(
            update(TokenClaim)
            .where(TokenClaim.id == claim.id, TokenClaim.status == STATUS_CLAIMED)
            .values(status=STATUS_REDEEMED, redeemed_at=now, redeemed_by_tenant_id=requesting_tenant_id)
        )
        if changed.rowcount != 1:
            raise AlreadyRedeemed()

        await db.refresh(claim)
        return claim

    claim = await run_in_transaction(db, _redeem)
    logger.info("Claim %s redeemed by tenant %s", code, requesting_tenant_id)

    await sink.emit(ev.TOKEN_REDEEMED, {
        "claim_id": claim.id,
        "user_id": claim.user_id,
        "token_id": claim.token_id,
        "tenant_id": requesting_tenant_id,
    })
    return claim


# ---------------------------------------------------------------------------
# Catalogue
# ---------------------------------------------------------------------------


async def create_token(
    db: AsyncSession,
    tenant_id: int,
    token_name: str,
    required_points: int,
    quantity_available: int,
    *,
    token_type: str = "voucher",
    token_value: float = 0,
    token_description: str | None = None,
    expiry_date: datetime | None = None,
    is_active: bool = True,
) -> Token:
    if required_points <= 0:
        raise InvalidInput("required_points must be positive")
    if quantity_available < 0:
        raise InvalidInput("quantity_available cannot be negative")

    token = Token(
        tenant_id=tenant_id,
        token_name=token_name,
        token_description=token_description,
        token_type=token_type,
        token_value=token_value,
        required_points=required_points,
        quantity_available=quantity_available,
        quantity_claimed=0,
        expiry_date=expiry_date,
        is_active=is_active,
    )
    db.add(token)
    await db.commit()
    await db.refresh(token)
    return token


async def list_available_tokens(db: AsyncSession) -> list[Token]:
    now = utcnow()
    result = await db.execute(
        select(Token)
        .where(
            Token.is_active.is_(True),
            Token.quantity_claimed < Token.quantity_available,
            (Token.expiry_date.is_(None)) | (Token.expiry_date > now),
        )
        .order_by(Token.required_points.asc(), Token.id.asc())
    )
    return list(result.scalars().all())


async def get_user_claims(db: AsyncSession, user_id: int) -> list[TokenClaim]:
    result = await db.execute(
        select(TokenClaim)
        .where(TokenClaim.user_id == user_id)
        .order_by(TokenClaim.claimed_at.desc(), TokenClaim.id.desc())
    )
    return list(result.scalars().unique().all())
