"""Token claim/redeem engine tests, including concurrent claims."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import func, select, update

from t4g.clock import ensure_utc, utcnow
from t4g.database import get_session_factory
from t4g.db.models import Token, TokenClaim
from t4g.errors import (
    AlreadyClaimed,
    AlreadyRedeemed,
    Expired,
    Forbidden,
    Inactive,
    InsufficientPoints,
    NotFound,
    SoldOut,
)
from t4g.ledger.service import get_balance
from t4g.tokens.service import (
    CLAIM_CODE_ALPHABET,
    claim_token,
    create_token,
    generate_claim_code,
    get_user_claims,
    list_available_tokens,
    redeem_claim,
)
from tests.factories import days_from_now


async def _reload_token(db, token_id: int) -> Token:
    result = await db.execute(select(Token).where(Token.id == token_id).execution_options(populate_existing=True))
    return result.scalar_one()


def test_claim_code_shape():
    code = generate_claim_code()
    assert len(code) == 8
    assert set(code) <= set(CLAIM_CODE_ALPHABET)
    assert len({generate_claim_code() for _ in range(200)}) == 200


@pytest.mark.asyncio
class TestClaim:
    async def test_claim_spends_points_and_increments_quantity(self, db_session, redis_client, seed):
        tenant = await seed.tenant()
        token = await seed.token(tenant, required_points=100, quantity_available=3)
        user = await seed.user(points=250)

        result = await claim_token(db_session, redis_client, token.id, user.id)

        assert result.new_balance == 150
        assert len(result.claim_code) == 8
        assert result.claim.status == "claimed"
        assert result.claim.points_spent == 100
        assert result.claim.tenant_id == tenant.id
        assert (await _reload_token(db_session, token.id)).quantity_claimed == 1
        assert (await get_balance(db_session, user.id)).points == 150

    async def test_claim_expiry_defaults_to_validity_window(self, db_session, redis_client, seed):
        tenant = await seed.tenant()
        token = await seed.token(tenant)
        user = await seed.user(points=100)

        result = await claim_token(db_session, redis_client, token.id, user.id)
        expected = utcnow() + timedelta(days=30)
        assert abs(ensure_utc(result.claim.expires_at) - expected) < timedelta(minutes=1)

    async def test_claim_expiry_follows_token_expiry(self, db_session, redis_client, seed):
        tenant = await seed.tenant()
        expiry = days_from_now(3)
        token = await seed.token(tenant, expiry_date=expiry)
        user = await seed.user(points=100)

        result = await claim_token(db_session, redis_client, token.id, user.id)
        assert abs(ensure_utc(result.claim.expires_at) - expiry) < timedelta(seconds=1)

    async def test_second_claim_rejected(self, db_session, redis_client, seed):
        tenant = await seed.tenant()
        token = await seed.token(tenant)
        user = await seed.user(points=500)

        await claim_token(db_session, redis_client, token.id, user.id)
        with pytest.raises(AlreadyClaimed):
            await claim_token(db_session, redis_client, token.id, user.id)
        assert (await get_balance(db_session, user.id)).points == 400

    async def test_insufficient_points(self, db_session, redis_client, seed):
        tenant = await seed.tenant()
        token = await seed.token(tenant, required_points=100)
        user = await seed.user(points=99)

        with pytest.raises(InsufficientPoints):
            await claim_token(db_session, redis_client, token.id, user.id)
        assert (await _reload_token(db_session, token.id)).quantity_claimed == 0

    async def test_sold_out(self, db_session, redis_client, seed):
        tenant = await seed.tenant()
        token = await seed.token(tenant, quantity_available=1, quantity_claimed=1)
        user = await seed.user(points=500)
        with pytest.raises(SoldOut):
            await claim_token(db_session, redis_client, token.id, user.id)
        assert (await get_balance(db_session, user.id)).points == 500

    async def test_inactive_expired_missing(self, db_session, redis_client, seed):
        tenant = await seed.tenant()
        inactive = await seed.token(tenant, is_active=False)
        expired = await seed.token(tenant, expiry_date=days_from_now(-1))
        user = await seed.user(points=500)

        with pytest.raises(Inactive):
            await claim_token(db_session, redis_client, inactive.id, user.id)
        with pytest.raises(Expired):
            await claim_token(db_session, redis_client, expired.id, user.id)
        with pytest.raises(NotFound):
            await claim_token(db_session, redis_client, 9999, user.id)


@pytest.mark.asyncio
class TestConcurrentClaims:
    async def test_same_user_claims_once(self, db_session, redis_client, seed):
        tenant = await seed.tenant()
        token = await seed.token(tenant, required_points=100, quantity_available=10)
        user = await seed.user(points=1000)
        factory = get_session_factory()

        async def attempt():
            async with factory() as session:
                return await claim_token(session, redis_client, token.id, user.id)

        results = await asyncio.gather(*(attempt() for _ in range(6)), return_exceptions=True)
        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, Exception)]

        assert len(successes) == 1
        assert all(isinstance(f, AlreadyClaimed) for f in failures)
        assert (await get_balance(db_session, user.id)).points == 900
        assert (await _reload_token(db_session, token.id)).quantity_claimed == 1

    async def test_quantity_never_oversold(self, db_session, redis_client, seed):
        tenant = await seed.tenant()
        token = await seed.token(tenant, required_points=50, quantity_available=2)
        users = [await seed.user(points=100) for _ in range(5)]
        factory = get_session_factory()

        async def attempt(user_id: int):
            async with factory() as session:
                return await claim_token(session, redis_client, token.id, user_id)

        results = await asyncio.gather(*(attempt(u.id) for u in users), return_exceptions=True)
        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, Exception)]

        assert len(successes) == 2
        assert all(isinstance(f, SoldOut) for f in failures)
        assert (await _reload_token(db_session, token.id)).quantity_claimed == 2
        claims = await db_session.execute(select(func.count()).select_from(TokenClaim))
        assert claims.scalar_one() == 2
        balances = sorted([(await get_balance(db_session, u.id)).points for u in users])
        assert balances == [50, 50, 100, 100, 100]


@pytest.mark.asyncio
class TestRedeem:
    async def test_redeem_once(self, db_session, redis_client, seed):
        tenant = await seed.tenant()
        token = await seed.token(tenant)
        user = await seed.user(points=100)
        claimed = await claim_token(db_session, redis_client, token.id, user.id)

        redeemed = await redeem_claim(db_session, redis_client, claimed.claim_code, tenant.id)
        assert redeemed.status == "redeemed"
        assert redeemed.redeemed_at is not None
        assert redeemed.redeemed_by_tenant_id == tenant.id

        with pytest.raises(AlreadyRedeemed):
            await redeem_claim(db_session, redis_client, claimed.claim_code, tenant.id)

    async def test_code_is_case_insensitive(self, db_session, redis_client, seed):
        tenant = await seed.tenant()
        token = await seed.token(tenant)
        user = await seed.user(points=100)
        claimed = await claim_token(db_session, redis_client, token.id, user.id)

        redeemed = await redeem_claim(db_session, redis_client, f"  {claimed.claim_code.lower()} ", tenant.id)
        assert redeemed.id == claimed.claim.id

    async def test_other_tenant_forbidden(self, db_session, redis_client, seed):
        owner = await seed.tenant()
        other = await seed.tenant()
        token = await seed.token(owner)
        user = await seed.user(points=100)
        claimed = await claim_token(db_session, redis_client, token.id, user.id)

        with pytest.raises(Forbidden):
            await redeem_claim(db_session, redis_client, claimed.claim_code, other.id)

    async def test_unknown_code(self, db_session, redis_client, seed):
        with pytest.raises(NotFound):
            await redeem_claim(db_session, redis_client, "ZZZZZZZZ")

    async def test_expired_claim(self, db_session, redis_client, seed):
        tenant = await seed.tenant()
        token = await seed.token(tenant)
        user = await seed.user(points=100)
        claimed = await claim_token(db_session, redis_client, token.id, user.id)
        await db_session.execute(
            update(TokenClaim).where(TokenClaim.id == claimed.claim.id).values(expires_at=days_from_now(-1))
        )
        await db_session.commit()

        with pytest.raises(Expired):
            await redeem_claim(db_session, redis_client, claimed.claim_code, tenant.id)

    async def test_concurrent_redeem_succeeds_once(self, db_session, redis_client, seed):
        tenant = await seed.tenant()
        token = await seed.token(tenant)
        user = await seed.user(points=100)
        claimed = await claim_token(db_session, redis_client, token.id, user.id)
        factory = get_session_factory()

        async def attempt():
            async with factory() as session:
                return await redeem_claim(session, redis_client, claimed.claim_code, tenant.id)

        results = await asyncio.gather(*(attempt() for _ in range(4)), return_exceptions=True)
        assert sum(not isinstance(r, Exception) for r in results) == 1
        assert all(isinstance(r, AlreadyRedeemed) for r in results if isinstance(r, Exception))


@pytest.mark.asyncio
class TestCatalogue:
    async def test_available_excludes_sold_out_expired_inactive(self, db_session, seed):
        tenant = await seed.tenant()
        ok = await seed.token(tenant, required_points=10)
        await seed.token(tenant, quantity_available=1, quantity_claimed=1)
        await seed.token(tenant, expiry_date=days_from_now(-1))
        await seed.token(tenant, is_active=False)

        available = await list_available_tokens(db_session)
        assert [t.id for t in available] == [ok.id]

    async def test_create_token(self, db_session, seed):
        tenant = await seed.tenant()
        token = await create_token(db_session, tenant.id, "Cake", 200, 5, token_value=4.5)
        assert token.quantity_claimed == 0
        assert token.token_type == "voucher"

    async def test_user_claims(self, db_session, redis_client, seed):
        tenant = await seed.tenant()
        t1 = await seed.token(tenant, required_points=10)
        t2 = await seed.token(tenant, required_points=10)
        user = await seed.user(points=100)
        await claim_token(db_session, redis_client, t1.id, user.id)
        await claim_token(db_session, redis_client, t2.id, user.id)

        claims = await get_user_claims(db_session, user.id)
        assert {c.token_id for c in claims} == {t1.id, t2.id}
