"""Points ledger service tests: award, spend, levels, history, leaderboard."""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import func, select

from t4g.database import get_session_factory, run_in_transaction
from t4g.db.models import PointsLedgerEntry
from t4g.errors import InsufficientPoints, InvalidInput, NotFound
from t4g.ledger.service import award, get_balance, get_history, get_leaderboard, spend


@pytest.mark.asyncio
class TestAward:
    async def test_award_updates_balance_and_writes_entry(self, db_session, seed):
        user = await seed.user()
        result = await run_in_transaction(db_session, lambda: award(db_session, user.id, 120, "nfc_scan", "7"))

        assert result.balance == 120
        assert result.level == 1
        rows = (await db_session.execute(select(PointsLedgerEntry))).scalars().all()
        assert len(rows) == 1
        assert rows[0].amount == 120
        assert rows[0].balance_after == 120
        assert rows[0].source == "nfc_scan"
        assert rows[0].source_id == "7"

    async def test_award_levels_up(self, db_session, seed):
        user = await seed.user(points=450)
        result = await run_in_transaction(db_session, lambda: award(db_session, user.id, 60, "game"))
        assert result.balance == 510
        assert result.level == 2
        assert result.leveled_up

    @pytest.mark.parametrize("amount", [0, -5])
    async def test_non_positive_amount_rejected(self, db_session, seed, amount):
        user = await seed.user()
        with pytest.raises(InvalidInput):
            await award(db_session, user.id, amount, "game")

    async def test_unknown_user(self, db_session, seed):
        with pytest.raises(NotFound):
            await award(db_session, 9999, 10, "game")


@pytest.mark.asyncio
class TestSpend:
    async def test_spend_deducts_and_keeps_level(self, db_session, seed):
        user = await seed.user(points=600, level=2)
        result = await run_in_transaction(db_session, lambda: spend(db_session, user.id, 300, "token_claim"))
        assert result.balance == 300
        assert result.level == 2

        entry = (await db_session.execute(select(PointsLedgerEntry))).scalar_one()
        assert entry.amount == -300
        assert entry.balance_after == 300

    async def test_insufficient_points_leaves_balance(self, db_session, seed):
        user = await seed.user(points=50)
        with pytest.raises(InsufficientPoints) as exc_info:
            await run_in_transaction(db_session, lambda: spend(db_session, user.id, 100, "token_claim"))
        assert exc_info.value.to_dict()["balance"] == 50
        assert exc_info.value.to_dict()["required"] == 100

        assert (await get_balance(db_session, user.id)).points == 50
        count = await db_session.execute(select(func.count()).select_from(PointsLedgerEntry))
        assert count.scalar_one() == 0

    async def test_spend_exact_balance(self, db_session, seed):
        user = await seed.user(points=100)
        result = await run_in_transaction(db_session, lambda: spend(db_session, user.id, 100, "challenge_entry"))
        assert result.balance == 0


@pytest.mark.asyncio
class TestConservation:
    async def test_balance_equals_sum_of_entries(self, db_session, seed):
        user = await seed.user()
        for amount in (10, 25, 40):
            await run_in_transaction(db_session, lambda a=amount: award(db_session, user.id, a, "nfc_scan"))
        await run_in_transaction(db_session, lambda: spend(db_session, user.id, 30, "token_claim"))
        with pytest.raises(InsufficientPoints):
            await run_in_transaction(db_session, lambda: spend(db_session, user.id, 500, "token_claim"))

        total = await db_session.execute(
            select(func.sum(PointsLedgerEntry.amount)).where(PointsLedgerEntry.user_id == user.id)
        )
        balance = (await get_balance(db_session, user.id)).points
        assert balance == 45
        assert total.scalar_one() == balance

    async def test_concurrent_awards_are_not_lost(self, db_session, seed):
        user = await seed.user()
        factory = get_session_factory()

        async def one_award() -> None:
            async with factory() as session:
                await run_in_transaction(session, lambda: award(session, user.id, 5, "nfc_scan"))

        await asyncio.gather(*(one_award() for _ in range(10)))

        assert (await get_balance(db_session, user.id)).points == 50
        entries = await db_session.execute(select(PointsLedgerEntry.balance_after).order_by(PointsLedgerEntry.id))
        assert sorted(entries.scalars().all()) == [5, 10, 15, 20, 25, 30, 35, 40, 45, 50]

    async def test_concurrent_spends_never_overdraw(self, db_session, seed):
        user = await seed.user(points=100)
        factory = get_session_factory()

        async def one_spend() -> None:
            async with factory() as session:
                await run_in_transaction(session, lambda: spend(session, user.id, 30, "token_claim"))

        results = await asyncio.gather(*(one_spend() for _ in range(10)), return_exceptions=True)

        assert sum(r is None for r in results) == 3
        assert sum(isinstance(r, InsufficientPoints) for r in results) == 7
        assert (await get_balance(db_session, user.id)).points == 10
        entries = await db_session.execute(select(PointsLedgerEntry.balance_after).order_by(PointsLedgerEntry.id))
        assert entries.scalars().all() == [70, 40, 10]


@pytest.mark.asyncio
class TestReads:
    async def test_history_newest_first_and_paginated(self, db_session, seed):
        user = await seed.user()
        for amount in (1, 2, 3, 4, 5):
            await run_in_transaction(db_session, lambda a=amount: award(db_session, user.id, a, "game"))

        page1, total = await get_history(db_session, user.id, page=1, per_page=2)
        page3, _ = await get_history(db_session, user.id, page=3, per_page=2)
        assert total == 5
        assert [e.amount for e in page1] == [5, 4]
        assert [e.amount for e in page3] == [1]

    async def test_leaderboard_orders_by_points_then_id(self, db_session, seed):
        a = await seed.user(points=300)
        b = await seed.user(points=500)
        c = await seed.user(points=300)
        await seed.user(points=900, status="suspended")

        board = await get_leaderboard(db_session, limit=10)
        assert [u.id for u in board] == [b.id, a.id, c.id]
