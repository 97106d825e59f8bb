"""Mini-games, social shares and the points views through the API."""

from __future__ import annotations

import pytest
from httpx import AsyncClient

from tests.factories import QUIZ_DATA, auth_headers

pytestmark = pytest.mark.asyncio

PERFECT = {"game_type": "quiz", "answers": ["B", "A", "C", "D", "A"], "time_taken": 30}


class TestGamesAPI:
    async def test_create_list_play(self, client: AsyncClient, seed):
        tenant = await seed.tenant()
        user = await seed.user()
        me = auth_headers(user.id)

        created = await client.post(
            "/api/v1/games",
            json={"game_type": "quiz", "title": "City quiz", "game_data": QUIZ_DATA, "max_attempts_per_user": 2},
            headers=auth_headers(tenant.id, "tenant"),
        )
        assert created.status_code == 201
        game_id = created.json()["id"]

        listing = await client.get("/api/v1/games", headers=me)
        assert [g["id"] for g in listing.json()["games"]] == [game_id]

        played = await client.post(f"/api/v1/games/{game_id}/play", json={"answers": PERFECT}, headers=me)
        assert played.status_code == 200
        data = played.json()
        assert data["score"] == 5
        assert data["points_earned"] == 50
        assert data["attempts_remaining"] == 1

        await client.post(f"/api/v1/games/{game_id}/play", json={"answers": PERFECT}, headers=me)
        blocked = await client.post(f"/api/v1/games/{game_id}/play", json={"answers": PERFECT}, headers=me)
        assert blocked.status_code == 429
        assert blocked.json()["code"] == "rate_limited"
        assert blocked.json()["scope"] == "attempts"

        board = await client.get(f"/api/v1/games/{game_id}/leaderboard", headers=me)
        assert len(board.json()["entries"]) == 2

    async def test_wrong_answer_shape(self, client: AsyncClient, seed):
        tenant = await seed.tenant()
        game = await seed.game(tenant)
        me = auth_headers((await seed.user()).id)

        resp = await client.post(
            f"/api/v1/games/{game.id}/play",
            json={"answers": {"game_type": "memory", "correct_sequences": 3}},
            headers=me,
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "invalid_input"

        resp = await client.post(
            f"/api/v1/games/{game.id}/play", json={"answers": {"game_type": "chess"}}, headers=me,
        )
        assert resp.status_code == 422


class TestSharesAPI:
    async def test_share_quota(self, client: AsyncClient, seed):
        user = await seed.user()
        me = auth_headers(user.id)
        body = {"platform": "instagram", "share_type": "post"}

        for _ in range(3):
            resp = await client.post("/api/v1/shares", json=body, headers=me)
            assert resp.status_code == 201
            assert resp.json()["points_earned"] == 10

        resp = await client.post("/api/v1/shares", json=body, headers=me)
        assert resp.status_code == 429
        assert resp.json()["detail"] == "Maximum 3 shares per day on instagram"

        resp = await client.post("/api/v1/shares", json={"platform": "tiktok", "share_type": "tag"}, headers=me)
        assert resp.status_code == 201

        mine = await client.get("/api/v1/users/me/shares", headers=me)
        assert len(mine.json()["shares"]) == 4

    async def test_unknown_platform(self, client: AsyncClient, seed):
        me = auth_headers((await seed.user()).id)
        resp = await client.post("/api/v1/shares", json={"platform": "myspace", "share_type": "post"}, headers=me)
        assert resp.status_code == 400


class TestPointsAPI:
    async def test_balance_history_and_leaderboard(self, client: AsyncClient, seed):
        leader = await seed.user(points=900, level=2)
        runner = await seed.user(points=300)
        me = auth_headers(runner.id)

        await client.post("/api/v1/shares", json={"platform": "tiktok", "share_type": "post"}, headers=me)

        points = await client.get("/api/v1/users/me/points", headers=me)
        assert points.json() == {"user_id": runner.id, "points": 312, "level": 1, "next_level_at": 500}

        history = await client.get("/api/v1/users/me/points/history?per_page=10", headers=me)
        data = history.json()
        assert data["total"] == 1
        assert data["entries"][0]["source"] == "social_share"
        assert data["entries"][0]["balance_after"] == 312

        board = await client.get("/api/v1/leaderboard?limit=5")
        assert board.status_code == 200
        assert [(e["rank"], e["user_id"]) for e in board.json()["entries"]] == [(1, leader.id), (2, runner.id)]
