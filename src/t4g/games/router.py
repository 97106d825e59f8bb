"""Mini-game API endpoints."""

from __future__ import annotations

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from t4g.auth.dependencies import Actor, require_tenant, require_user
from t4g.database import get_session
from t4g.db.models import Game
from t4g.games.schemas import (
    CreateGameRequest,
    GameLeaderboardEntry,
    GameLeaderboardResponse,
    GameListResponse,
    GameResponse,
    PlayRequest,
    PlayResponse,
)
from t4g.games.service import create_game, get_game_leaderboard, list_active_games, play_game
from t4g.redis_client import get_redis

router = APIRouter(prefix="/api/v1/games", tags=["Games"])


def _game_response(g: Game) -> GameResponse:
    return GameResponse(
        id=g.id,
        tenant_id=g.tenant_id,
        challenge_id=g.challenge_id,
        game_type=g.game_type,
        title=g.title,
        description=g.description,
        points_per_completion=g.points_per_completion,
        max_attempts_per_user=g.max_attempts_per_user,
        time_limit_seconds=g.time_limit_seconds,
    )


@router.get("", response_model=GameListResponse)
async def list_games(db: AsyncSession = Depends(get_session)) -> GameListResponse:
    games = await list_active_games(db)
    return GameListResponse(games=[_game_response(g) for g in games])


@router.post("", response_model=GameResponse, status_code=201)
async def add_game(
    body: CreateGameRequest,
    tenant: Actor = Depends(require_tenant),
    db: AsyncSession = Depends(get_session),
) -> GameResponse:
    game = await create_game(
        db,
        tenant.id,
        body.game_type,
        body.title,
        body.game_data,
        challenge_id=body.challenge_id,
        description=body.description,
        points_per_completion=body.points_per_completion,
        max_attempts_per_user=body.max_attempts_per_user,
        time_limit_seconds=body.time_limit_seconds,
    )
    return _game_response(game)


@router.post("/{game_id}/play", response_model=PlayResponse)
async def play(
    game_id: int,
    body: PlayRequest,
    user: Actor = Depends(require_user),
    db: AsyncSession = Depends(get_session),
    redis: aioredis.Redis = Depends(get_redis),
) -> PlayResponse:
    """Submit answers for one attempt."""
    result = await play_game(db, redis, user.id, game_id, body.answers)
    return PlayResponse(
        attempt_id=result.attempt_id,
        score=result.score,
        max_score=result.max_score,
        completion_percentage=result.completion_percentage,
        points_earned=result.points_earned,
        attempts_remaining=result.attempts_remaining,
        challenge_score=result.challenge_score,
        message=result.message,
    )


@router.get("/{game_id}/leaderboard", response_model=GameLeaderboardResponse)
async def leaderboard(
    game_id: int,
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_session),
) -> GameLeaderboardResponse:
    attempts = await get_game_leaderboard(db, game_id, limit)
    return GameLeaderboardResponse(
        game_id=game_id,
        entries=[
            GameLeaderboardEntry(
                user_id=a.user_id,
                score=a.score,
                max_score=a.max_score,
                completion_percentage=a.completion_percentage,
                completed_at=a.completed_at,
            )
            for a in attempts
        ],
    )
