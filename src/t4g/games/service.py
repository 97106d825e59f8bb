"""Mini-game plays: attempt limits, scoring, point award, challenge score."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from t4g import events as ev
from t4g.challenges.service import apply_score, is_active_participant
from t4g.clock import utcnow
from t4g.database import run_in_transaction
from t4g.db.models import Game, GameAttempt
from t4g.errors import InvalidInput, NotFound, RateLimited
from t4g.events import EventSink
from t4g.games.scoring import (
    GAME_TYPES,
    AbilityAnswers,
    MemoryAnswers,
    QuizAnswers,
    calculate_score,
    result_message,
)
from t4g.ledger.service import award, lock_user

logger = logging.getLogger(__name__)


@dataclass
class PlayResult:
    attempt_id: int
    score: int
    max_score: int
    completion_percentage: float
    points_earned: int
    attempts_remaining: int
    challenge_score: int | None
    message: str


async def create_game(
    db: AsyncSession,
    tenant_id: int,
    game_type: str,
    title: str,
    game_data: dict[str, Any],
    *,
    challenge_id: int | None = None,
    description: str | None = None,
    points_per_completion: int = 50,
    max_attempts_per_user: int = 3,
    time_limit_seconds: int = 300,
) -> Game:
    if game_type not in GAME_TYPES:
        raise InvalidInput(f"game_type must be one of {', '.join(GAME_TYPES)}")
    if points_per_completion < 0 or max_attempts_per_user <= 0:
        raise InvalidInput("Invalid points or attempt limit")

    game = Game(
        tenant_id=tenant_id,
        challenge_id=challenge_id,
        game_type=game_type,
        title=title,
        description=description,
        game_data=game_data,
        points_per_completion=points_per_completion,
        max_attempts_per_user=max_attempts_per_user,
        time_limit_seconds=time_limit_seconds,
        is_active=True,
    )
    db.add(game)
    await db.commit()
    await db.refresh(game)
    return game


async def play_game(
    db: AsyncSession,
    redis: object,
    user_id: int,
    game_id: int,
    answers: QuizAnswers | AbilityAnswers | MemoryAnswers,
    *,
    sink: EventSink | None = None,
) -> PlayResult:
    """Score one attempt and pay out through the ledger."""
    sink = sink or EventSink(redis)

    async def _play() -> PlayResult:
        result = await db.execute(select(Game).where(Game.id == game_id, Game.is_active.is_(True)))
        game = result.scalar_one_or_none()
        if game is None:
            raise NotFound("Game not found or inactive")
        if answers.game_type != game.game_type:
            raise InvalidInput(f"Answers are for a {answers.game_type} game, this is a {game.game_type} game")

        # Serializes a user's concurrent plays so the attempt count holds.
        await lock_user(db, user_id)
        used = await db.execute(
            select(func.count())
            .select_from(GameAttempt)
            .where(GameAttempt.user_id == user_id, GameAttempt.game_id == game_id)
        )
        attempts = used.scalar_one()
        if attempts >= game.max_attempts_per_user:
            raise RateLimited("attempts", "Maximum attempts reached for this game")

        outcome = calculate_score(game.game_data or {}, answers, game.points_per_completion)
        attempt = GameAttempt(
            user_id=user_id,
            game_id=game_id,
            challenge_id=game.challenge_id,
            score=outcome.score,
            max_score=outcome.max_score,
            completion_percentage=outcome.percentage,
            time_taken_seconds=answers.time_taken,
            attempt_data=answers.model_dump(),
            points_earned=outcome.points_earned,
            completed_at=utcnow(),
        )
        db.add(attempt)
        await db.flush()

        if outcome.points_earned > 0:
            await award(
                db, user_id, outcome.points_earned, "game", str(game_id), f"Game: {game.title}",
            )

        challenge_score = None
        if (
            game.challenge_id is not None
            and outcome.score > 0
            and await is_active_participant(db, game.challenge_id, user_id)
        ):
            challenge_score = await apply_score(db, game.challenge_id, user_id, outcome.score)

        return PlayResult(
            attempt_id=attempt.id,
            score=outcome.score,
            max_score=outcome.max_score,
            completion_percentage=outcome.percentage,
            points_earned=outcome.points_earned,
            attempts_remaining=game.max_attempts_per_user - (attempts + 1),
            challenge_score=challenge_score,
            message=result_message(outcome),
        )

    played = await run_in_transaction(db, _play)
    logger.info("User %d played game %d: score %d, points %d", user_id, game_id, played.score, played.points_earned)

    await sink.emit(ev.GAME_PLAYED, {
        "user_id": user_id,
        "game_id": game_id,
        "score": played.score,
        "points": played.points_earned,
    })
    if played.points_earned > 0:
        await sink.emit(ev.POINTS_AWARDED, {
            "user_id": user_id, "amount": played.points_earned, "source": "game",
        })
    return played


async def list_active_games(db: AsyncSession) -> list[Game]:
    result = await db.execute(
        select(Game).where(Game.is_active.is_(True)).order_by(Game.created_at.desc(), Game.id.desc())
    )
    return list(result.scalars().all())


async def get_game_leaderboard(db: AsyncSession, game_id: int, limit: int = 50) -> list[GameAttempt]:
    """Best attempts first; earlier completion wins ties."""
    result = await db.execute(
        select(GameAttempt)
        .where(GameAttempt.game_id == game_id)
        .order_by(GameAttempt.score.desc(), GameAttempt.completed_at.asc(), GameAttempt.id.asc())
        .limit(limit)
    )
    return list(result.scalars().all())
