"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from t4g.challenges.router import router as challenges_router
from t4g.config import get_settings
from t4g.database import close_db, init_db
from t4g.games.router import router as games_router
from t4g.health.router import router as health_router
from t4g.ledger.router import router as points_router
from t4g.middleware import setup_middleware
from t4g.nfc.router import router as nfc_router
from t4g.redis_client import close_redis, init_redis
from t4g.shares.router import router as shares_router
from t4g.tokens.router import router as tokens_router


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url, socket_timeout=settings.redis_socket_timeout_seconds)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="T4G API",
        description="Points economy backend: NFC check-ins, reward tokens, challenges and mini-games",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(nfc_router)
    app.include_router(tokens_router)
    app.include_router(challenges_router)
    app.include_router(games_router)
    app.include_router(shares_router)
    app.include_router(points_router)

    return app


app = create_app()
