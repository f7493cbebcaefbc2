"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from stepcoin.activity.router import router as activity_router
from stepcoin.activity.sources import build_activity_source
from stepcoin.challenges.router import router as challenges_router
from stepcoin.challenges.seed import demo_challenges, seed_challenges
from stepcoin.config import get_settings
from stepcoin.database import close_db, get_session, init_db
from stepcoin.health.router import router as health_router
from stepcoin.ledger.router import admin_router as wallet_admin_router
from stepcoin.ledger.router import router as wallet_router
from stepcoin.middleware import setup_middleware
from stepcoin.redis_client import close_redis, init_redis

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    if settings.redis_url:
        await init_redis(settings.redis_url)

    # Seed the demo catalog (idempotent)
    if settings.seed_demo_challenges:
        try:
            async for db in get_session():
                await seed_challenges(db, demo_challenges(), keep_existing_dates=True)
                break
        except Exception:
            logger.warning("Demo challenge seeding failed (tables may not exist yet)", exc_info=True)

    yield

    await app.state.activity_source.aclose()
    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="StepCoin API",
        description="Backend API for StepCoin — earn coins for walking, spend them on fitness challenges",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.activity_source = build_activity_source(settings)

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(wallet_router)
    app.include_router(activity_router)
    app.include_router(challenges_router)
    app.include_router(wallet_admin_router)

    return app


app = create_app()
