"""FastAPI application factory."""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from unihub.config import get_settings
from unihub.database import close_db, get_session_factory, init_db
from unihub.gamification.engine import GamificationEngine
from unihub.gamification.fanout import FanoutDispatcher
from unihub.gamification.router import router as gamification_router
from unihub.gamification.seed import seed_badge_tiers, verify_ladder
from unihub.health.router import router as health_router
from unihub.middleware import setup_middleware
from unihub.redis_client import close_redis, init_redis
from unihub.ws.bridge import LocalBridge, PubSubBridge
from unihub.ws.manager import manager
from unihub.ws.publisher import InMemoryPublisher, RedisPublisher
from unihub.ws.router import router as ws_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    session_factory = get_session_factory()

    if settings.seed_badges_on_startup:
        # Idempotent; tables may not exist before the first migration
        try:
            async with session_factory() as db:
                await seed_badge_tiers(db)
        except Exception:
            logger.warning("Badge seeding failed (tables may not exist yet)", exc_info=True)

    try:
        async with session_factory() as db:
            await verify_ladder(db)
    except Exception:
        logger.warning("Badge ladder check failed", exc_info=True)

    if settings.fanout_backend == "redis":
        redis = await init_redis(settings.redis_url)
        publisher = RedisPublisher(redis)
        bridge = PubSubBridge(redis)
    else:
        publisher = InMemoryPublisher()
        bridge = LocalBridge(publisher)

    dispatcher = FanoutDispatcher(publisher)
    app.state.gamification = GamificationEngine.from_settings(session_factory, dispatcher, settings)

    # Topic -> WebSocket bridge
    bridge_task = asyncio.create_task(bridge.start())

    yield

    await dispatcher.drain()
    await manager.close_all()

    await bridge.stop()
    bridge_task.cancel()
    try:
        await bridge_task
    except asyncio.CancelledError:
        pass

    await close_db()
    if settings.fanout_backend == "redis":
        await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="UniHub Gamification API",
        description="Points, badge tiers and leaderboards for the UniHub community platform",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(gamification_router)
    app.include_router(ws_router)

    return app


app = create_app()
