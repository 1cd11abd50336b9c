"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from communiclaw.admin.router import router as admin_router
from communiclaw.agents.router import router as agent_router
from communiclaw.billing.router import router as billing_router
from communiclaw.campaigns.router import router as campaigns_router
from communiclaw.communities.router import router as communities_router
from communiclaw.config import get_settings
from communiclaw.database import close_db, init_db
from communiclaw.health.router import router as health_router
from communiclaw.middleware import setup_middleware
from communiclaw.redis_client import close_redis, init_redis
from communiclaw.users.router import router as users_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    if settings.redis_url:
        await init_redis(
            settings.redis_url,
            max_connections=settings.redis_max_connections,
            socket_timeout=settings.redis_socket_timeout_seconds,
        )
    else:
        logger.info("redis_disabled")

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Communiclaw API",
        description="Backend API for Communiclaw: giveaways, allowlists and presales for web3 communities",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(communities_router)
    app.include_router(campaigns_router)
    app.include_router(users_router)
    app.include_router(agent_router)
    app.include_router(billing_router)
    app.include_router(admin_router)

    return app


app = create_app()
