"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from habitcircle.auth.router import router as auth_router
from habitcircle.config import get_settings
from habitcircle.database import close_db, init_db
from habitcircle.friends.router import router as friends_router
from habitcircle.habits.router import router as habits_router
from habitcircle.health.router import router as health_router
from habitcircle.middleware import setup_middleware
from habitcircle.redis_client import close_redis, init_redis
from habitcircle.users.router import router as users_router


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url, settings.redis_max_connections)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Habit Circle API",
        description="Track daily habits and follow your friends' progress",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(friends_router)
    app.include_router(habits_router)

    return app


app = create_app()
