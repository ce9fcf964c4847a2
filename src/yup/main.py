"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from yup.config import get_settings
from yup.database import close_db, get_session_factory, init_db
from yup.health.router import router as health_router
from yup.middleware import setup_middleware
from yup.progression.catalog import ComponentCatalog
from yup.progression.router import router as progression_router
from yup.progression.seed import seed_components, seed_quest_tree
from yup.progression.tasks import BackgroundTaskRunner
from yup.progression.video_events import VideoLifecycle
from yup.redis_client import close_redis, get_redis_or_none, init_redis

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    if settings.redis_url:
        await init_redis(settings.redis_url)

    session_factory = get_session_factory()

    # Seed starter catalog and quest tree (idempotent)
    try:
        async with session_factory() as db:
            await seed_components(db)
            await seed_quest_tree(db)
    except Exception:
        logger.warning("Progression seeding failed (tables may not exist yet)", exc_info=True)

    catalog = ComponentCatalog(
        session_factory,
        ttl_seconds=settings.catalog_cache_ttl_seconds,
        data_file=settings.components_data_file or None,
    )
    tasks = BackgroundTaskRunner()
    app.state.catalog = catalog
    app.state.tasks = tasks
    app.state.lifecycle = VideoLifecycle(session_factory, catalog, get_redis_or_none(), tasks, settings)

    yield

    await tasks.shutdown()
    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Y'UP Progression API",
        description="Trick XP, levels, specializations and quest trees",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(progression_router)

    return app


app = create_app()
