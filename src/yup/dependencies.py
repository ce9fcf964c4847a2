"""Shared FastAPI dependencies."""

from collections.abc import AsyncGenerator

from fastapi import Request

from yup.database import get_session as _get_session
from yup.progression.catalog import ComponentCatalog
from yup.progression.video_events import VideoLifecycle
from yup.redis_client import get_redis_or_none

get_db = _get_session


async def get_redis_dep() -> AsyncGenerator[object | None, None]:
    """Yield the Redis client (None when publishing is disabled)."""
    yield get_redis_or_none()


def get_catalog(request: Request) -> ComponentCatalog:
    return request.app.state.catalog


def get_lifecycle(request: Request) -> VideoLifecycle:
    return request.app.state.lifecycle
