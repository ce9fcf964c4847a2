"""Fire-and-forget work that must not block or fail the request that scheduled it."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[str, BaseException], Awaitable[None]]


class BackgroundTaskRunner:
    """Owns background asyncio tasks until they finish.

    Failures are logged and passed to ``on_error``; they never propagate to
    the code that submitted the work. ``drain()`` waits for everything still
    pending, used on shutdown and in tests.
    """

    def __init__(self, on_error: ErrorCallback | None = None, shutdown_timeout: float = 10.0) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()
        self._on_error = on_error
        self._shutdown_timeout = shutdown_timeout
        self._closed = False

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task[Any]:
        if self._closed:
            coro.close()
            msg = f"Task runner is shut down; refusing {name}"
            raise RuntimeError(msg)

        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        logger.debug("Scheduled background task %s", name)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("Background task %s was cancelled", task.get_name())
            return

        exc = task.exception()
        if exc is None:
            return

        logger.error("Background task %s failed", task.get_name(), exc_info=exc)
        if self._on_error is not None:
            follow_up = asyncio.ensure_future(self._report(task.get_name(), exc))
            self._tasks.add(follow_up)
            follow_up.add_done_callback(self._tasks.discard)

    async def _report(self, name: str, exc: BaseException) -> None:
        try:
            await self._on_error(name, exc)  # type: ignore[misc]
        except Exception:
            logger.exception("Error callback for background task %s failed", name)

    async def drain(self) -> None:
        """Wait until no background work is pending, including error reports."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Stop accepting work, then wait for pending tasks up to the timeout."""
        self._closed = True
        if not self._tasks:
            return
        try:
            await asyncio.wait_for(self.drain(), timeout=self._shutdown_timeout)
        except TimeoutError:
            logger.warning("Cancelling %d background tasks still running at shutdown", len(self._tasks))
            for task in list(self._tasks):
                task.cancel()
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
