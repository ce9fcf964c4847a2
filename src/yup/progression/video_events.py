"""Video lifecycle orchestrator: wires the engine to "published" and "deleted" events.

Each event runs as one short transaction (retried on transient database
errors). Quest bookkeeping runs afterwards in the background with its own
session so a quest failure never undoes or delays the XP award.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime, timezone
from typing import Any, TypeVar

from sqlalchemy import delete, select
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from yup.config import Settings
from yup.db.models import QuestCompletion, QuestNode, ReconciliationFlag
from yup.progression import ledger, quest_graph, specialization
from yup.progression.catalog import ComponentCatalog
from yup.progression.errors import InvalidPayload, ProgressionUnavailable, QuestNodeNotFound
from yup.progression.maneuver import calculate_maneuver_xp, describe
from yup.progression.tasks import BackgroundTaskRunner

logger = logging.getLogger(__name__)

T = TypeVar("T")

_LOCK_MARKERS = ("lock timeout", "lock_timeout", "deadlock", "could not obtain lock", "database is locked")


def is_transient(exc: BaseException) -> bool:
    """Connection drops and lock timeouts are worth retrying; everything else is not."""
    if not isinstance(exc, DBAPIError):
        return False
    if exc.connection_invalidated or isinstance(exc, OperationalError):
        return True
    message = str(exc.orig or exc).lower()
    return any(marker in message for marker in _LOCK_MARKERS)


def _require(event: Mapping[str, Any], key: str) -> Any:
    value = event.get(key)
    if value in (None, ""):
        raise InvalidPayload(f"{key} is required")
    return value


class VideoLifecycle:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        catalog: ComponentCatalog,
        redis: object | None,
        tasks: BackgroundTaskRunner,
        settings: Settings,
    ) -> None:
        self._session_factory = session_factory
        self._catalog = catalog
        self._redis = redis
        self._tasks = tasks
        self._retry_attempts = max(settings.award_retry_attempts, 1)
        self._retry_backoff = settings.award_retry_backoff_seconds

    async def run_unit(self, work: Callable[[AsyncSession], Awaitable[T]], name: str) -> T:
        """Run ``work`` in a fresh transaction, retrying transient failures.

        The transaction is rolled back before every retry so a unit is never
        partially applied. Input errors propagate on the first attempt.
        """
        for attempt in range(1, self._retry_attempts + 1):
            async with self._session_factory() as db:
                try:
                    result = await work(db)
                    await db.commit()
                    return result
                except DBAPIError as exc:
                    await db.rollback()
                    if not is_transient(exc):
                        raise
                    if attempt == self._retry_attempts:
                        logger.error("%s failed after %d attempts", name, attempt, exc_info=True)
                        msg = f"{name} could not be completed, try again later"
                        raise ProgressionUnavailable(msg) from exc
                    logger.warning("%s hit a transient database error (attempt %d/%d), retrying",
                                   name, attempt, self._retry_attempts)
                except BaseException:
                    await db.rollback()
                    raise
            await asyncio.sleep(self._retry_backoff * attempt)

        # Unreachable: the final attempt either returns or raises.
        raise ProgressionUnavailable(f"{name} could not be completed")

    # -- published ----------------------------------------------------------

    async def on_video_published(self, event: Mapping[str, Any]) -> dict:
        """Award XP for a newly published video.

        Validation and catalog lookups happen before the transaction starts;
        quest completion is scheduled after it commits.
        """
        user_id = int(_require(event, "user_id"))
        video_id = str(_require(event, "video_id"))
        quest_node_id = event.get("quest_node_id") or None
        trick_id = event.get("trick_id") or None
        challenge_id = event.get("challenge_id") or None

        breakdown = await calculate_maneuver_xp(self._catalog, event.get("maneuver_payload"))
        track = await self._resolve_track(event.get("specialization") or None, quest_node_id)
        maneuver_total = breakdown.maneuver_total

        async def work(db: AsyncSession) -> dict:
            result: dict[str, Any] = {
                "user": await ledger.award(
                    db,
                    self._redis,
                    user_id,
                    maneuver_total,
                    video_id=video_id,
                    contributions=breakdown.contributions(),
                    source=ledger.SOURCE_VIDEO_UPLOAD,
                    context={
                        "type": "video_upload",
                        "video_id": video_id,
                        "challenge_id": challenge_id,
                        "quest_node_id": quest_node_id,
                        "components_used": breakdown.components_used,
                    },
                ),
            }
            if track is not None:
                result["specialization"] = await specialization.award(
                    db, user_id, track, maneuver_total, trick_id=trick_id,
                )
            return result

        result = await self.run_unit(work, f"award for video {video_id}")
        logger.info("Awarded %d XP to user %s for video %s", maneuver_total, user_id, video_id)

        response: dict[str, Any] = {
            "maneuver": {**breakdown.as_dict(), "description": describe(breakdown)},
            **result,
        }
        if quest_node_id:
            self._tasks.submit(
                self._complete_quest(user_id, quest_node_id, video_id, maneuver_total),
                name=f"quest-completion:{video_id}",
            )
            response["quest"] = {"status": "scheduled", "node_id": quest_node_id}
        return response

    async def _resolve_track(self, explicit: str | None, quest_node_id: str | None) -> str | None:
        if explicit:
            return specialization.validate_track(explicit)
        if not quest_node_id:
            return None
        async with self._session_factory() as db:
            track = (await db.execute(
                select(QuestNode.specialization).where(QuestNode.id == quest_node_id)
            )).scalar_one_or_none()
        if track is None:
            raise QuestNodeNotFound(quest_node_id)
        return track

    async def _complete_quest(self, user_id: int, node_id: str, video_id: str, video_xp: int) -> None:
        async def work(db: AsyncSession) -> dict:
            completion = await quest_graph.complete_quest(db, self._redis, user_id, node_id, video_id, video_xp)
            completion["reconciled"] = await quest_graph.reconcile_withheld_bonuses(db, self._redis, user_id)
            return completion

        try:
            completion = await self.run_unit(work, f"quest completion {node_id} for video {video_id}")
        except Exception as exc:
            logger.exception("Quest completion failed for user %s node %s video %s", user_id, node_id, video_id)
            await self._flag(user_id, "quest_completion_failed", exc, node_id=node_id, video_id=video_id)
            return

        logger.info(
            "User %s completed quest %s (attempt %d, status %s)",
            user_id, node_id, completion["attempt_number"], completion["status"],
        )

    # -- deleted ------------------------------------------------------------

    async def on_video_deleted(self, event: Mapping[str, Any]) -> dict:
        """Revoke a deleted video's XP. Revocation failures degrade, never block the delete."""
        user_id = int(_require(event, "user_id"))
        video_id = str(_require(event, "video_id"))
        quest_node_id = event.get("quest_node_id") or None

        status = "ok"
        revoked = 0
        try:
            revoked = await self.run_unit(
                lambda db: ledger.revoke(db, user_id, video_id),
                f"revoke for video {video_id}",
            )
        except Exception as exc:
            logger.error("Failed to revoke XP for user %s video %s", user_id, video_id, exc_info=True)
            await self._flag(user_id, "revocation_failed", exc, video_id=video_id)
            status = "degraded"

        self._tasks.submit(
            self._cleanup_quests(user_id, video_id, quest_node_id),
            name=f"quest-recalculation:{video_id}",
        )
        return {"revoked": revoked, "status": status, "quest": {"status": "scheduled"}}

    async def _cleanup_quests(self, user_id: int, video_id: str, quest_node_id: str | None) -> None:
        async def work(db: AsyncSession) -> list[str]:
            node_ids = set((await db.execute(
                select(QuestCompletion.node_id).where(
                    QuestCompletion.user_id == user_id,
                    QuestCompletion.video_id == video_id,
                )
            )).scalars().all())
            if quest_node_id:
                node_ids.add(quest_node_id)

            await db.execute(
                delete(QuestCompletion).where(
                    QuestCompletion.user_id == user_id,
                    QuestCompletion.video_id == video_id,
                )
            )
            for node_id in sorted(node_ids):
                if await db.get(QuestNode, node_id) is not None:
                    await quest_graph.recalculate_quest_progress(db, user_id, node_id)
            await quest_graph.reconcile_withheld_bonuses(db, self._redis, user_id)
            return sorted(node_ids)

        try:
            node_ids = await self.run_unit(work, f"quest recalculation for video {video_id}")
        except Exception as exc:
            logger.exception("Quest recalculation failed for user %s video %s", user_id, video_id)
            await self._flag(user_id, "quest_recalculation_failed", exc, node_id=quest_node_id, video_id=video_id)
            return

        if node_ids:
            logger.info("Recalculated quest progress for user %s nodes %s", user_id, ", ".join(node_ids))

    async def _flag(
        self,
        user_id: int,
        reason: str,
        exc: BaseException,
        node_id: str | None = None,
        video_id: str | None = None,
    ) -> None:
        """Leave a reconciliation flag for an operator. Never raises."""
        try:
            async with self._session_factory() as db:
                db.add(ReconciliationFlag(
                    user_id=user_id,
                    node_id=node_id,
                    video_id=video_id,
                    reason=reason,
                    detail=f"{type(exc).__name__}: {exc}"[:2000],
                    created_at=datetime.now(timezone.utc),
                ))
                await db.commit()
        except Exception:
            logger.exception("Could not write reconciliation flag %s for user %s", reason, user_id)
