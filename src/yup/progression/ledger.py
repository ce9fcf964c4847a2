"""Leveling ledger: award and revoke XP against a user's progression row.

Every read-modify-write of ``user_progression`` runs under a row lock held
for the rest of the caller's transaction. Functions here only flush; the
caller owns the commit so the ledger append and the progression update land
atomically.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from yup.db.base import upsert
from yup.db.models import UserProgression, XPLedger
from yup.progression.level_curve import clamp_total, compute_level_state, get_xp_snapshot
from yup.progression.notifications import emit_xp_notification

logger = logging.getLogger(__name__)

SOURCE_VIDEO_UPLOAD = "video_upload"
SOURCE_QUEST_COMPLETION = "quest_completion"
SOURCE_REVOCATION = "video_deleted"


def sanitize_contributions(contributions: Iterable[Any] | None) -> list[dict]:
    """Keep positive, labelled contribution items in ledger format."""
    sanitized: list[dict] = []
    for item in contributions or []:
        if not isinstance(item, dict):
            continue
        try:
            value = int(item.get("value") or 0)
        except (TypeError, ValueError):
            continue
        code = item.get("code")
        label = item.get("label")
        if value > 0 and code and label:
            sanitized.append({"code": str(code), "label": str(label), "value": value})
    return sanitized


async def get_or_create_progression(db: AsyncSession, user_id: int, lock: bool = True) -> UserProgression:
    """Fetch the user's progression row, creating it on first use.

    With ``lock`` the row is selected ``FOR UPDATE`` so concurrent awards for
    the same user serialize.
    """
    stmt = select(UserProgression).where(UserProgression.user_id == user_id)
    if lock:
        stmt = stmt.with_for_update()

    result = await db.execute(stmt)
    progression = result.scalar_one_or_none()
    if progression is not None:
        return progression

    # A concurrent first award may create the row first; DO NOTHING then lock it.
    await db.execute(
        upsert(db, UserProgression)
        .values(
            user_id=user_id,
            xp_total=0,
            xp_current=0,
            level=1,
            updated_at=datetime.now(timezone.utc),
        )
        .on_conflict_do_nothing(index_elements=["user_id"])
    )

    result = await db.execute(stmt)
    return result.scalar_one()


def fit_contributions(contributions: list[dict], limit: int) -> list[dict]:
    """Trim contribution items in order so their values sum to at most ``limit``."""
    fitted: list[dict] = []
    remaining = limit
    for item in contributions:
        if remaining <= 0:
            break
        value = min(item["value"], remaining)
        fitted.append({**item, "value": value})
        remaining -= value
    return fitted


async def award(
    db: AsyncSession,
    redis: object | None,
    user_id: int,
    amount: int,
    video_id: str | None = None,
    contributions: Iterable[Any] | None = None,
    source: str = SOURCE_VIDEO_UPLOAD,
    context: dict | None = None,
    notify: bool = True,
    log_entry: bool = True,
) -> dict:
    """Apply an XP delta (negative for revocation) and return the AwardResult.

    The ledger records the change actually applied after clamping to
    ``[0, XP_TOTAL_CAP]``, so revoking an award near the cap restores the
    previous total. Only positive changes append a ledger row and notify.
    A zero amount writes nothing.
    """
    amount = int(amount)
    if amount == 0:
        progression = None
        xp_total = clamp_total(await get_stored_total(db, user_id))
    else:
        progression = await get_or_create_progression(db, user_id)
        xp_total = clamp_total(progression.xp_total)
    previous_level = compute_level_state(xp_total)["level"]

    new_total = clamp_total(xp_total + amount)
    applied = new_total - xp_total

    if progression is not None and applied != 0:
        now = datetime.now(timezone.utc)
        xp_total = new_total
        state = compute_level_state(xp_total)

        progression.xp_total = xp_total
        progression.xp_current = state["current"]
        progression.level = state["level"]
        progression.updated_at = now

        if applied > 0 and log_entry:
            sanitized = fit_contributions(sanitize_contributions(contributions), applied)
            if applied < amount:
                context = {**(context or {}), "requested_amount": amount, "clamped_at_cap": True}
                logger.info("Award to user %s clamped at cap: %d of %d applied", user_id, applied, amount)
            db.add(XPLedger(
                user_id=user_id,
                video_id=video_id,
                amount=applied,
                source=source,
                contributions=sanitized,
                context=context,
                created_at=now,
            ))
            await db.flush()

            if notify:
                await emit_xp_notification(
                    db, redis, user_id, applied, previous_level, state["level"],
                    sanitized, source, video_id=video_id,
                )
        else:
            await db.flush()

    snapshot = get_xp_snapshot(xp_total)
    if snapshot["level"] > previous_level:
        logger.info("User %s leveled up %d -> %d", user_id, previous_level, snapshot["level"])

    return {
        "awarded": applied,
        "total": snapshot["total"],
        "current": snapshot["current"],
        "next": snapshot["next"],
        "remaining": snapshot["remaining"],
        "progress": snapshot["progress"],
        "cap": snapshot["cap"],
        "max_level": snapshot["max_level"],
        "level": snapshot["level"],
        "previous_level": previous_level,
        "leveled_up": snapshot["level"] > previous_level,
        "level_ups": max(snapshot["level"] - previous_level, 0),
        "source": source,
    }


async def _video_ledger_sum(db: AsyncSession, user_id: int, video_id: str) -> int:
    result = await db.execute(
        select(func.coalesce(func.sum(XPLedger.amount), 0)).where(
            XPLedger.user_id == user_id,
            XPLedger.video_id == video_id,
        )
    )
    return max(int(result.scalar_one() or 0), 0)


async def revoke(db: AsyncSession, user_id: int, video_id: str | None) -> int:
    """Reverse every ledger entry tied to ``(user_id, video_id)``; return the amount revoked.

    A video with no entries is a no-op and leaves no progression row behind.
    """
    if not user_id or not video_id:
        return 0

    if await _video_ledger_sum(db, user_id, video_id) == 0:
        return 0

    # Lock the progression row, then re-read the sum so concurrent revokes serialize.
    await get_or_create_progression(db, user_id)
    total_to_revoke = await _video_ledger_sum(db, user_id, video_id)
    if total_to_revoke == 0:
        return 0

    await award(
        db,
        None,
        user_id,
        -total_to_revoke,
        video_id=video_id,
        source=SOURCE_REVOCATION,
        notify=False,
        log_entry=False,
    )

    await db.execute(
        delete(XPLedger).where(
            XPLedger.user_id == user_id,
            XPLedger.video_id == video_id,
        )
    )
    await db.flush()

    logger.info("Revoked %d XP from user %s for video %s", total_to_revoke, user_id, video_id)
    return total_to_revoke


async def get_stored_total(db: AsyncSession, user_id: int) -> int:
    """Read the stored total without creating or locking the row."""
    result = await db.execute(
        select(UserProgression.xp_total).where(UserProgression.user_id == user_id)
    )
    return int(result.scalar_one_or_none() or 0)


async def get_user_snapshot(db: AsyncSession, user_id: int) -> dict:
    snapshot = get_xp_snapshot(await get_stored_total(db, user_id))
    snapshot["user_id"] = user_id
    return snapshot


async def verify_ledger(db: AsyncSession, user_id: int) -> dict:
    """Compare the stored total with the ledger sum (clamped at the cap)."""
    stored_total = await get_stored_total(db, user_id)
    result = await db.execute(
        select(func.coalesce(func.sum(XPLedger.amount), 0)).where(XPLedger.user_id == user_id)
    )
    ledger_sum = int(result.scalar_one() or 0)
    expected = clamp_total(ledger_sum)
    return {
        "user_id": user_id,
        "stored_total": stored_total,
        "ledger_sum": ledger_sum,
        "consistent": stored_total == expected,
    }


async def get_xp_history(db: AsyncSession, user_id: int, page: int = 1, per_page: int = 20) -> dict:
    """Paginated ledger entries, newest first."""
    page = max(page, 1)
    per_page = min(max(per_page, 1), 100)

    total = (await db.execute(
        select(func.count()).select_from(XPLedger).where(XPLedger.user_id == user_id)
    )).scalar_one()

    result = await db.execute(
        select(XPLedger)
        .where(XPLedger.user_id == user_id)
        .order_by(XPLedger.created_at.desc(), XPLedger.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    entries = [
        {
            "id": row.id,
            "video_id": row.video_id,
            "amount": row.amount,
            "source": row.source,
            "contributions": row.contributions or [],
            "context": row.context,
            "created_at": row.created_at,
        }
        for row in result.scalars()
    ]
    return {"entries": entries, "total": total, "page": page, "per_page": per_page}
