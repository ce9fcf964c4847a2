"""Specialization tracks: per-track levels 1-10 with XP multipliers."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from yup.db.base import upsert
from yup.db.models import User, UserSpecialization
from yup.progression.errors import UnknownSpecialization

logger = logging.getLogger(__name__)

TRACKS: tuple[str, ...] = ("slider", "kicker", "surface")
MAX_LEVEL = 10

# Cumulative XP required to reach each level.
LEVEL_THRESHOLDS: dict[int, int] = {
    1: 0,
    2: 500,
    3: 1200,
    4: 2100,
    5: 3200,
    6: 4500,
    7: 6000,
    8: 8000,
    9: 10500,
    10: 22500,
}

# Applied to base trick XP at the level held *before* the award.
LEVEL_MULTIPLIERS: dict[int, float] = {
    1: 1.0,
    2: 1.05,
    3: 1.08,
    4: 1.11,
    5: 1.14,
    6: 1.17,
    7: 1.20,
    8: 1.23,
    9: 1.26,
    10: 1.30,
}

LEVEL_TITLES: dict[int, str] = {
    1: "Apprentice",
    2: "Novice",
    3: "Intermediate",
    4: "Skilled",
    5: "Advanced",
    6: "Expert",
    7: "Master",
    8: "Elite",
    9: "Champion",
    10: "Legend",
}

TRACK_INFO: dict[str, dict[str, str]] = {
    "slider": {"name": "Slider Specialist", "description": "Master of rails and slider obstacles"},
    "kicker": {"name": "Kicker Specialist", "description": "Expert in ramps and kickers"},
    "surface": {"name": "Surface Specialist", "description": "Pro at surface tricks and air maneuvers"},
}


def validate_track(track: str) -> str:
    if track not in TRACKS:
        raise UnknownSpecialization(track)
    return track


def calculate_level(total_xp: int) -> int:
    """Highest level whose threshold is at or below ``total_xp``."""
    for level in range(MAX_LEVEL, 0, -1):
        if total_xp >= LEVEL_THRESHOLDS[level]:
            return level
    return 1


def get_multiplier(level: int) -> float:
    return LEVEL_MULTIPLIERS.get(level, 1.0)


def get_level_title(level: int) -> str:
    return LEVEL_TITLES.get(level, "Unknown")


def get_track_info(track: str) -> dict[str, str]:
    return TRACK_INFO.get(track, {"name": "Unknown", "description": ""})


def level_progress(total_xp: int, level: int) -> dict:
    """Progress toward the next level; percentage is a rounded 0-100 integer."""
    if level >= MAX_LEVEL:
        return {
            "current": total_xp - LEVEL_THRESHOLDS[MAX_LEVEL],
            "needed": 0,
            "percentage": 100,
            "is_max_level": True,
        }

    into_level = total_xp - LEVEL_THRESHOLDS[level]
    needed = LEVEL_THRESHOLDS[level + 1] - LEVEL_THRESHOLDS[level]
    percentage = min(100.0, into_level / needed * 100)
    return {
        "current": into_level,
        "needed": needed,
        "percentage": int(percentage + 0.5),
        "is_max_level": False,
    }


async def initialize_user_specializations(db: AsyncSession, user_id: int) -> None:
    """Create level-1 rows for every track; existing rows are left untouched."""
    now = datetime.now(timezone.utc)
    for track in TRACKS:
        stmt = upsert(db, UserSpecialization).values(
            user_id=user_id,
            specialization=track,
            level=1,
            xp_total=0,
            xp_current=0,
            tricks_completed=0,
            best_trick_xp=0,
            created_at=now,
            updated_at=now,
        )
        await db.execute(stmt.on_conflict_do_nothing(index_elements=["user_id", "specialization"]))
    await db.flush()
    logger.info("Specializations initialized for user %s", user_id)


async def _lock_specialization(db: AsyncSession, user_id: int, track: str) -> UserSpecialization | None:
    result = await db.execute(
        select(UserSpecialization)
        .where(
            UserSpecialization.user_id == user_id,
            UserSpecialization.specialization == track,
        )
        .with_for_update()
    )
    return result.scalar_one_or_none()


async def award(
    db: AsyncSession,
    user_id: int,
    track: str,
    base_xp: int,
    trick_id: str | None = None,
) -> dict:
    """Award track XP scaled by the current level's multiplier. Caller commits."""
    validate_track(track)

    spec = await _lock_specialization(db, user_id, track)
    if spec is None:
        await initialize_user_specializations(db, user_id)
        spec = await _lock_specialization(db, user_id, track)
        if spec is None:
            msg = f"Specialization {track} missing for user {user_id} after initialization"
            raise RuntimeError(msg)

    previous_level = spec.level
    multiplier = get_multiplier(previous_level)
    xp_to_award = int(base_xp * multiplier + 0.5)

    new_total = spec.xp_total + xp_to_award
    new_level = calculate_level(new_total)
    is_best_trick = xp_to_award > (spec.best_trick_xp or 0)

    spec.xp_total = new_total
    spec.level = new_level
    spec.xp_current = new_total - LEVEL_THRESHOLDS[new_level]
    spec.tricks_completed += 1
    if is_best_trick:
        spec.best_trick_id = trick_id
        spec.best_trick_xp = xp_to_award
    spec.updated_at = datetime.now(timezone.utc)
    await db.flush()

    if new_level > previous_level:
        logger.info("User %s reached %s level %d", user_id, track, new_level)

    return {
        "specialization": track,
        "xp_awarded": xp_to_award,
        "multiplier": multiplier,
        "level": new_level,
        "level_title": get_level_title(new_level),
        "xp_total": new_total,
        "progress": level_progress(new_total, new_level),
        "leveled_up": new_level > previous_level,
        "previous_level": previous_level,
        "tricks_completed": spec.tricks_completed,
        "is_best_trick": is_best_trick,
    }


def _serialize(spec: UserSpecialization) -> dict:
    info = get_track_info(spec.specialization)
    return {
        "specialization": spec.specialization,
        "name": info["name"],
        "description": info["description"],
        "level": spec.level,
        "level_title": get_level_title(spec.level),
        "xp_total": spec.xp_total,
        "progress": level_progress(spec.xp_total, spec.level),
        "multiplier": get_multiplier(spec.level),
        "tricks_completed": spec.tricks_completed,
        "best_trick": {"id": spec.best_trick_id, "xp": spec.best_trick_xp},
        "created_at": spec.created_at,
        "updated_at": spec.updated_at,
    }


async def get_user_specializations(db: AsyncSession, user_id: int) -> list[dict]:
    """All track rows for a user, ordered by track name. Empty until first award."""
    result = await db.execute(
        select(UserSpecialization)
        .where(UserSpecialization.user_id == user_id)
        .order_by(UserSpecialization.specialization)
    )
    return [_serialize(spec) for spec in result.scalars()]


async def get_specialization_leaderboard(db: AsyncSession, track: str, limit: int = 10) -> list[dict]:
    """Top users on a track by level, then total XP, then user id."""
    validate_track(track)
    limit = min(max(limit, 1), 100)

    result = await db.execute(
        select(UserSpecialization, User)
        .join(User, UserSpecialization.user_id == User.id)
        .where(UserSpecialization.specialization == track)
        .order_by(
            UserSpecialization.level.desc(),
            UserSpecialization.xp_total.desc(),
            UserSpecialization.user_id.asc(),
        )
        .limit(limit)
    )

    return [
        {
            "rank": rank,
            "user_id": row.UserSpecialization.user_id,
            "username": row.User.username,
            "profile_image_url": row.User.profile_image_url,
            "level": row.UserSpecialization.level,
            "level_title": get_level_title(row.UserSpecialization.level),
            "xp_total": row.UserSpecialization.xp_total,
            "tricks_completed": row.UserSpecialization.tricks_completed,
        }
        for rank, row in enumerate(result, start=1)
    ]
