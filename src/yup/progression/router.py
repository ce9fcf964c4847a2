"""Progression API endpoints.

Thin adapter over the engine. No auth here: user ids are path parameters
supplied by the gateway.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from yup.config import get_settings
from yup.dependencies import get_catalog, get_db, get_lifecycle
from yup.progression import ledger, quest_graph, specialization
from yup.progression.catalog import ComponentCatalog
from yup.progression.level_curve import get_xp_snapshot, list_levels
from yup.progression.maneuver import calculate_maneuver_xp, describe
from yup.progression.schemas import (
    AllLevelsResponse,
    BreakdownResponse,
    ComponentsResponse,
    LeaderboardResponse,
    LevelEntry,
    ManeuverPayload,
    QuestHistoryResponse,
    QuestListResponse,
    QuestProgressResponse,
    QuestStatsResponse,
    QuestUnlockedResponse,
    UserSpecializationsResponse,
    UserXPResponse,
    VideoDeletedEvent,
    VideoDeletedResponse,
    VideoPublishedEvent,
    VideoPublishedResponse,
    XPHistoryResponse,
    XPSnapshotResponse,
)
from yup.progression.video_events import VideoLifecycle

router = APIRouter(prefix="/api/v1", tags=["Progression"])


# ── Catalog & calculator ──


@router.post("/maneuvers/preview", response_model=BreakdownResponse)
async def preview_maneuver(
    payload: ManeuverPayload,
    catalog: ComponentCatalog = Depends(get_catalog),
):
    """Calculate a maneuver's XP without awarding anything."""
    breakdown = await calculate_maneuver_xp(catalog, payload.model_dump())
    return BreakdownResponse(**breakdown.as_dict(), description=describe(breakdown))


@router.get("/components", response_model=ComponentsResponse)
async def list_components(catalog: ComponentCatalog = Depends(get_catalog)):
    """All selectable components grouped by division."""
    snapshot = await catalog.load()
    return ComponentsResponse(divisions=snapshot.as_dict(), stats=snapshot.stats())


@router.get("/levels", response_model=AllLevelsResponse)
async def get_levels():
    """The full level table (requirement and cumulative XP per level)."""
    return AllLevelsResponse(levels=[LevelEntry(**level) for level in list_levels()])


@router.get("/xp/snapshot", response_model=XPSnapshotResponse)
async def xp_snapshot(total: int = Query(0)):
    """Level snapshot for an arbitrary total (clamped to the cap)."""
    return XPSnapshotResponse(**get_xp_snapshot(total))


# ── User XP ──


@router.get("/users/{user_id}/xp", response_model=UserXPResponse)
async def get_user_xp(user_id: int, db: AsyncSession = Depends(get_db)):
    return UserXPResponse(**await ledger.get_user_snapshot(db, user_id))


@router.get("/users/{user_id}/xp/history", response_model=XPHistoryResponse)
async def get_user_xp_history(
    user_id: int,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Paginated XP ledger, newest first."""
    return XPHistoryResponse(**await ledger.get_xp_history(db, user_id, page, per_page))


# ── Specializations ──


@router.get("/users/{user_id}/specializations", response_model=UserSpecializationsResponse)
async def get_user_specializations(user_id: int, db: AsyncSession = Depends(get_db)):
    specs = await specialization.get_user_specializations(db, user_id)
    return UserSpecializationsResponse(user_id=user_id, specializations=specs)


@router.get("/specializations/{track}/leaderboard", response_model=LeaderboardResponse)
async def get_specialization_leaderboard(
    track: str,
    limit: int | None = Query(None, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    limit = limit or get_settings().leaderboard_limit_default
    entries = await specialization.get_specialization_leaderboard(db, track, limit)
    return LeaderboardResponse(specialization=track, entries=entries)


# ── Quests ──


@router.get("/users/{user_id}/skill-tree/{track}")
async def get_skill_tree(user_id: int, track: str, db: AsyncSession = Depends(get_db)) -> dict:
    """Grid layout of a specialization's quest tree with per-node status."""
    return await quest_graph.get_skill_tree(db, user_id, track)


@router.get("/users/{user_id}/quests/recommended", response_model=QuestListResponse)
async def get_recommended_quests(
    user_id: int,
    limit: int | None = Query(None, ge=1, le=50),
    track: str | None = Query(None, alias="specialization"),
    db: AsyncSession = Depends(get_db),
):
    limit = limit or get_settings().recommendation_limit_default
    quests = await quest_graph.get_recommended_quests(db, user_id, limit, track)
    return QuestListResponse(quests=quests)


@router.get("/users/{user_id}/quests/retries", response_model=QuestListResponse)
async def get_suggested_retries(
    user_id: int,
    limit: int | None = Query(None, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
):
    limit = limit or get_settings().recommendation_limit_default
    return QuestListResponse(quests=await quest_graph.get_suggested_retries(db, user_id, limit))


@router.get("/users/{user_id}/quests/stats", response_model=QuestStatsResponse)
async def get_user_quest_stats(user_id: int, db: AsyncSession = Depends(get_db)):
    return QuestStatsResponse(**await quest_graph.get_user_quest_stats(db, user_id))


@router.get("/users/{user_id}/quests/{node_id}/unlocked", response_model=QuestUnlockedResponse)
async def check_quest_unlocked(user_id: int, node_id: str, db: AsyncSession = Depends(get_db)):
    unlocked = await quest_graph.check_unlocked(db, user_id, node_id)
    return QuestUnlockedResponse(node_id=node_id, unlocked=unlocked)


@router.post("/users/{user_id}/quests/{node_id}/unlock", response_model=QuestProgressResponse)
async def unlock_quest(user_id: int, node_id: str, db: AsyncSession = Depends(get_db)):
    """Mark a quest as available. 409 while its prerequisites are unmet."""
    progress = await quest_graph.unlock(db, user_id, node_id)
    await db.commit()
    return QuestProgressResponse(**progress)


@router.get("/users/{user_id}/quests/{node_id}/history", response_model=QuestHistoryResponse)
async def get_quest_history(user_id: int, node_id: str, db: AsyncSession = Depends(get_db)):
    return QuestHistoryResponse(**await quest_graph.get_quest_history(db, user_id, node_id))


@router.get("/users/{user_id}/quests/{node_id}/evolution")
async def get_quest_evolution(user_id: int, node_id: str, db: AsyncSession = Depends(get_db)) -> dict:
    """First, last and best attempts with the improvement between them."""
    return await quest_graph.get_quest_evolution(db, user_id, node_id)


# ── Admin ──


@router.post("/admin/components/invalidate")
async def invalidate_components(catalog: ComponentCatalog = Depends(get_catalog)) -> dict[str, str]:
    """Drop the cached catalog after component edits."""
    catalog.invalidate()
    return {"status": "invalidated"}


# ── Video events ──


@router.post("/events/video-published", response_model=VideoPublishedResponse)
async def video_published(
    event: VideoPublishedEvent,
    lifecycle: VideoLifecycle = Depends(get_lifecycle),
):
    return await lifecycle.on_video_published(event.model_dump())


@router.post("/events/video-deleted", response_model=VideoDeletedResponse)
async def video_deleted(
    event: VideoDeletedEvent,
    lifecycle: VideoLifecycle = Depends(get_lifecycle),
):
    return await lifecycle.on_video_deleted(event.model_dump())
