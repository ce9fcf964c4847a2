"""Pydantic request and response models for progression endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel


# --- Maneuvers ---


class ManeuverPayload(BaseModel):
    """Division selections are left optional so missing ones surface as MissingDivision."""

    approach: str | None = None
    entry: str | None = None
    spins: str | None = None
    grabs: str | None = None
    base_moves: str | None = None
    modifiers: Any = None


class LineItemResponse(BaseModel):
    component_id: str
    name: str
    xp: int


class BreakdownResponse(BaseModel):
    approach: LineItemResponse
    entry: LineItemResponse
    spins: LineItemResponse
    grabs: LineItemResponse
    base_moves: LineItemResponse
    modifiers: list[LineItemResponse] = []
    maneuver_total: int
    components_used: list[str]
    description: str


class ComponentResponse(BaseModel):
    division: str
    component_id: str
    display_name: str
    description: str
    xp_value: int
    metadata: dict = {}


class ComponentsResponse(BaseModel):
    divisions: dict[str, list[ComponentResponse]]
    stats: dict


# --- Levels / XP ---


class LevelEntry(BaseModel):
    level: int
    xp_required: int
    cumulative: int


class AllLevelsResponse(BaseModel):
    levels: list[LevelEntry]


class XPSnapshotResponse(BaseModel):
    level: int
    current: int
    next: int
    remaining: int
    total: int
    progress: float
    cap: int
    max_level: int


class UserXPResponse(XPSnapshotResponse):
    user_id: int


class AwardResultResponse(BaseModel):
    awarded: int
    total: int
    current: int
    next: int
    remaining: int
    progress: float
    cap: int
    max_level: int
    level: int
    previous_level: int
    leveled_up: bool
    level_ups: int
    source: str


class XPHistoryEntry(BaseModel):
    id: int
    video_id: str | None = None
    amount: int
    source: str
    contributions: list[dict] = []
    context: dict | None = None
    created_at: datetime | None = None


class XPHistoryResponse(BaseModel):
    entries: list[XPHistoryEntry]
    total: int
    page: int
    per_page: int


# --- Specializations ---


class SpecializationProgress(BaseModel):
    current: int
    needed: int
    percentage: int
    is_max_level: bool


class SpecializationResponse(BaseModel):
    specialization: str
    name: str
    description: str
    level: int
    level_title: str
    xp_total: int
    progress: SpecializationProgress
    multiplier: float
    tricks_completed: int
    best_trick: dict
    created_at: datetime | None = None
    updated_at: datetime | None = None


class UserSpecializationsResponse(BaseModel):
    user_id: int
    specializations: list[SpecializationResponse]


class SpecializationAwardResponse(BaseModel):
    specialization: str
    xp_awarded: int
    multiplier: float
    level: int
    level_title: str
    xp_total: int
    progress: SpecializationProgress
    leveled_up: bool
    previous_level: int
    tricks_completed: int
    is_best_trick: bool


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: int
    username: str
    profile_image_url: str | None = None
    level: int
    level_title: str
    xp_total: int
    tricks_completed: int


class LeaderboardResponse(BaseModel):
    specialization: str
    entries: list[LeaderboardEntry]


# --- Quests ---


class QuestUnlockedResponse(BaseModel):
    node_id: str
    unlocked: bool


class QuestProgressResponse(BaseModel):
    node_id: str
    status: str
    unlocked_at: datetime | None = None
    times_completed: int = 0
    first_completed_at: datetime | None = None
    last_completed_at: datetime | None = None
    best_video_id: str | None = None
    best_video_xp: int = 0


class QuestHistoryResponse(BaseModel):
    node_id: str
    total_attempts: int
    history: list[dict]


class QuestListResponse(BaseModel):
    quests: list[dict]


class QuestStatsResponse(BaseModel):
    quests_completed: int
    quests_available: int
    total_attempts: int
    total_bonus_xp: int
    first_time_completions: int


# --- Events ---


class VideoPublishedEvent(BaseModel):
    user_id: int
    video_id: str
    maneuver_payload: dict[str, Any]
    challenge_id: str | None = None
    quest_node_id: str | None = None
    specialization: str | None = None
    trick_id: str | None = None


class VideoPublishedResponse(BaseModel):
    maneuver: BreakdownResponse
    user: AwardResultResponse
    specialization: SpecializationAwardResponse | None = None
    quest: dict | None = None


class VideoDeletedEvent(BaseModel):
    user_id: int
    video_id: str
    quest_node_id: str | None = None


class VideoDeletedResponse(BaseModel):
    revoked: int
    status: str
    quest: dict | None = None
