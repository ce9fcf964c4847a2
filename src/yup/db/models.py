"""ORM models for the progression engine.

Tables mirror alembic/versions/001_progression_tables.py. Column types come
from ``yup.db.base`` so the same metadata builds on PostgreSQL and SQLite.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from yup.db.base import Base, BigIntPK, JSONType


# ---------------------------------------------------------------------------
# Users (projection of the externally owned user record)
# ---------------------------------------------------------------------------


class User(Base):
    """Maps to the 'users' table. Owned by the account service."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    profile_image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, server_default=func.now()
    )


# ---------------------------------------------------------------------------
# Component catalog
# ---------------------------------------------------------------------------


class ManeuverComponent(Base):
    """A selectable maneuver building block within a division."""

    __tablename__ = "maneuver_components"
    __table_args__ = (
        UniqueConstraint("division", "component_id", name="maneuver_components_division_component_key"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    division: Mapped[str] = mapped_column(String(32), nullable=False)
    component_id: Mapped[str] = mapped_column(String(64), nullable=False)
    display_name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    xp_value: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    component_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSONType, nullable=False, default=dict)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="true", default=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Leveling ledger
# ---------------------------------------------------------------------------


class UserProgression(Base):
    """Cached level state per user. xp_total is the source of truth."""

    __tablename__ = "user_progression"

    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    xp_total: Mapped[int] = mapped_column(BigInteger, nullable=False, server_default="0", default=0)
    xp_current: Mapped[int] = mapped_column(BigInteger, nullable=False, server_default="0", default=0)
    level: Mapped[int] = mapped_column(Integer, nullable=False, server_default="1", default=1)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class XPLedger(Base):
    """Append-only XP log. Rows are removed only when their video is deleted."""

    __tablename__ = "xp_ledger"
    __table_args__ = (
        Index("idx_xp_ledger_user_video", "user_id", "video_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    video_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[str] = mapped_column(String(32), nullable=False)
    contributions: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    context: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Notification(Base):
    """Persisted user notifications."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    subtype: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false", default=False)
    notification_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Specializations
# ---------------------------------------------------------------------------


class UserSpecialization(Base):
    """Per-track level state for a user."""

    __tablename__ = "user_specializations"
    __table_args__ = (
        UniqueConstraint("user_id", "specialization", name="user_specializations_user_track_key"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    specialization: Mapped[str] = mapped_column(String(16), nullable=False)
    level: Mapped[int] = mapped_column(Integer, nullable=False, server_default="1", default=1)
    xp_total: Mapped[int] = mapped_column(BigInteger, nullable=False, server_default="0", default=0)
    xp_current: Mapped[int] = mapped_column(BigInteger, nullable=False, server_default="0", default=0)
    tricks_completed: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0", default=0)
    best_trick_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    best_trick_xp: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0", default=0)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Quest graph
# ---------------------------------------------------------------------------


class QuestNode(Base):
    """A skill-tree node. Merge nodes reference their two parents directly."""

    __tablename__ = "quest_nodes"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    specialization: Mapped[str] = mapped_column(String(16), nullable=False)
    tier: Mapped[int] = mapped_column(Integer, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0", default=0)
    branch_type: Mapped[str] = mapped_column(String(16), nullable=False, server_default="none", default="none")
    display_row: Mapped[int | None] = mapped_column(Integer, nullable=True)
    title: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    trick_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    prerequisites: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    merge_left_id: Mapped[str | None] = mapped_column(String(64), ForeignKey("quest_nodes.id"), nullable=True)
    merge_right_id: Mapped[str | None] = mapped_column(String(64), ForeignKey("quest_nodes.id"), nullable=True)
    required_for_unlock: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="true", default=True)
    xp_bonus: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0", default=0)
    repeatable: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false", default=False)
    is_shared_node: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false", default=False)


class QuestCompletion(Base):
    """One recorded completion attempt of a quest node."""

    __tablename__ = "quest_completions"
    __table_args__ = (
        UniqueConstraint("user_id", "node_id", "attempt_number", name="quest_completions_attempt_key"),
        Index("idx_quest_completions_video", "video_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    node_id: Mapped[str] = mapped_column(String(64), ForeignKey("quest_nodes.id", ondelete="CASCADE"), nullable=False)
    video_id: Mapped[str] = mapped_column(String(64), nullable=False)
    attempt_number: Mapped[int] = mapped_column(Integer, nullable=False)
    is_first_completion: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    xp_awarded: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0", default=0)
    xp_bonus_received: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0", default=0)
    bonus_withheld: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false", default=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class QuestProgress(Base):
    """Cached per-node progress. Status is always derived, never stored here."""

    __tablename__ = "quest_progress"
    __table_args__ = (
        UniqueConstraint("user_id", "node_id", name="quest_progress_user_node_key"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    node_id: Mapped[str] = mapped_column(String(64), ForeignKey("quest_nodes.id", ondelete="CASCADE"), nullable=False)
    unlocked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    times_completed: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0", default=0)
    first_completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    best_video_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    best_video_xp: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0", default=0)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


class ReconciliationFlag(Base):
    """Soft failure left for an operator to reconcile."""

    __tablename__ = "reconciliation_flags"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    node_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    video_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    reason: Mapped[str] = mapped_column(String(64), nullable=False)
    detail: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
