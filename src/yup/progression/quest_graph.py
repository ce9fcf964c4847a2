"""Quest graph engine: skill-tree unlocks, completion attempts and evolution.

Per-user node status is never stored. It is derived from the completion
history: a node is ``completed`` once it has at least one attempt,
``available`` when it declares no prerequisites or every prerequisite has an
attempt, and ``locked`` otherwise. ``quest_progress`` rows are a cache of
counters and the best video, rebuilt by ``recalculate_quest_progress``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from yup.db.base import upsert
from yup.db.models import QuestCompletion, QuestNode, QuestProgress
from yup.progression import ledger
from yup.progression.errors import InvalidQuestGraph, PrerequisitesNotMet, QuestNodeNotFound
from yup.progression.specialization import validate_track

logger = logging.getLogger(__name__)

BRANCH_TYPES: tuple[str, ...] = ("spin", "merge", "ollie", "grab", "none")

STATUS_LOCKED = "locked"
STATUS_AVAILABLE = "available"
STATUS_COMPLETED = "completed"
STATUS_PREREQUISITES_PENDING = "prerequisites_pending"


# ---------------------------------------------------------------------------
# In-memory graph
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class QuestNodeSpec:
    id: str
    specialization: str
    tier: int
    title: str
    position: int = 0
    branch_type: str = "none"
    display_row: int | None = None
    description: str | None = None
    trick_id: str | None = None
    prerequisites: tuple[str, ...] = field(default_factory=tuple)
    merge_left_id: str | None = None
    merge_right_id: str | None = None
    required_for_unlock: bool = True
    xp_bonus: int = 0
    repeatable: bool = False
    is_shared_node: bool = False

    @classmethod
    def from_row(cls, row: Any) -> QuestNodeSpec:
        if isinstance(row, Mapping):
            data = dict(row)
        else:
            data = {name: getattr(row, name) for name in cls.__dataclass_fields__}
        data["prerequisites"] = tuple(data.get("prerequisites") or ())
        data["branch_type"] = data.get("branch_type") or "none"
        return cls(**data)

    def as_dict(self) -> dict:
        data = {
            "id": self.id,
            "specialization": self.specialization,
            "tier": self.tier,
            "position": self.position,
            "branch_type": self.branch_type,
            "display_row": self.display_row,
            "title": self.title,
            "description": self.description,
            "trick_id": self.trick_id,
            "prerequisites": list(self.prerequisites),
            "required_for_unlock": self.required_for_unlock,
            "xp_bonus": self.xp_bonus,
            "repeatable": self.repeatable,
            "is_shared_node": self.is_shared_node,
        }
        if self.branch_type == "merge":
            data["merge_refs"] = {"left_node_id": self.merge_left_id, "right_node_id": self.merge_right_id}
        return data


def derive_status(node: QuestNodeSpec, attempted: set[str] | frozenset[str]) -> str:
    """Status of ``node`` given the ids of nodes the user has attempted."""
    if node.id in attempted:
        return STATUS_COMPLETED
    if is_available(node, attempted):
        return STATUS_AVAILABLE
    return STATUS_LOCKED


def is_available(node: QuestNodeSpec, attempted: set[str] | frozenset[str]) -> bool:
    # A merge node's prerequisites are exactly its two parents, so both must be attempted.
    return all(prereq in attempted for prereq in node.prerequisites)


def missing_prerequisites(node: QuestNodeSpec, attempted: set[str] | frozenset[str]) -> list[str]:
    return [prereq for prereq in node.prerequisites if prereq not in attempted]


class QuestGraph:
    """Validated, acyclic set of quest nodes."""

    def __init__(self, nodes: Mapping[str, QuestNodeSpec]) -> None:
        self._nodes = dict(nodes)
        self._children: dict[str, list[str]] = {node_id: [] for node_id in self._nodes}
        for node in self._nodes.values():
            for prereq in node.prerequisites:
                self._children[prereq].append(node.id)

    @classmethod
    def from_nodes(cls, nodes: Iterable[Any]) -> QuestGraph:
        """Build and validate a graph from ORM rows, dicts or specs.

        Raises ``InvalidQuestGraph`` on duplicate ids, unknown prerequisites,
        a broken merge pair or a cycle.
        """
        specs: dict[str, QuestNodeSpec] = {}
        for raw in nodes:
            spec = raw if isinstance(raw, QuestNodeSpec) else QuestNodeSpec.from_row(raw)
            if spec.id in specs:
                raise InvalidQuestGraph(f"Duplicate quest node id: {spec.id}")
            specs[spec.id] = spec

        for spec in specs.values():
            _validate_node(spec, specs)
        _check_acyclic(specs)
        return cls(specs)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def get(self, node_id: str) -> QuestNodeSpec:
        node = self._nodes.get(node_id)
        if node is None:
            raise QuestNodeNotFound(node_id)
        return node

    def nodes(self, specialization: str | None = None) -> list[QuestNodeSpec]:
        """Nodes ordered by tier then position."""
        selected = [
            node for node in self._nodes.values()
            if specialization is None or node.specialization == specialization
        ]
        return sorted(selected, key=lambda n: (n.tier, n.position, n.id))

    def children(self, node_id: str) -> list[QuestNodeSpec]:
        return [self._nodes[child] for child in self._children.get(node_id, [])]


def _validate_node(spec: QuestNodeSpec, specs: Mapping[str, QuestNodeSpec]) -> None:
    if spec.branch_type not in BRANCH_TYPES:
        raise InvalidQuestGraph(f"Node {spec.id} has unknown branch type {spec.branch_type}")

    for prereq in spec.prerequisites:
        if prereq not in specs:
            raise InvalidQuestGraph(f"Node {spec.id} references unknown prerequisite {prereq}")
    if len(set(spec.prerequisites)) != len(spec.prerequisites):
        raise InvalidQuestGraph(f"Node {spec.id} lists a prerequisite twice")

    has_merge_refs = spec.merge_left_id is not None or spec.merge_right_id is not None
    if spec.branch_type != "merge":
        if has_merge_refs:
            raise InvalidQuestGraph(f"Node {spec.id} has merge parents but is not a merge node")
        return

    pair = {spec.merge_left_id, spec.merge_right_id}
    if None in pair or len(pair) != 2:
        raise InvalidQuestGraph(f"Merge node {spec.id} needs two distinct parents")
    if len(spec.prerequisites) != 2 or set(spec.prerequisites) != pair:
        raise InvalidQuestGraph(f"Merge node {spec.id} prerequisites must equal its merge parents")


def _check_acyclic(specs: Mapping[str, QuestNodeSpec]) -> None:
    """Iterative DFS; each node is fully explored at most once."""
    visiting: set[str] = set()
    done: set[str] = set()

    for root in specs:
        if root in done:
            continue
        stack: list[tuple[str, int]] = [(root, 0)]
        visiting.add(root)
        while stack:
            node_id, index = stack[-1]
            prereqs = specs[node_id].prerequisites
            if index < len(prereqs):
                stack[-1] = (node_id, index + 1)
                nxt = prereqs[index]
                if nxt in visiting:
                    raise InvalidQuestGraph(f"Prerequisite cycle through {nxt}")
                if nxt not in done:
                    visiting.add(nxt)
                    stack.append((nxt, 0))
            else:
                stack.pop()
                visiting.discard(node_id)
                done.add(node_id)


# ---------------------------------------------------------------------------
# Persistence helpers
# ---------------------------------------------------------------------------


def _now() -> datetime:
    return datetime.now(timezone.utc)


async def load_graph(db: AsyncSession) -> QuestGraph:
    result = await db.execute(select(QuestNode))
    return QuestGraph.from_nodes(result.scalars().all())


async def _get_node(db: AsyncSession, node_id: str) -> QuestNodeSpec:
    node = await db.get(QuestNode, node_id)
    if node is None:
        raise QuestNodeNotFound(node_id)
    return QuestNodeSpec.from_row(node)


async def _attempted_node_ids(db: AsyncSession, user_id: int) -> set[str]:
    result = await db.execute(
        select(QuestCompletion.node_id).where(QuestCompletion.user_id == user_id).distinct()
    )
    return set(result.scalars().all())


async def _progress_rows(db: AsyncSession, user_id: int) -> dict[str, QuestProgress]:
    result = await db.execute(select(QuestProgress).where(QuestProgress.user_id == user_id))
    return {row.node_id: row for row in result.scalars()}


async def _lock_progress(db: AsyncSession, user_id: int, node_id: str) -> QuestProgress:
    """Ensure the (user, node) progress row exists and lock it."""
    await db.execute(
        upsert(db, QuestProgress)
        .values(user_id=user_id, node_id=node_id, times_completed=0, best_video_xp=0, updated_at=_now())
        .on_conflict_do_nothing(index_elements=["user_id", "node_id"])
    )
    result = await db.execute(
        select(QuestProgress)
        .where(QuestProgress.user_id == user_id, QuestProgress.node_id == node_id)
        .with_for_update()
    )
    return result.scalar_one()


def _progress_dict(row: QuestProgress | None) -> dict:
    if row is None:
        return {
            "unlocked_at": None,
            "times_completed": 0,
            "first_completed_at": None,
            "last_completed_at": None,
            "best_video_id": None,
            "best_video_xp": 0,
        }
    return {
        "unlocked_at": row.unlocked_at,
        "times_completed": row.times_completed,
        "first_completed_at": row.first_completed_at,
        "last_completed_at": row.last_completed_at,
        "best_video_id": row.best_video_id,
        "best_video_xp": row.best_video_xp,
    }


# ---------------------------------------------------------------------------
# Unlocks
# ---------------------------------------------------------------------------


async def check_unlocked(db: AsyncSession, user_id: int, node_id: str) -> bool:
    node = await _get_node(db, node_id)
    attempted = await _attempted_node_ids(db, user_id)
    return derive_status(node, attempted) != STATUS_LOCKED


async def unlock(db: AsyncSession, user_id: int, node_id: str) -> dict:
    """Record that the node is available to the user. Never grants XP."""
    node = await _get_node(db, node_id)
    attempted = await _attempted_node_ids(db, user_id)
    missing = missing_prerequisites(node, attempted)
    if missing and node.id not in attempted:
        raise PrerequisitesNotMet(node_id, missing)

    progress = await _lock_progress(db, user_id, node_id)
    if progress.unlocked_at is None:
        progress.unlocked_at = _now()
        progress.updated_at = progress.unlocked_at
    await db.flush()

    return {
        "node_id": node_id,
        "status": derive_status(node, attempted),
        **_progress_dict(progress),
    }


async def _unlock_children(
    db: AsyncSession,
    user_id: int,
    graph_children: list[QuestNodeSpec],
    attempted_before: set[str],
    attempted_after: set[str],
) -> list[str]:
    unlocked: list[str] = []
    for child in graph_children:
        if child.id in attempted_after:
            continue
        if not is_available(child, attempted_before) and is_available(child, attempted_after):
            progress = await _lock_progress(db, user_id, child.id)
            if progress.unlocked_at is None:
                progress.unlocked_at = _now()
            unlocked.append(child.id)
    return unlocked


async def _children_of(db: AsyncSession, node_id: str) -> list[QuestNodeSpec]:
    graph = await load_graph(db)
    return graph.children(node_id)


# ---------------------------------------------------------------------------
# Completion
# ---------------------------------------------------------------------------


async def complete_quest(
    db: AsyncSession,
    redis: object | None,
    user_id: int,
    node_id: str,
    video_id: str,
    video_xp: int,
) -> dict:
    """Record a completion attempt and grant the node bonus when eligible.

    Completing a node whose prerequisites are unmet still records the attempt
    with ``status="prerequisites_pending"`` and the bonus withheld. Caller commits.
    """
    node = await _get_node(db, node_id)
    progress = await _lock_progress(db, user_id, node_id)

    last_attempt = (await db.execute(
        select(func.max(QuestCompletion.attempt_number)).where(
            QuestCompletion.user_id == user_id,
            QuestCompletion.node_id == node_id,
        )
    )).scalar_one()
    attempt_number = (last_attempt or 0) + 1
    is_first_completion = attempt_number == 1

    attempted_before = await _attempted_node_ids(db, user_id)
    available = is_available(node, attempted_before)
    bonus_eligible = node.xp_bonus > 0 and (is_first_completion or node.repeatable)
    bonus = node.xp_bonus if bonus_eligible and available else 0
    now = _now()

    db.add(QuestCompletion(
        user_id=user_id,
        node_id=node_id,
        video_id=video_id,
        attempt_number=attempt_number,
        is_first_completion=is_first_completion,
        xp_awarded=video_xp,
        xp_bonus_received=bonus,
        bonus_withheld=bonus_eligible and not available,
        completed_at=now,
    ))

    is_best_video = progress.best_video_id is None or video_xp > (progress.best_video_xp or 0)
    progress.times_completed += 1
    if progress.first_completed_at is None:
        progress.first_completed_at = now
    progress.last_completed_at = now
    if available and progress.unlocked_at is None:
        progress.unlocked_at = now
    if is_best_video:
        progress.best_video_id = video_id
        progress.best_video_xp = video_xp
    progress.updated_at = now
    await db.flush()

    award_result = None
    if bonus > 0:
        award_result = await ledger.award(
            db,
            redis,
            user_id,
            bonus,
            video_id=video_id,
            contributions=[{"code": f"quest.{node_id}", "label": node.title, "value": bonus}],
            source=ledger.SOURCE_QUEST_COMPLETION,
            context={"node_id": node_id, "attempt_number": attempt_number},
        )

    unlocked_nodes: list[str] = []
    if is_first_completion:
        unlocked_nodes = await _unlock_children(
            db, user_id, await _children_of(db, node_id), attempted_before, attempted_before | {node_id},
        )
        await db.flush()

    status = STATUS_COMPLETED if available else STATUS_PREREQUISITES_PENDING
    if not available:
        logger.warning(
            "User %s completed %s before its prerequisites (attempt %d); bonus withheld",
            user_id, node_id, attempt_number,
        )

    result: dict[str, Any] = {
        "node_id": node_id,
        "attempt_number": attempt_number,
        "is_first_completion": is_first_completion,
        "status": status,
        "xp": {"video": video_xp, "bonus": bonus, "total": video_xp + bonus},
        "is_best_video": is_best_video,
        "unlocked_nodes": unlocked_nodes,
    }
    if award_result is not None:
        result["award"] = award_result
    return result


async def reconcile_withheld_bonuses(db: AsyncSession, redis: object | None, user_id: int) -> list[dict]:
    """Grant bonuses withheld for nodes whose prerequisites are now met. Caller commits."""
    result = await db.execute(
        select(QuestCompletion)
        .where(QuestCompletion.user_id == user_id, QuestCompletion.bonus_withheld.is_(True))
        .order_by(QuestCompletion.completed_at, QuestCompletion.id)
    )
    withheld = result.scalars().all()
    if not withheld:
        return []

    attempted = await _attempted_node_ids(db, user_id)
    awards: list[dict] = []
    for completion in withheld:
        node = await _get_node(db, completion.node_id)
        if not is_available(node, attempted):
            continue

        if not node.repeatable:
            already_paid = (await db.execute(
                select(func.count()).select_from(QuestCompletion).where(
                    QuestCompletion.user_id == user_id,
                    QuestCompletion.node_id == node.id,
                    QuestCompletion.xp_bonus_received > 0,
                )
            )).scalar_one()
            if already_paid:
                completion.bonus_withheld = False
                continue

        completion.bonus_withheld = False
        completion.xp_bonus_received = node.xp_bonus
        award_result = await ledger.award(
            db,
            redis,
            user_id,
            node.xp_bonus,
            video_id=completion.video_id,
            contributions=[{"code": f"quest.{node.id}", "label": node.title, "value": node.xp_bonus}],
            source=ledger.SOURCE_QUEST_COMPLETION,
            context={"node_id": node.id, "attempt_number": completion.attempt_number, "reconciled": True},
        )
        awards.append({"node_id": node.id, "attempt_number": completion.attempt_number, "award": award_result})

    await db.flush()
    if awards:
        logger.info("Reconciled %d withheld quest bonuses for user %s", len(awards), user_id)
    return awards


async def recalculate_quest_progress(db: AsyncSession, user_id: int, node_id: str) -> dict | None:
    """Rebuild the cached progress row from the remaining completion history.

    When the attempt that carried a non-repeatable node's one-time bonus is
    gone, the earliest remaining attempt is marked withheld so
    ``reconcile_withheld_bonuses`` pays the bonus on it.
    """
    if not user_id or not node_id:
        return None

    result = await db.execute(
        select(QuestCompletion)
        .where(QuestCompletion.user_id == user_id, QuestCompletion.node_id == node_id)
        .order_by(QuestCompletion.completed_at, QuestCompletion.id)
    )
    completions = result.scalars().all()
    progress = await _lock_progress(db, user_id, node_id)

    progress.times_completed = len(completions)
    if completions:
        best = completions[0]
        for row in completions[1:]:
            if row.xp_awarded > best.xp_awarded:
                best = row
        progress.first_completed_at = completions[0].completed_at
        progress.last_completed_at = completions[-1].completed_at
        progress.best_video_id = best.video_id
        progress.best_video_xp = best.xp_awarded

        node_row = await db.get(QuestNode, node_id)
        if node_row is not None:
            node = QuestNodeSpec.from_row(node_row)
            bonus_settled = any(row.xp_bonus_received > 0 or row.bonus_withheld for row in completions)
            if node.xp_bonus > 0 and not node.repeatable and not bonus_settled:
                completions[0].bonus_withheld = True
                logger.info(
                    "Bonus for %s owed again to user %s on attempt %d",
                    node_id, user_id, completions[0].attempt_number,
                )
    else:
        progress.first_completed_at = None
        progress.last_completed_at = None
        progress.best_video_id = None
        progress.best_video_xp = 0
    progress.updated_at = _now()
    await db.flush()

    return {"node_id": node_id, **_progress_dict(progress)}


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------


def _attempt_dict(row: QuestCompletion) -> dict:
    return {
        "id": row.id,
        "attempt_number": row.attempt_number,
        "is_first_completion": row.is_first_completion,
        "video_id": row.video_id,
        "completed_at": row.completed_at,
        "bonus_withheld": row.bonus_withheld,
        "xp": {
            "awarded": row.xp_awarded,
            "bonus": row.xp_bonus_received,
            "total": row.xp_awarded + row.xp_bonus_received,
        },
    }


async def _completions(db: AsyncSession, user_id: int, node_id: str) -> list[QuestCompletion]:
    result = await db.execute(
        select(QuestCompletion)
        .where(QuestCompletion.user_id == user_id, QuestCompletion.node_id == node_id)
        .order_by(QuestCompletion.attempt_number)
    )
    return list(result.scalars().all())


async def get_quest_history(db: AsyncSession, user_id: int, node_id: str) -> dict:
    """All attempts on a node, newest first."""
    await _get_node(db, node_id)
    rows = await _completions(db, user_id, node_id)
    return {
        "node_id": node_id,
        "total_attempts": len(rows),
        "history": [_attempt_dict(row) for row in reversed(rows)],
    }


async def get_quest_evolution(db: AsyncSession, user_id: int, node_id: str) -> dict:
    """First, last and best attempt plus improvement between first and last."""
    await _get_node(db, node_id)
    rows = await _completions(db, user_id, node_id)
    if not rows:
        return {"node_id": node_id, "has_attempts": False}

    first, last = rows[0], rows[-1]
    best = first
    for row in rows[1:]:
        if row.xp_awarded > best.xp_awarded:
            best = row

    improvement = last.xp_awarded - first.xp_awarded
    percentage = int(improvement / first.xp_awarded * 100 + 0.5) if first.xp_awarded > 0 else 0

    attempts = []
    previous_xp: int | None = None
    for row in rows:
        entry = _attempt_dict(row)
        entry["delta"] = 0 if previous_xp is None else row.xp_awarded - previous_xp
        previous_xp = row.xp_awarded
        attempts.append(entry)

    return {
        "node_id": node_id,
        "has_attempts": True,
        "total_attempts": len(rows),
        "first_attempt": _attempt_dict(first),
        "last_attempt": _attempt_dict(last),
        "best_attempt": _attempt_dict(best),
        "improvement": {"xp": improvement, "percentage": percentage},
        "attempts": attempts,
    }


async def get_recommended_quests(
    db: AsyncSession,
    user_id: int,
    limit: int = 5,
    specialization: str | None = None,
) -> list[dict]:
    """Available, not yet attempted nodes: lowest tier first, then biggest bonus."""
    if specialization is not None:
        validate_track(specialization)
    graph = await load_graph(db)
    attempted = await _attempted_node_ids(db, user_id)

    candidates = [
        node for node in graph.nodes(specialization)
        if derive_status(node, attempted) == STATUS_AVAILABLE
    ]
    candidates.sort(key=lambda n: (n.tier, -n.xp_bonus, n.position, n.id))
    return [{**node.as_dict(), "status": STATUS_AVAILABLE} for node in candidates[:max(limit, 0)]]


async def get_suggested_retries(db: AsyncSession, user_id: int, limit: int = 5) -> list[dict]:
    """Repeatable completed nodes where the latest attempt trails the best one most."""
    graph = await load_graph(db)
    result = await db.execute(
        select(QuestCompletion)
        .where(QuestCompletion.user_id == user_id)
        .order_by(QuestCompletion.node_id, QuestCompletion.attempt_number)
    )

    by_node: dict[str, list[QuestCompletion]] = {}
    for row in result.scalars():
        by_node.setdefault(row.node_id, []).append(row)

    suggestions = []
    for node_id, rows in by_node.items():
        if node_id not in graph:
            continue
        node = graph.get(node_id)
        if not node.repeatable:
            continue
        best_xp = max(row.xp_awarded for row in rows)
        latest = rows[-1]
        suggestions.append({
            **node.as_dict(),
            "status": STATUS_COMPLETED,
            "times_completed": len(rows),
            "best_video_xp": best_xp,
            "latest_video_xp": latest.xp_awarded,
            "gap": best_xp - latest.xp_awarded,
            "last_completed_at": latest.completed_at,
        })

    epoch = datetime.min.replace(tzinfo=timezone.utc)
    suggestions.sort(key=lambda s: (
        -s["gap"],
        _aware(s["last_completed_at"]) or epoch,
        s["id"],
    ))
    return suggestions[:max(limit, 0)]


def _aware(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


async def get_skill_tree(db: AsyncSession, user_id: int, specialization: str) -> dict:
    """Grid view of a specialization: rows by display row, one column per branch type."""
    validate_track(specialization)
    graph = await load_graph(db)
    attempted = await _attempted_node_ids(db, user_id)
    progress = await _progress_rows(db, user_id)

    nodes = graph.nodes(specialization)
    rows: dict[int, dict] = {}
    for node in nodes:
        row_number = node.display_row if node.display_row is not None else node.tier
        row = rows.setdefault(row_number, {
            "row_number": row_number,
            "tier": node.tier,
            **{branch: None for branch in BRANCH_TYPES},
        })
        row[node.branch_type] = {
            **node.as_dict(),
            "status": derive_status(node, attempted),
            "user_progress": _progress_dict(progress.get(node.id)),
        }

    completed = sum(1 for node in nodes if node.id in attempted)
    return {
        "specialization": specialization,
        "layout": "grid",
        "rows": [rows[key] for key in sorted(rows)],
        "total_nodes": len(nodes),
        "completed_nodes": completed,
        "shared_nodes": [
            {"id": node.id, "title": node.title, "branch_type": node.branch_type}
            for node in nodes
            if node.is_shared_node
        ],
    }


async def get_user_quest_stats(db: AsyncSession, user_id: int) -> dict:
    graph = await load_graph(db)
    attempted = await _attempted_node_ids(db, user_id)

    totals = (await db.execute(
        select(
            func.count(QuestCompletion.id),
            func.coalesce(func.sum(QuestCompletion.xp_bonus_received), 0),
        ).where(QuestCompletion.user_id == user_id)
    )).one()
    first_time = (await db.execute(
        select(func.count()).select_from(QuestCompletion).where(
            QuestCompletion.user_id == user_id,
            QuestCompletion.is_first_completion.is_(True),
        )
    )).scalar_one()

    available = sum(
        1 for node in graph.nodes() if derive_status(node, attempted) == STATUS_AVAILABLE
    )
    return {
        "quests_completed": len(attempted & {node.id for node in graph.nodes()}),
        "quests_available": available,
        "total_attempts": int(totals[0] or 0),
        "total_bonus_xp": int(totals[1] or 0),
        "first_time_completions": int(first_time or 0),
    }
