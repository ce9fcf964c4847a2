"""Starter data: kicker component catalog and kicker quest tree.

Both seeds are upserts keyed on their natural keys, so running them again
only refreshes the rows they own.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncSession

from yup.db.base import upsert
from yup.db.models import ManeuverComponent, QuestNode
from yup.progression.catalog import parse_components_file
from yup.progression.quest_graph import QuestGraph

logger = logging.getLogger(__name__)

COMPONENTS_FILE = Path(__file__).resolve().parent.parent / "data" / "kicker_components.json"

# Grid rows: SPIN (left) | MERGE (center) | OLLIE (right). Parents come before merges.
KICKER_QUEST_TREE: list[dict] = [
    # Row 1
    {
        "id": "kicker_straight_air",
        "specialization": "kicker",
        "tier": 1,
        "position": 3,
        "branch_type": "ollie",
        "display_row": 1,
        "title": "Straight Air",
        "description": "Clear the kicker and land clean. The base for every kicker trick.",
        "prerequisites": [],
        "xp_bonus": 100,
        "repeatable": True,
        "is_shared_node": True,
    },
    {
        "id": "kicker_fs180",
        "specialization": "kicker",
        "tier": 1,
        "position": 1,
        "branch_type": "spin",
        "display_row": 1,
        "title": "Frontside 180",
        "description": "Half a frontside rotation off the kicker.",
        "prerequisites": [],
        "xp_bonus": 120,
        "repeatable": True,
    },
    {
        "id": "kicker_fs180_air",
        "specialization": "kicker",
        "tier": 1,
        "position": 2,
        "branch_type": "merge",
        "display_row": 1,
        "title": "Frontside 180 Air",
        "description": "Pop high off the kicker, then spin the frontside 180.",
        "prerequisites": ["kicker_fs180", "kicker_straight_air"],
        "merge_left_id": "kicker_fs180",
        "merge_right_id": "kicker_straight_air",
        "xp_bonus": 250,
    },
    # Row 2
    {
        "id": "kicker_indy_air",
        "specialization": "kicker",
        "tier": 2,
        "position": 3,
        "branch_type": "ollie",
        "display_row": 2,
        "title": "Indy Air",
        "description": "Straight air with an indy grab.",
        "prerequisites": ["kicker_straight_air"],
        "xp_bonus": 150,
        "repeatable": True,
    },
    {
        "id": "kicker_bs180",
        "specialization": "kicker",
        "tier": 2,
        "position": 1,
        "branch_type": "spin",
        "display_row": 2,
        "title": "Backside 180",
        "description": "Half a blind-side rotation off the kicker.",
        "prerequisites": ["kicker_fs180"],
        "xp_bonus": 150,
        "repeatable": True,
    },
    {
        "id": "kicker_bs180_indy",
        "specialization": "kicker",
        "tier": 2,
        "position": 2,
        "branch_type": "merge",
        "display_row": 2,
        "title": "Backside 180 Indy",
        "description": "Grab indy and hold it through the backside 180.",
        "prerequisites": ["kicker_bs180", "kicker_indy_air"],
        "merge_left_id": "kicker_bs180",
        "merge_right_id": "kicker_indy_air",
        "xp_bonus": 300,
    },
    # Row 3
    {
        "id": "kicker_backroll",
        "specialization": "kicker",
        "tier": 3,
        "position": 3,
        "branch_type": "ollie",
        "display_row": 3,
        "title": "Backroll",
        "description": "Roll backwards over the toeside edge off the kicker.",
        "prerequisites": ["kicker_indy_air"],
        "xp_bonus": 250,
        "repeatable": True,
    },
    {
        "id": "kicker_fs360",
        "specialization": "kicker",
        "tier": 3,
        "position": 1,
        "branch_type": "spin",
        "display_row": 3,
        "title": "Frontside 360",
        "description": "A full frontside rotation off the kicker.",
        "prerequisites": ["kicker_bs180"],
        "xp_bonus": 200,
        "repeatable": True,
    },
    {
        "id": "kicker_backroll_360",
        "specialization": "kicker",
        "tier": 3,
        "position": 2,
        "branch_type": "merge",
        "display_row": 3,
        "title": "Backroll 360",
        "description": "Backroll with a full rotation before the landing.",
        "prerequisites": ["kicker_fs360", "kicker_backroll"],
        "merge_left_id": "kicker_fs360",
        "merge_right_id": "kicker_backroll",
        "xp_bonus": 400,
    },
]


async def seed_components(db: AsyncSession, path: Path = COMPONENTS_FILE) -> int:
    """Upsert the catalog file into maneuver_components. Returns rows written."""
    with open(path, encoding="utf-8") as fh:
        definitions = parse_components_file(json.load(fh))

    now = datetime.now(timezone.utc)
    for definition in definitions:
        stmt = upsert(db, ManeuverComponent.__table__).values(
            division=definition.division,
            component_id=definition.component_id,
            display_name=definition.display_name,
            description=definition.description,
            xp_value=definition.xp_value,
            metadata=dict(definition.metadata),
            is_active=definition.active,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["division", "component_id"],
            set_={
                "display_name": stmt.excluded.display_name,
                "description": stmt.excluded.description,
                "xp_value": stmt.excluded.xp_value,
                "metadata": stmt.excluded["metadata"],
                "is_active": stmt.excluded.is_active,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await db.execute(stmt)

    await db.commit()
    logger.info("Seeded %d maneuver components", len(definitions))
    return len(definitions)


async def seed_quest_tree(db: AsyncSession, nodes: list[dict] | None = None) -> int:
    """Validate and upsert the quest tree. Returns nodes written."""
    nodes = KICKER_QUEST_TREE if nodes is None else nodes
    QuestGraph.from_nodes(nodes)

    for node in nodes:
        values = {
            "position": 0,
            "branch_type": "none",
            "required_for_unlock": True,
            "repeatable": False,
            "is_shared_node": False,
            **node,
        }
        stmt = upsert(db, QuestNode).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["id"],
            set_={key: stmt.excluded[key] for key in values if key != "id"},
        )
        await db.execute(stmt)

    await db.commit()
    logger.info("Seeded %d quest nodes", len(nodes))
    return len(nodes)
