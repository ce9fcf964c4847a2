"""Component catalog: a cached, immutable view of the maneuver building blocks.

The catalog is loaded from a JSON data file when one is configured, otherwise
from the ``maneuver_components`` table. Snapshots are cached for a bounded TTL
and dropped on ``invalidate()`` (admin edits).
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from yup.db.models import ManeuverComponent
from yup.progression.errors import UnknownComponent, UnknownDivision

logger = logging.getLogger(__name__)

DIVISIONS: tuple[str, ...] = ("approach", "entry", "spins", "grabs", "base_moves", "modifiers")
REQUIRED_DIVISIONS: tuple[str, ...] = DIVISIONS[:-1]

NONE_ID = "none"

_NONE_LABELS: dict[str, tuple[str, str]] = {
    "approach": ("No approach", "No edge or approach applied"),
    "entry": ("No entry", "No entry applied"),
    "spins": ("No spin", "No rotation applied"),
    "grabs": ("No grab", "No grab selected"),
    "base_moves": ("No base move", "No base move selected"),
    "modifiers": ("No modifier", "No modifier applied"),
}

# Section names used by the spreadsheet export the data files come from.
_FILE_SECTIONS: dict[str, str] = {
    "Approach": "approach",
    "Entry": "entry",
    "Spins": "spins",
    "Grabs": "grabs",
    "Base_Moves": "base_moves",
    "Modifiers": "modifiers",
}


@dataclass(frozen=True)
class ComponentDefinition:
    division: str
    component_id: str
    display_name: str
    xp_value: int
    description: str = ""
    metadata: Mapping[str, Any] = field(default_factory=dict)
    active: bool = True

    def as_dict(self) -> dict:
        return {
            "division": self.division,
            "component_id": self.component_id,
            "display_name": self.display_name,
            "description": self.description,
            "xp_value": self.xp_value,
            "metadata": dict(self.metadata),
        }


def _none_component(division: str) -> ComponentDefinition:
    name, description = _NONE_LABELS[division]
    return ComponentDefinition(
        division=division,
        component_id=NONE_ID,
        display_name=name,
        xp_value=0,
        description=description,
        metadata=MappingProxyType({"type": "none"}),
    )


class CatalogSnapshot:
    """Immutable ``division -> component_id -> ComponentDefinition`` mapping."""

    def __init__(self, divisions: Mapping[str, Mapping[str, ComponentDefinition]]) -> None:
        frozen: dict[str, Mapping[str, ComponentDefinition]] = {}
        for division in DIVISIONS:
            members = dict(divisions.get(division, {}))
            members.setdefault(NONE_ID, _none_component(division))
            frozen[division] = MappingProxyType(members)
        self._divisions: Mapping[str, Mapping[str, ComponentDefinition]] = MappingProxyType(frozen)

    @classmethod
    def from_definitions(cls, definitions: Iterable[ComponentDefinition]) -> CatalogSnapshot:
        """Build a snapshot from definitions; inactive entries are not selectable."""
        divisions: dict[str, dict[str, ComponentDefinition]] = {d: {} for d in DIVISIONS}
        for definition in definitions:
            if definition.division not in divisions:
                logger.warning("Skipping component %s in unknown division %s",
                               definition.component_id, definition.division)
                continue
            if not definition.active:
                continue
            divisions[definition.division][definition.component_id] = definition
        return cls(divisions)

    def __getitem__(self, division: str) -> Mapping[str, ComponentDefinition]:
        try:
            return self._divisions[division]
        except KeyError:
            raise UnknownDivision(division) from None

    def __contains__(self, division: object) -> bool:
        return division in self._divisions

    def lookup(self, division: str, component_id: str) -> ComponentDefinition:
        members = self[division]
        component = members.get(component_id)
        if component is None:
            raise UnknownComponent(division, component_id)
        return component

    def stats(self) -> dict:
        by_division = {division: len(self._divisions[division]) for division in DIVISIONS}
        return {"total": sum(by_division.values()), "by_division": by_division}

    def as_dict(self) -> dict[str, list[dict]]:
        return {
            division: [
                c.as_dict()
                for c in sorted(self._divisions[division].values(), key=lambda c: (c.xp_value, c.component_id))
            ]
            for division in DIVISIONS
        }


def parse_components_file(raw: Mapping[str, Any]) -> list[ComponentDefinition]:
    """Parse the exported components JSON into definitions."""
    definitions: list[ComponentDefinition] = []
    for section, division in _FILE_SECTIONS.items():
        for item in raw.get(section) or []:
            component_id = item.get(f"{division}_id") or item.get("component_id") or item.get("id")
            if not component_id:
                continue
            name = item.get("display_name") or item.get("shortcut") or item.get("description") or component_id
            definitions.append(ComponentDefinition(
                division=division,
                component_id=str(component_id),
                display_name=str(name),
                xp_value=int(item.get("xp") or 0),
                description=str(item.get("description") or name),
                metadata=MappingProxyType(dict(item.get("metadata") or {})),
                active=bool(item.get("active", True)),
            ))
    return definitions


class ComponentCatalog:
    """Lazily populated catalog cache with TTL and manual invalidation."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None,
        ttl_seconds: float = 300,
        data_file: str | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session_factory = session_factory
        self._ttl = ttl_seconds
        self._data_file = data_file or None
        self._clock = clock
        self._snapshot: CatalogSnapshot | None = None
        self._loaded_at: float | None = None
        self._lock = asyncio.Lock()

    def _is_fresh(self) -> bool:
        if self._snapshot is None or self._loaded_at is None:
            return False
        return (self._clock() - self._loaded_at) < self._ttl

    async def load(self) -> CatalogSnapshot:
        """Return the cached snapshot, reloading from the backing store on a miss."""
        if self._is_fresh():
            return self._snapshot  # type: ignore[return-value]

        async with self._lock:
            if self._is_fresh():
                return self._snapshot  # type: ignore[return-value]

            snapshot = self._load_from_file()
            if snapshot is None:
                snapshot = await self._load_from_db()

            self._snapshot = snapshot
            self._loaded_at = self._clock()
            logger.info("Component catalog loaded (%d components)", snapshot.stats()["total"])
            return snapshot

    def invalidate(self) -> None:
        """Drop the cached snapshot; the next ``load()`` hits the backing store."""
        self._snapshot = None
        self._loaded_at = None

    async def lookup(self, division: str, component_id: str) -> ComponentDefinition:
        snapshot = await self.load()
        return snapshot.lookup(division, component_id)

    async def stats(self) -> dict:
        snapshot = await self.load()
        return snapshot.stats()

    def _load_from_file(self) -> CatalogSnapshot | None:
        if not self._data_file or not os.path.exists(self._data_file):
            return None
        try:
            with open(self._data_file, encoding="utf-8") as fh:
                raw = json.load(fh)
            return CatalogSnapshot.from_definitions(parse_components_file(raw))
        except (OSError, ValueError, TypeError):
            logger.warning("Could not load components from %s, falling back to database",
                           self._data_file, exc_info=True)
            return None

    async def _load_from_db(self) -> CatalogSnapshot:
        if self._session_factory is None:
            msg = "Component catalog has no data file and no database session factory"
            raise RuntimeError(msg)

        async with self._session_factory() as db:
            result = await db.execute(
                select(ManeuverComponent)
                .where(ManeuverComponent.is_active.is_(True))
                .order_by(ManeuverComponent.division, ManeuverComponent.xp_value)
            )
            rows = result.scalars().all()

        return CatalogSnapshot.from_definitions(
            ComponentDefinition(
                division=row.division,
                component_id=row.component_id,
                display_name=row.display_name,
                xp_value=row.xp_value,
                description=row.description or row.display_name,
                metadata=MappingProxyType(dict(row.component_metadata or {})),
                active=row.is_active,
            )
            for row in rows
        )
