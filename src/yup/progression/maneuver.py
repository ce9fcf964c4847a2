"""Maneuver XP calculator.

Validates a maneuver payload (one selection per required division plus
optional modifiers), resolves every selection through a catalog snapshot and
returns an itemized breakdown. Pure: the same payload and snapshot always
yield the same breakdown.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from yup.progression.catalog import NONE_ID, REQUIRED_DIVISIONS, CatalogSnapshot, ComponentCatalog
from yup.progression.errors import InvalidModifiers, InvalidPayload, MissingDivision


@dataclass(frozen=True)
class LineItem:
    component_id: str
    name: str
    xp: int

    def as_dict(self) -> dict:
        return {"component_id": self.component_id, "name": self.name, "xp": self.xp}


@dataclass(frozen=True)
class XPBreakdown:
    approach: LineItem
    entry: LineItem
    spins: LineItem
    grabs: LineItem
    base_moves: LineItem
    modifiers: tuple[LineItem, ...] = field(default_factory=tuple)

    @property
    def maneuver_total(self) -> int:
        return sum(item.xp for _, item in self.line_items())

    @property
    def components_used(self) -> list[str]:
        return [item.component_id for _, item in self.line_items()]

    def line_items(self) -> list[tuple[str, LineItem]]:
        """(division, item) pairs in fixed division order, modifiers last."""
        items = [(division, getattr(self, division)) for division in REQUIRED_DIVISIONS]
        items.extend(("modifiers", modifier) for modifier in self.modifiers)
        return items

    def contributions(self) -> list[dict]:
        """Non-zero line items in ledger contribution format."""
        return [
            {"code": f"{division}.{item.component_id}", "label": item.name, "value": item.xp}
            for division, item in self.line_items()
            if item.xp > 0
        ]

    def as_dict(self) -> dict:
        data: dict[str, Any] = {division: getattr(self, division).as_dict() for division in REQUIRED_DIVISIONS}
        data["modifiers"] = [m.as_dict() for m in self.modifiers]
        data["maneuver_total"] = self.maneuver_total
        data["components_used"] = self.components_used
        return data


def normalize_modifiers(value: Any) -> list[str]:
    """Normalize the modifiers field to an ordered list of ids.

    Absent or empty -> ``[]``; a string -> ``[string]``; ``"none"`` entries are dropped.
    """
    if value is None or value == "":
        return []
    if isinstance(value, str):
        items = [value]
    elif isinstance(value, (list, tuple)):
        if not all(isinstance(item, str) for item in value):
            raise InvalidModifiers()
        items = list(value)
    else:
        raise InvalidModifiers()
    return [item for item in items if item and item != NONE_ID]


def validate_payload(payload: Any) -> dict:
    """Check shape and return a normalized copy of the payload."""
    if not isinstance(payload, Mapping):
        raise InvalidPayload("maneuver payload must be an object")

    normalized: dict[str, Any] = {}
    for division in REQUIRED_DIVISIONS:
        selection = payload.get(division)
        if not selection:
            raise MissingDivision(division)
        if not isinstance(selection, str):
            raise InvalidPayload(f"{division} must be a component id string")
        normalized[division] = selection

    normalized["modifiers"] = normalize_modifiers(payload.get("modifiers"))
    return normalized


def calculate(payload: Any, snapshot: CatalogSnapshot) -> XPBreakdown:
    """Validate the payload and compute its breakdown against ``snapshot``."""
    normalized = validate_payload(payload)

    resolved: dict[str, LineItem] = {}
    for division in REQUIRED_DIVISIONS:
        component = snapshot.lookup(division, normalized[division])
        resolved[division] = LineItem(component.component_id, component.display_name, component.xp_value)

    modifiers = tuple(
        LineItem(c.component_id, c.display_name, c.xp_value)
        for c in (snapshot.lookup("modifiers", mid) for mid in normalized["modifiers"])
    )

    return XPBreakdown(modifiers=modifiers, **resolved)


def describe(breakdown: XPBreakdown) -> str:
    """Human-readable maneuver name. Display only, never used for scoring."""
    parts = [getattr(breakdown, division).name for division in REQUIRED_DIVISIONS]
    if breakdown.modifiers:
        parts.append(" + ".join(m.name for m in breakdown.modifiers))
    return " ".join(parts)


async def calculate_maneuver_xp(catalog: ComponentCatalog, payload: Any) -> XPBreakdown:
    """Validate ``payload``, then calculate it against the current catalog snapshot."""
    validate_payload(payload)
    snapshot = await catalog.load()
    return calculate(payload, snapshot)
