"""Level growth curve and XP snapshot computation.

The curve is geometric: ``requirement[level] = round(GROWTH_BASE * GROWTH_FACTOR ** (level - 1))``.
The final level's requirement is widened so the cumulative sum across all
levels equals ``XP_TOTAL_CAP`` exactly. These values MUST match the mobile
client's progress bar.
"""

from __future__ import annotations

import math

LEVEL_CAP = 99
XP_TOTAL_CAP = 1_000_000
GROWTH_BASE = 200
GROWTH_FACTOR = 1.05772872705916


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def build_xp_table() -> tuple[list[int], list[int]]:
    """Build (requirements, cumulative) indexed by level; index 0 is unused."""
    requirements = [0] * (LEVEL_CAP + 1)
    cumulative = [0] * (LEVEL_CAP + 1)
    total = 0

    for level in range(1, LEVEL_CAP + 1):
        cumulative[level] = total
        required = _round_half_up(GROWTH_BASE * GROWTH_FACTOR ** (level - 1))
        if level == LEVEL_CAP:
            remaining = XP_TOTAL_CAP - total
            if remaining > 0:
                required = max(required, remaining)
        requirements[level] = required
        total += required

    return requirements, cumulative


REQUIREMENTS, CUMULATIVE = build_xp_table()


def clamp_total(total: int) -> int:
    """Clamp a raw total into [0, XP_TOTAL_CAP]."""
    return min(max(int(total), 0), XP_TOTAL_CAP)


def get_next_level_target(level: int) -> int:
    """XP needed to clear ``level``; 0 at the max level."""
    level = max(int(level), 1)
    if level >= LEVEL_CAP:
        return 0
    return REQUIREMENTS[level]


def compute_level_state(total: int) -> dict:
    """Derive level and XP into level from a total. Single source of truth."""
    total = clamp_total(total)

    for level in range(1, LEVEL_CAP + 1):
        requirement = REQUIREMENTS[level]
        level_start = CUMULATIVE[level]
        if total < level_start + requirement or level == LEVEL_CAP:
            if level == LEVEL_CAP and requirement == 0:
                current = 0
            else:
                current = min(max(total - level_start, 0), requirement)
            return {"level": level, "current": current, "total": total}

    # Unreachable: the loop always returns at LEVEL_CAP.
    return {"level": LEVEL_CAP, "current": REQUIREMENTS[LEVEL_CAP], "total": total}


def get_xp_snapshot(total: int) -> dict:
    """Full display snapshot for a total (profile, leaderboard, award result)."""
    state = compute_level_state(total)
    level = state["level"]
    next_target = get_next_level_target(level)

    if level >= LEVEL_CAP:
        remaining = 0
    else:
        remaining = max(next_target - state["current"], 0)

    if level >= LEVEL_CAP or next_target <= 0:
        progress = 1.0
    else:
        progress = min(state["current"] / next_target, 1.0)

    return {
        "level": level,
        "current": state["current"],
        "next": next_target,
        "remaining": remaining,
        "total": state["total"],
        "progress": progress,
        "cap": XP_TOTAL_CAP,
        "max_level": LEVEL_CAP,
    }


def list_levels() -> list[dict]:
    """All level definitions for the public level table."""
    return [
        {"level": level, "xp_required": REQUIREMENTS[level], "cumulative": CUMULATIVE[level]}
        for level in range(1, LEVEL_CAP + 1)
    ]
