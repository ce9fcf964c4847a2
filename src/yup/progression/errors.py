"""Progression error taxonomy.

Apart from ``ProgressionUnavailable`` every class here is a caller-input error:
it is raised before any write and its message is surfaced verbatim.
``status_code`` is the HTTP status the error handler maps it to.
"""

from __future__ import annotations


class ProgressionError(Exception):
    """Base class for input errors raised by the progression engine."""

    status_code = 400
    code = "progression_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class MissingDivision(ProgressionError):
    code = "missing_division"

    def __init__(self, division: str) -> None:
        super().__init__(f"Missing required division: {division}")
        self.division = division


class InvalidModifiers(ProgressionError):
    code = "invalid_modifiers"

    def __init__(self, message: str = "modifiers must be a string or a list of strings") -> None:
        super().__init__(message)


class InvalidPayload(ProgressionError):
    code = "invalid_payload"


class UnknownDivision(ProgressionError):
    code = "unknown_division"

    def __init__(self, division: str) -> None:
        super().__init__(f"Unknown division: {division}")
        self.division = division


class UnknownComponent(ProgressionError):
    code = "unknown_component"

    def __init__(self, division: str, component_id: str) -> None:
        super().__init__(f"Unknown or inactive component '{component_id}' in division {division}")
        self.division = division
        self.component_id = component_id


class UnknownSpecialization(ProgressionError):
    code = "unknown_specialization"

    def __init__(self, track: str) -> None:
        super().__init__(f"Unknown specialization: {track}")
        self.track = track


class QuestNodeNotFound(ProgressionError):
    status_code = 404
    code = "quest_node_not_found"

    def __init__(self, node_id: str) -> None:
        super().__init__(f"Quest node not found: {node_id}")
        self.node_id = node_id


class PrerequisitesNotMet(ProgressionError):
    status_code = 409
    code = "prerequisites_not_met"

    def __init__(self, node_id: str, missing: list[str]) -> None:
        super().__init__(f"Prerequisites not met for {node_id}: {', '.join(missing)}")
        self.node_id = node_id
        self.missing = missing


class InvalidQuestGraph(ProgressionError):
    code = "invalid_quest_graph"


class ProgressionUnavailable(ProgressionError):
    """Raised when a unit of work keeps failing on transient database errors."""

    status_code = 503
    code = "progression_unavailable"
