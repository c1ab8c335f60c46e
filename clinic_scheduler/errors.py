"""Error taxonomy for the scheduling core.

Conflicts are not errors: they surface as ``conflict_reason`` on a selection.
"""
from __future__ import annotations


class GridConfigError(Exception):
    """Malformed TimeGrid (inverted bounds or a tick size that does not divide the day)."""


class InvalidTransition(Exception):
    def __init__(self, from_status, attempted: str):
        self.from_status = from_status
        self.attempted = attempted
        label = getattr(from_status, "value", from_status)
        super().__init__(f"Cannot {attempted} an appointment that is {label}")

    @property
    def message(self) -> str:
        return str(self)


class SlotUnavailable(Exception):
    """A booking or reschedule request whose interval cannot be used."""

    @property
    def reason(self) -> str:
        return str(self)


class PersistenceFailure(Exception):
    """The appointment service rejected a request, was unreachable, or sent a record we cannot read."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
