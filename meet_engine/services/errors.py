# meet_engine/services/errors.py
from dataclasses import dataclass, field
from typing import List, Optional


class SchedulingError(Exception):
    """Base for every error the scheduling engine surfaces to callers."""


class ValidationError(SchedulingError, ValueError):
    """Bad input (empty guest list, end <= start, illegal transition). Never retried."""


class NotFoundError(SchedulingError, LookupError):
    pass


class StorageError(SchedulingError):
    """A write failed. Multi-step operations compensate before raising; retryable."""


class OverlapAbortedError(SchedulingError):
    """The caller asked to abort when the slot overlaps existing commitments."""

    def __init__(self, message: str, conflicting_meeting_ids: Optional[List[int]] = None):
        super().__init__(message)
        self.conflicting_meeting_ids = conflicting_meeting_ids or []


class CollaboratorError(SchedulingError):
    """Video-link, calendar or SMS provider failure. Logged, never fails the primary operation."""


class LedgerError(SchedulingError):
    """A credit debit did not go through."""


@dataclass
class ConflictWarning:
    """
    Advisory overlap. Returned next to a successful result, never raised.
    """

    message: str
    conflicting_meeting_ids: List[int] = field(default_factory=list)
    external_conflicts: int = 0

    def as_dict(self) -> dict:
        return {
            "type": "conflict",
            "message": self.message,
            "conflicting_meeting_ids": self.conflicting_meeting_ids,
            "external_conflicts": self.external_conflicts,
        }
