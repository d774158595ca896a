"""
Error taxonomy for the defense scheduler.

Every error carries a stable ``code`` so the HTTP layer and the operator UI can
explain a rejection without parsing the message.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, Optional


class SchedulingError(Exception):
    """Base exception for scheduling errors."""

    code = "scheduling_error"

    def __init__(self, message: str, code: Optional[str] = None):
        self.message = message
        if code is not None:
            self.code = code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class InvalidConfigurationError(SchedulingError):
    """Raised before any scheduling attempt when the input cannot be used."""

    code = "invalid_configuration"

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        if self.field:
            payload["field"] = self.field
        return payload


class NoFeasibleSlotError(SchedulingError):
    """No (slot, room) pair satisfies a project's constraints."""

    code = "no_feasible_slot"

    def __init__(self, project_id: str, message: str = "no feasible slot"):
        self.project_id = project_id
        super().__init__(message)


class RescheduleError(SchedulingError):
    """A move, time edit or manual booking was rejected; nothing was changed."""


class ExcludedDateError(RescheduleError):
    code = "excluded_date"

    def __init__(self, day: date, reason: str = "non-working day"):
        self.day = day
        self.reason = reason
        super().__init__(f"{day.isoformat()} is excluded from scheduling ({reason})")

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload.update({"date": self.day.isoformat(), "reason": self.reason})
        return payload


class OutsideSchedulingPeriodError(ExcludedDateError):
    code = "outside_scheduling_period"

    def __init__(self, day: date, start: date, end: date):
        self.period = (start, end)
        super().__init__(
            day, f"outside the defense period {start.isoformat()} .. {end.isoformat()}"
        )


class OutsideWorkingHoursError(RescheduleError):
    code = "outside_working_hours"

    def __init__(self, start: str, end: str, working_start: str, working_end: str):
        self.start = start
        self.end = end
        super().__init__(
            f"Session {start}-{end} does not fit in working hours {working_start}-{working_end}"
        )

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload.update({"start_time": self.start, "end_time": self.end})
        return payload


class RoomConflictError(RescheduleError):
    code = "room_conflict"

    def __init__(self, room_id: str, blocking_session_id: Optional[str] = None):
        self.room_id = room_id
        self.blocking_session_id = blocking_session_id
        detail = f" (held by session {blocking_session_id})" if blocking_session_id else ""
        super().__init__(f"Room {room_id} is not free for this slot{detail}")

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload.update({"room_id": self.room_id, "blocking_session_id": self.blocking_session_id})
        return payload


class PersonConflictError(RescheduleError):
    code = "person_conflict"

    def __init__(self, person_id: str, blocking_session_id: Optional[str] = None):
        self.person_id = person_id
        self.blocking_session_id = blocking_session_id
        detail = f" (busy in session {blocking_session_id})" if blocking_session_id else ""
        super().__init__(f"{person_id} is already sitting in another defense at this time{detail}")

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload.update({"person_id": self.person_id, "blocking_session_id": self.blocking_session_id})
        return payload


class DuplicateSessionError(RescheduleError):
    code = "duplicate_session"

    def __init__(self, project_id: str, session_id: str):
        self.project_id = project_id
        self.session_id = session_id
        super().__init__(f"Project {project_id} already has session {session_id}")


class SessionNotFoundError(SchedulingError):
    code = "session_not_found"

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} not found")


class ProjectNotFoundError(SchedulingError):
    code = "project_not_found"

    def __init__(self, project_id: str):
        self.project_id = project_id
        super().__init__(f"Project {project_id} not found")


class StorageError(SchedulingError):
    """The schedule store could not durably record a change."""

    code = "storage_error"


__all__ = [
    "SchedulingError",
    "InvalidConfigurationError",
    "NoFeasibleSlotError",
    "RescheduleError",
    "ExcludedDateError",
    "OutsideSchedulingPeriodError",
    "OutsideWorkingHoursError",
    "RoomConflictError",
    "PersonConflictError",
    "DuplicateSessionError",
    "SessionNotFoundError",
    "ProjectNotFoundError",
    "StorageError",
]
