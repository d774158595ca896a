"""
Reschedule validator: moves, time edits and manual bookings.

A move releases the session from the tracker, re-checks every constraint for
the new date/time and either commits (picking a free room when none is given)
or puts the original reservation back and raises a single-cause error.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date
from typing import List, Optional, Sequence

from .availability import AvailabilityTracker
from .calendar_model import day_start_times, fits_working_hours, in_period, non_working_reason
from .engine import find_blocker
from .errors import (
    DuplicateSessionError,
    ExcludedDateError,
    InvalidConfigurationError,
    NoFeasibleSlotError,
    OutsideSchedulingPeriodError,
    OutsideWorkingHoursError,
    RescheduleError,
)
from .models import (
    CalendarConfig,
    DefenseSession,
    Project,
    Room,
    format_hhmm,
    session_id_for,
    validate_rooms,
)
from .store import ScheduleStore

logger = logging.getLogger(__name__)


class RescheduleValidator:
    def __init__(
        self,
        config: CalendarConfig,
        rooms: Sequence[Room],
        tracker: AvailabilityTracker,
        store: ScheduleStore,
    ) -> None:
        config.validate()
        self.config = config
        self.rooms = validate_rooms(rooms)
        self.tracker = tracker
        self.store = store

    def reschedule(
        self,
        session_id: str,
        new_date: Optional[date] = None,
        new_start: Optional[int] = None,
        room_id: Optional[str] = None,
    ) -> DefenseSession:
        """
        Move a session to ``new_date`` and/or ``new_start``.

        Without a new date the session stays on its day (time edit); without a
        new start it keeps its start time (drag to another day). On any
        rejection the original session is left exactly as it was.
        """
        original = self.store.get(session_id)
        day = new_date or original.day
        start = original.start if new_start is None else new_start

        self.tracker.release(original)
        try:
            self._check_day(day)
            end = self._check_hours(start)
            room = self._place(original.person_ids, day, start, end, room_id)
            updated = replace(original, day=day, start=start, end=end, room_id=room)
            updated = self.store.update(updated)
        except Exception as exc:
            self.tracker.reserve(original)
            if isinstance(exc, RescheduleError):
                logger.info("Rejected move of session %s to %s %s: %s", session_id, day, format_hhmm(start), exc)
            raise
        self.tracker.reserve(updated)
        logger.info(
            "Session %s moved to %s %s-%s in %s",
            session_id,
            updated.day.isoformat(),
            updated.start_time,
            updated.end_time,
            updated.room_id,
        )
        return updated

    def move(self, session_id: str, new_date: date, room_id: Optional[str] = None) -> DefenseSession:
        return self.reschedule(session_id, new_date=new_date, room_id=room_id)

    def edit_time(self, session_id: str, new_start: int, room_id: Optional[str] = None) -> DefenseSession:
        return self.reschedule(session_id, new_start=new_start, room_id=room_id)

    def book(
        self,
        project: Project,
        day: date,
        start: Optional[int] = None,
        room_id: Optional[str] = None,
    ) -> DefenseSession:
        """Create a session by hand; without ``start`` the earliest feasible slot of ``day`` is used."""
        project.validate()
        existing = self.store.session_for_project(self.config.batch, project.project_id)
        if existing is not None:
            raise DuplicateSessionError(project.project_id, existing.session_id)
        self._check_day(day)

        if start is not None:
            starts = [start]
        else:
            starts = day_start_times(self.config)
            if not starts:
                raise NoFeasibleSlotError(project.project_id, f"no slot fits in working hours on {day.isoformat()}")

        first_error: Optional[RescheduleError] = None
        for candidate in starts:
            end = self._check_hours(candidate)
            try:
                room = self._place(project.person_ids, day, candidate, end, room_id)
            except RescheduleError as exc:
                first_error = first_error or exc
                continue
            session = DefenseSession(
                session_id=session_id_for(self.config.batch, project.project_id),
                project_id=project.project_id,
                batch=self.config.batch,
                day=day,
                start=candidate,
                end=end,
                room_id=room,
                person_ids=project.person_ids,
            )
            session = self.store.add(session)
            self.tracker.reserve(session)
            logger.info("Booked session %s on %s %s in %s", session.session_id, day, session.start_time, room)
            return session
        if first_error is None:
            raise NoFeasibleSlotError(project.project_id, f"no slot fits in working hours on {day.isoformat()}")
        raise first_error

    def _check_day(self, day: date) -> None:
        if not in_period(self.config, day):
            raise OutsideSchedulingPeriodError(day, self.config.start_date, self.config.last_date)
        reason = non_working_reason(self.config, day)
        if reason is not None:
            raise ExcludedDateError(day, reason)

    def _check_hours(self, start: int) -> int:
        end = start + self.config.session_duration
        if not fits_working_hours(self.config, start, end):
            raise OutsideWorkingHoursError(
                format_hhmm(start),
                format_hhmm(end),
                format_hhmm(self.config.working_start),
                format_hhmm(self.config.working_end),
            )
        return end

    def _candidate_rooms(self, room_id: Optional[str]) -> List[Room]:
        if room_id is None:
            return self.rooms
        for room in self.rooms:
            if room.room_id == room_id:
                return [room]
        raise InvalidConfigurationError(f"Unknown room '{room_id}'", field="room_id")

    def _place(self, person_ids, day: date, start: int, end: int, room_id: Optional[str]) -> str:
        first_error: Optional[RescheduleError] = None
        for room in self._candidate_rooms(room_id):
            blocker = find_blocker(self.tracker, self.config, room.room_id, person_ids, day, start, end)
            if blocker is None:
                return room.room_id
            first_error = first_error or blocker
        if first_error is None:
            raise InvalidConfigurationError("At least one room is required", field="rooms")
        raise first_error


__all__ = ["RescheduleValidator"]
