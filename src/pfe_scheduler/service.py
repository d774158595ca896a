"""
Scheduling service: the single entry point collaborators call.

It owns the live occupancy ledger, serializes access to it through
``ScheduleLocks`` and routes every change through the schedule store.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence

from .analysis import audit_sessions, participant_schedule
from .availability import AvailabilityTracker
from .engine import AssignmentEngine, validate_projects
from .locks import ScheduleLocks
from .models import CalendarConfig, DefenseSession, Project, Room, ScheduleResult, validate_rooms
from .reschedule import RescheduleValidator
from .store import ScheduleStore

logger = logging.getLogger(__name__)


class SchedulingService:
    def __init__(self, store: Optional[ScheduleStore] = None) -> None:
        self.store = store if store is not None else ScheduleStore()
        self.locks = ScheduleLocks()
        self.tracker = AvailabilityTracker.from_sessions(self.store.list_sessions())

    def generate(
        self,
        projects: Sequence[Project],
        rooms: Sequence[Room],
        config: CalendarConfig,
    ) -> ScheduleResult:
        """
        Replace the sessions of ``config.batch`` with a fresh greedy schedule.

        Sessions of other batches stay in the ledger as occupancy.
        """
        config.validate()
        rooms = validate_rooms(rooms)
        validate_projects(projects)
        with self.locks.exclusive():
            self.store.check_projects(projects, ignore_batch=config.batch)
            try:
                removed = self.store.delete_batch(config.batch)
                self.store.save_configuration(config, rooms)
                self.store.register_projects(projects)
                self.tracker = self.rebuild_tracker()
                logger.info(
                    "Generating batch %s: %d project(s), %d room(s), %d previous session(s) removed",
                    config.batch,
                    len(projects),
                    len(rooms),
                    removed,
                )
                engine = AssignmentEngine(config, rooms, tracker=self.tracker, store=self.store)
                return engine.schedule(projects)
            except Exception:
                # earlier writes of this run may have landed; resync with what the store holds
                self.tracker = self.rebuild_tracker()
                logger.error("Generation of batch %s aborted, ledger rebuilt from the store", config.batch)
                raise

    def move_session(self, session_id: str, new_date: date, room_id: Optional[str] = None) -> DefenseSession:
        return self.reschedule(session_id, new_date=new_date, room_id=room_id)

    def edit_session_time(self, session_id: str, new_start: int, room_id: Optional[str] = None) -> DefenseSession:
        return self.reschedule(session_id, new_start=new_start, room_id=room_id)

    def reschedule(
        self,
        session_id: str,
        new_date: Optional[date] = None,
        new_start: Optional[int] = None,
        room_id: Optional[str] = None,
    ) -> DefenseSession:
        while True:
            session = self.store.get(session_id)
            target = new_date or session.day
            with self.locks.dates(session.day, target):
                current = self.store.get(session_id)
                if current.day != session.day:
                    # moved by someone else while we waited; lock the right dates
                    continue
                validator = self._validator(current.batch)
                return validator.reschedule(session_id, new_date=target, new_start=new_start, room_id=room_id)

    def book_session(
        self,
        project_id: str,
        day: date,
        batch: str,
        start: Optional[int] = None,
        room_id: Optional[str] = None,
    ) -> DefenseSession:
        project = self.store.get_project(project_id)
        with self.locks.dates(day):
            return self._validator(batch).book(project, day, start=start, room_id=room_id)

    def delete_session(self, session_id: str) -> DefenseSession:
        while True:
            session = self.store.get(session_id)
            with self.locks.dates(session.day):
                current = self.store.get(session_id)
                if current.day != session.day:
                    continue
                self.store.delete(session_id)
                self.tracker.release(current)
                logger.info("Deleted session %s (project %s)", session_id, current.project_id)
                return current

    def get_session(self, session_id: str) -> DefenseSession:
        return self.store.get(session_id)

    def list_sessions(
        self,
        start: Optional[date] = None,
        end: Optional[date] = None,
        batch: Optional[str] = None,
    ) -> List[DefenseSession]:
        return self.store.list_sessions(start=start, end=end, batch=batch)

    def participant_sessions(self, person_id: str) -> List[DefenseSession]:
        return participant_schedule(self.store.list_sessions(), person_id)

    def audit(self) -> Dict:
        return audit_sessions(self.store.list_sessions())

    def rebuild_tracker(self) -> AvailabilityTracker:
        return AvailabilityTracker.from_sessions(self.store.list_sessions())

    def register_projects(self, projects: Iterable[Project]) -> None:
        self.store.register_projects(projects)

    def _validator(self, batch: str) -> RescheduleValidator:
        config, rooms = self.store.get_configuration(batch)
        return RescheduleValidator(config, rooms, self.tracker, self.store)


__all__ = ["SchedulingService"]
