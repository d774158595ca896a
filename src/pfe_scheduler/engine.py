"""
Assignment engine: greedy earliest-slot placement of defenses.

Projects are placed in the order they are given. For each project the slot
timeline is walked from the beginning and rooms are tried in configuration
order; the first (slot, room) pair where the room and every jury member and
supervisor are free wins. The same input always produces the same schedule.
"""

from __future__ import annotations

import logging
import time
from datetime import date
from typing import TYPE_CHECKING, FrozenSet, Iterable, List, Optional, Sequence

from .availability import AvailabilityTracker
from .calendar_model import generate_slots
from .errors import (
    InvalidConfigurationError,
    NoFeasibleSlotError,
    PersonConflictError,
    RescheduleError,
    RoomConflictError,
)
from .models import (
    CalendarConfig,
    DefenseSession,
    Project,
    Room,
    ScheduleResult,
    Slot,
    UnassignedProject,
    session_id_for,
    validate_rooms,
)

if TYPE_CHECKING:
    from .store import ScheduleStore

logger = logging.getLogger(__name__)


def find_blocker(
    tracker: AvailabilityTracker,
    config: CalendarConfig,
    room_id: str,
    person_ids: FrozenSet[str],
    day: date,
    start: int,
    end: int,
) -> Optional[RescheduleError]:
    """
    First reason a defense cannot sit in ``room_id`` at [start, end) on ``day``.

    The room must also be free for ``break_duration`` minutes on either side;
    people only need the bare interval.
    """
    gap = config.break_duration
    blocking = tracker.room_blocker(room_id, day, start - gap, end + gap)
    if blocking is not None:
        return RoomConflictError(room_id, blocking)
    for person_id in sorted(person_ids):
        blocking = tracker.person_blocker(person_id, day, start, end)
        if blocking is not None:
            return PersonConflictError(person_id, blocking)
    return None


def validate_projects(projects: Sequence[Project]) -> None:
    seen = set()
    for project in projects:
        project.validate()
        if project.project_id in seen:
            raise InvalidConfigurationError(f"Duplicate project '{project.project_id}'", field="projects")
        seen.add(project.project_id)


class AssignmentEngine:
    def __init__(
        self,
        config: CalendarConfig,
        rooms: Sequence[Room],
        tracker: Optional[AvailabilityTracker] = None,
        store: Optional["ScheduleStore"] = None,
    ) -> None:
        config.validate()
        self.config = config
        self.rooms = validate_rooms(rooms)
        self.tracker = tracker if tracker is not None else AvailabilityTracker()
        self.store = store

    def schedule(self, projects: Iterable[Project]) -> ScheduleResult:
        projects = list(projects)
        validate_projects(projects)

        started = time.time()
        timeline = list(generate_slots(self.config))
        logger.info(
            "Scheduling %d project(s) for batch %s: %d slot(s) x %d room(s)",
            len(projects),
            self.config.batch,
            len(timeline),
            len(self.rooms),
        )

        result = ScheduleResult()
        for project in projects:
            session = self._place(project, timeline)
            if session is None:
                error = NoFeasibleSlotError(project.project_id)
                result.unassigned.append(UnassignedProject(project.project_id, error.message, error.code))
                continue
            self._commit(session)
            result.assigned.append(session)

        result.elapsed_sec = time.time() - started
        logger.info(
            "Batch %s: %d scheduled, %d unassigned in %.3fs",
            self.config.batch,
            result.created_count,
            result.unassigned_count,
            result.elapsed_sec,
        )
        if result.unassigned:
            logger.warning(
                "Some defenses could not be scheduled: %s",
                [item.project_id for item in result.unassigned],
            )
        return result

    def _place(self, project: Project, timeline: List[Slot]) -> Optional[DefenseSession]:
        people = project.person_ids
        for slot in timeline:
            for room in self.rooms:
                blocker = find_blocker(self.tracker, self.config, room.room_id, people, slot.day, slot.start, slot.end)
                if blocker is not None:
                    continue
                return DefenseSession(
                    session_id=session_id_for(self.config.batch, project.project_id),
                    project_id=project.project_id,
                    batch=self.config.batch,
                    day=slot.day,
                    start=slot.start,
                    end=slot.end,
                    room_id=room.room_id,
                    person_ids=people,
                )
        return None

    def _commit(self, session: DefenseSession) -> None:
        # reserve only once the store has the session
        if self.store is not None:
            self.store.add(session)
        self.tracker.reserve(session)


def schedule(
    projects: Iterable[Project],
    rooms: Sequence[Room],
    config: CalendarConfig,
    tracker: Optional[AvailabilityTracker] = None,
    store: Optional["ScheduleStore"] = None,
) -> ScheduleResult:
    return AssignmentEngine(config, rooms, tracker=tracker, store=store).schedule(projects)


__all__ = ["AssignmentEngine", "schedule", "find_blocker", "validate_projects"]
