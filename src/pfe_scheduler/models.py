"""
Data records shared by the calendar, the tracker, the engine and the store.

Times of day are whole minutes since midnight; ``parse_hhmm`` / ``format_hhmm``
convert from and to the ``HH:MM`` strings used at the edges.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Tuple

from .errors import InvalidConfigurationError

MINUTES_PER_DAY = 24 * 60

WEEKDAYS = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}

_HHMM = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")


def parse_hhmm(value: Any, field_name: str = "time") -> int:
    """Parse ``HH:MM`` (or ``HH:MM:00``) into minutes since midnight."""
    if isinstance(value, int):
        minutes = value
    else:
        match = _HHMM.match(str(value).strip())
        if not match:
            raise InvalidConfigurationError(f"Invalid time '{value}', expected HH:MM", field=field_name)
        hours, mins = int(match.group(1)), int(match.group(2))
        if hours > 24 or mins > 59 or (hours == 24 and mins):
            raise InvalidConfigurationError(f"Invalid time '{value}'", field=field_name)
        if match.group(3) and int(match.group(3)):
            raise InvalidConfigurationError(f"Invalid time '{value}', times are whole minutes", field=field_name)
        minutes = hours * 60 + mins
    if not 0 <= minutes <= MINUTES_PER_DAY:
        raise InvalidConfigurationError(f"Time {value} is outside the day", field=field_name)
    return minutes


def format_hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def parse_date(value: Any, field_name: str = "date") -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        raise InvalidConfigurationError(f"Invalid date '{value}', expected YYYY-MM-DD", field=field_name)


def slugify(value: str) -> str:
    return (
        value.strip()
        .lower()
        .replace(" ", "-")
        .replace("/", "-")
        .replace("|", "-")
        .replace(".", "-")
    )


@dataclass(frozen=True)
class Project:
    """A project with an approved jury, ready to be defended."""

    project_id: str
    title: str
    president_id: str
    examiner_id: str
    supervisor_id: str
    co_supervisor_id: Optional[str] = None
    students: Tuple[str, ...] = ()
    option: Optional[str] = None

    @property
    def person_ids(self) -> FrozenSet[str]:
        """People who cannot be in two defenses at once, whatever their role."""
        people = (self.president_id, self.examiner_id, self.supervisor_id, self.co_supervisor_id)
        return frozenset(pid for pid in people if pid)

    @property
    def roles(self) -> Dict[str, Optional[str]]:
        return {
            "president": self.president_id,
            "examiner": self.examiner_id,
            "supervisor": self.supervisor_id,
            "co_supervisor": self.co_supervisor_id,
        }

    def validate(self) -> None:
        if not self.project_id:
            raise InvalidConfigurationError("Project id is required", field="project_id")
        for role in ("president", "examiner", "supervisor"):
            if not self.roles[role]:
                raise InvalidConfigurationError(
                    f"Project {self.project_id} has no {role}", field=f"{role}_id"
                )
        if len(self.students) > 2:
            raise InvalidConfigurationError(
                f"Project {self.project_id} has {len(self.students)} students (max 2)", field="students"
            )

    def to_record(self) -> Dict[str, Any]:
        return {
            "project_id": self.project_id,
            "title": self.title,
            "president_id": self.president_id,
            "examiner_id": self.examiner_id,
            "supervisor_id": self.supervisor_id,
            "co_supervisor_id": self.co_supervisor_id,
            "students": list(self.students),
            "option": self.option,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Project":
        return cls(
            project_id=str(record["project_id"]),
            title=record.get("title") or "",
            president_id=record["president_id"],
            examiner_id=record["examiner_id"],
            supervisor_id=record["supervisor_id"],
            co_supervisor_id=record.get("co_supervisor_id") or None,
            students=tuple(record.get("students") or ()),
            option=record.get("option"),
        )


@dataclass(frozen=True)
class Room:
    room_id: str
    name: str

    @classmethod
    def named(cls, name: str) -> "Room":
        return cls(room_id=slugify(name), name=name.strip())


def validate_rooms(rooms: Sequence[Room]) -> List[Room]:
    """
    Check room names are unique (case-insensitive) and return the rooms with unique ids.

    Ids derived from names (see ``Room.named``) that collide get a numeric
    suffix; a duplicate id set explicitly is rejected.
    """
    if not rooms:
        raise InvalidConfigurationError("At least one room is required", field="rooms")
    explicit_ids = [room.room_id for room in rooms if room.room_id != slugify(room.name)]
    for room_id in explicit_ids:
        if explicit_ids.count(room_id) > 1:
            raise InvalidConfigurationError(f"Duplicate room id '{room_id}'", field="rooms")
    taken = set(explicit_ids)
    seen_names = set()
    checked = []
    for room in rooms:
        key = room.name.strip().casefold()
        if not key:
            raise InvalidConfigurationError("Room name must not be empty", field="rooms")
        if key in seen_names:
            raise InvalidConfigurationError(f"Duplicate room name '{room.name}'", field="rooms")
        seen_names.add(key)
        if room.room_id == slugify(room.name):
            if room.room_id in taken:
                suffix = 2
                while f"{room.room_id}-{suffix}" in taken:
                    suffix += 1
                room = Room(room_id=f"{room.room_id}-{suffix}", name=room.name)
            taken.add(room.room_id)
        checked.append(room)
    return checked


@dataclass(frozen=True)
class CalendarConfig:
    """Immutable description of the defense calendar for one batch."""

    working_start: int
    working_end: int
    start_date: date
    session_duration: int = 60
    break_duration: int = 60
    batch: str = "1"
    excluded_dates: FrozenSet[date] = frozenset()
    day_off: Optional[int] = WEEKDAYS["friday"]
    holidays: FrozenSet[Tuple[int, int]] = frozenset()
    end_date: Optional[date] = None
    horizon_days: int = 60

    @property
    def last_date(self) -> date:
        if self.end_date is not None:
            return self.end_date
        return date.fromordinal(self.start_date.toordinal() + self.horizon_days - 1)

    @property
    def slot_step(self) -> int:
        return self.session_duration + self.break_duration

    def validate(self) -> None:
        if self.working_start >= self.working_end:
            raise InvalidConfigurationError("Start time must be before end time", field="working_start")
        if self.session_duration <= 0:
            raise InvalidConfigurationError("Session duration must be positive", field="session_duration")
        if self.break_duration < 0:
            raise InvalidConfigurationError("Break duration must not be negative", field="break_duration")
        if self.end_date is not None and self.end_date < self.start_date:
            raise InvalidConfigurationError("Start date must not be after end date", field="end_date")
        if self.end_date is None and self.horizon_days <= 0:
            raise InvalidConfigurationError("horizon_days must be positive", field="horizon_days")
        if self.day_off is not None and not 0 <= self.day_off <= 6:
            raise InvalidConfigurationError("day_off must be a weekday", field="day_off")

    def to_record(self) -> Dict[str, Any]:
        return {
            "working_start": format_hhmm(self.working_start),
            "working_end": format_hhmm(self.working_end),
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "session_duration": self.session_duration,
            "break_duration": self.break_duration,
            "batch": self.batch,
            "excluded_dates": sorted(d.isoformat() for d in self.excluded_dates),
            "day_off": self.day_off,
            "holidays": sorted(f"{m:02d}-{d:02d}" for m, d in self.holidays),
            "horizon_days": self.horizon_days,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "CalendarConfig":
        holidays = set()
        for item in record.get("holidays") or []:
            month, day = str(item).split("-")
            holidays.add((int(month), int(day)))
        end_date = record.get("end_date")
        return cls(
            working_start=parse_hhmm(record["working_start"], "working_start"),
            working_end=parse_hhmm(record["working_end"], "working_end"),
            start_date=parse_date(record["start_date"], "start_date"),
            end_date=parse_date(end_date, "end_date") if end_date else None,
            session_duration=int(record.get("session_duration", 60)),
            break_duration=int(record.get("break_duration", 60)),
            batch=str(record.get("batch", "1")),
            excluded_dates=frozenset(parse_date(d, "excluded_dates") for d in record.get("excluded_dates") or []),
            day_off=record.get("day_off", WEEKDAYS["friday"]),
            holidays=frozenset(holidays),
            horizon_days=int(record.get("horizon_days", 60)),
        )


@dataclass(frozen=True)
class Slot:
    day: date
    start: int
    end: int

    @property
    def start_time(self) -> str:
        return format_hhmm(self.start)

    @property
    def end_time(self) -> str:
        return format_hhmm(self.end)


@dataclass(frozen=True)
class DefenseSession:
    """
    A scheduled defense.

    ``person_ids`` is the constrained person set of the project; it is not part
    of the persisted record and is rehydrated from the project on load.
    """

    session_id: str
    project_id: str
    batch: str
    day: date
    start: int
    end: int
    room_id: str
    person_ids: FrozenSet[str] = field(default_factory=frozenset, compare=False)

    @property
    def slot(self) -> Slot:
        return Slot(self.day, self.start, self.end)

    @property
    def start_time(self) -> str:
        return format_hhmm(self.start)

    @property
    def end_time(self) -> str:
        return format_hhmm(self.end)

    def overlaps(self, other: "DefenseSession") -> bool:
        return self.day == other.day and self.start < other.end and other.start < self.end

    def to_record(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "project_id": self.project_id,
            "batch": self.batch,
            "date": self.day.isoformat(),
            "start_time": self.start_time,
            "end_time": self.end_time,
            "room_id": self.room_id,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any], person_ids: FrozenSet[str] = frozenset()) -> "DefenseSession":
        return cls(
            session_id=str(record["session_id"]),
            project_id=str(record["project_id"]),
            batch=str(record.get("batch", "1")),
            day=parse_date(record["date"]),
            start=parse_hhmm(record["start_time"], "start_time"),
            end=parse_hhmm(record["end_time"], "end_time"),
            room_id=str(record["room_id"]),
            person_ids=frozenset(person_ids),
        )


def session_id_for(batch: str, project_id: str) -> str:
    return f"{batch}:{project_id}"


@dataclass
class UnassignedProject:
    project_id: str
    reason: str
    code: str = "no_feasible_slot"

    def to_record(self) -> Dict[str, Any]:
        return {"project_id": self.project_id, "reason": self.reason, "code": self.code}


@dataclass
class ScheduleResult:
    assigned: List[DefenseSession] = field(default_factory=list)
    unassigned: List[UnassignedProject] = field(default_factory=list)
    elapsed_sec: float = 0.0

    @property
    def created_count(self) -> int:
        return len(self.assigned)

    @property
    def unassigned_count(self) -> int:
        return len(self.unassigned)

    def summary(self) -> Dict[str, Any]:
        return {
            "created_count": self.created_count,
            "unassigned_count": self.unassigned_count,
            "unassigned": [item.to_record() for item in self.unassigned],
            "sessions": [session.to_record() for session in self.assigned],
            "elapsed_sec": round(self.elapsed_sec, 4),
        }


__all__ = [
    "MINUTES_PER_DAY",
    "WEEKDAYS",
    "parse_hhmm",
    "format_hhmm",
    "parse_date",
    "slugify",
    "Project",
    "Room",
    "validate_rooms",
    "CalendarConfig",
    "Slot",
    "DefenseSession",
    "session_id_for",
    "UnassignedProject",
    "ScheduleResult",
]
