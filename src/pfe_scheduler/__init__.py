"""PFE Defense Scheduler - Core Package

Greedy oral-defense session scheduling with conflict-checked rescheduling.
"""

__version__ = "1.0.0"
__author__ = "PFE Platform Team"

from .availability import AvailabilityTracker
from .calendar_model import generate_slots, non_working_reason
from .engine import AssignmentEngine, schedule
from .errors import (
    ExcludedDateError,
    InvalidConfigurationError,
    NoFeasibleSlotError,
    OutsideSchedulingPeriodError,
    OutsideWorkingHoursError,
    PersonConflictError,
    RoomConflictError,
    SchedulingError,
    SessionNotFoundError,
    StorageError,
)
from .models import CalendarConfig, DefenseSession, Project, Room, ScheduleResult, Slot
from .reschedule import RescheduleValidator
from .service import SchedulingService
from .store import JsonScheduleStore, ScheduleStore

__all__ = [
    "AvailabilityTracker",
    "generate_slots",
    "non_working_reason",
    "AssignmentEngine",
    "schedule",
    "ExcludedDateError",
    "InvalidConfigurationError",
    "NoFeasibleSlotError",
    "OutsideSchedulingPeriodError",
    "OutsideWorkingHoursError",
    "PersonConflictError",
    "RoomConflictError",
    "SchedulingError",
    "SessionNotFoundError",
    "StorageError",
    "CalendarConfig",
    "DefenseSession",
    "Project",
    "Room",
    "ScheduleResult",
    "Slot",
    "RescheduleValidator",
    "SchedulingService",
    "JsonScheduleStore",
    "ScheduleStore",
]
