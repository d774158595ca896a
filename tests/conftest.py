import os
import tempfile

# The API reads its data directory at import time
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="pfe-test-data-"))

from datetime import date

import pytest

from pfe_scheduler.calendar_model import DEFAULT_HOLIDAYS
from pfe_scheduler.models import CalendarConfig, DefenseSession, Project, Room
from pfe_scheduler.service import SchedulingService

MONDAY = date(2025, 3, 3)
TUESDAY = date(2025, 3, 4)
WEDNESDAY = date(2025, 3, 5)
FRIDAY = date(2025, 3, 7)
PERIOD_END = date(2025, 3, 31)


def build_config(**overrides) -> CalendarConfig:
    values = dict(
        working_start=8 * 60,
        working_end=16 * 60,
        start_date=MONDAY,
        end_date=PERIOD_END,
        session_duration=60,
        break_duration=60,
        holidays=DEFAULT_HOLIDAYS,
    )
    values.update(overrides)
    return CalendarConfig(**values)


def build_project(project_id: str, **people) -> Project:
    return Project(
        project_id=project_id,
        title=f"Project {project_id}",
        president_id=people.get("president", f"pres-{project_id}"),
        examiner_id=people.get("examiner", f"exam-{project_id}"),
        supervisor_id=people.get("supervisor", f"sup-{project_id}"),
        co_supervisor_id=people.get("co_supervisor"),
        students=(f"student-{project_id}",),
    )


def build_session(session_id: str, day: date, start: int, end: int, room_id: str = "a1", people=()) -> DefenseSession:
    return DefenseSession(
        session_id=session_id,
        project_id=session_id,
        batch="1",
        day=day,
        start=start,
        end=end,
        room_id=room_id,
        person_ids=frozenset(people),
    )


@pytest.fixture
def config():
    return build_config()


@pytest.fixture
def one_room():
    return [Room.named("A1")]


@pytest.fixture
def two_rooms():
    return [Room.named("A1"), Room.named("A2")]


@pytest.fixture
def three_projects():
    return [build_project("p1"), build_project("p2"), build_project("p3")]


@pytest.fixture
def service():
    return SchedulingService()
