"""Tests for greedy placement of defenses."""

import pytest

from conftest import MONDAY, TUESDAY, build_config, build_project
from pfe_scheduler.analysis import audit_sessions, room_gaps
from pfe_scheduler.availability import AvailabilityTracker
from pfe_scheduler.engine import AssignmentEngine, schedule
from pfe_scheduler.errors import InvalidConfigurationError, StorageError
from pfe_scheduler.models import Room
from pfe_scheduler.store import ScheduleStore


def _times(result):
    return [(s.day, s.start_time, s.room_id) for s in result.assigned]


class TestAssignmentEngine:
    def test_disjoint_juries_one_room(self, config, one_room, three_projects):
        result = schedule(three_projects, one_room, config)
        assert result.unassigned == []
        assert _times(result) == [
            (MONDAY, "08:00", "a1"),
            (MONDAY, "10:00", "a1"),
            (MONDAY, "12:00", "a1"),
        ]

    def test_shared_president_is_pushed_back(self, config, two_rooms):
        projects = [
            build_project("p1", president="dr-x"),
            build_project("p2", president="dr-x"),
        ]
        result = schedule(projects, two_rooms, config)
        p1, p2 = result.assigned
        assert (p1.start_time, p1.room_id) == ("08:00", "a1")
        # 08:00 in the second room is free, but the president is not
        assert (p2.day, p2.start_time, p2.room_id) == (MONDAY, "10:00", "a1")

    def test_shared_president_one_room(self, config, one_room):
        projects = [
            build_project("p1", president="dr-x"),
            build_project("p2", president="dr-x"),
            build_project("p3"),
        ]
        result = schedule(projects, one_room, config)
        assert [s.start_time for s in result.assigned] == ["08:00", "10:00", "12:00"]

    def test_excluded_first_day(self, one_room, three_projects):
        config = build_config(excluded_dates=frozenset({MONDAY}))
        result = schedule(three_projects, one_room, config)
        assert _times(result) == [
            (TUESDAY, "08:00", "a1"),
            (TUESDAY, "10:00", "a1"),
            (TUESDAY, "12:00", "a1"),
        ]

    def test_independent_projects_use_different_rooms(self, config, two_rooms):
        result = schedule([build_project("p1"), build_project("p2")], two_rooms, config)
        assert _times(result) == [(MONDAY, "08:00", "a1"), (MONDAY, "08:00", "a2")]

    def test_same_input_same_schedule(self, config, two_rooms):
        projects = [build_project(f"p{i}", president=f"dr-{i % 3}") for i in range(12)]
        first = schedule(projects, two_rooms, config)
        second = schedule(projects, two_rooms, config)
        assert [s.to_record() for s in first.assigned] == [s.to_record() for s in second.assigned]

    def test_session_ids_are_batch_scoped(self, one_room):
        config = build_config(batch="2")
        result = schedule([build_project("p1")], one_room, config)
        assert result.assigned[0].session_id == "2:p1"
        assert result.assigned[0].batch == "2"

    def test_unplaceable_projects_are_reported(self, one_room):
        config = build_config(end_date=MONDAY)
        projects = [build_project(f"p{i}") for i in range(6)]
        result = schedule(projects, one_room, config)
        assert result.created_count == 4
        assert [u.project_id for u in result.unassigned] == ["p4", "p5"]
        assert {u.code for u in result.unassigned} == {"no_feasible_slot"}

    def test_no_double_booking(self, config, two_rooms):
        projects = [
            build_project(f"p{i}", president=f"dr-{i % 4}", examiner=f"ex-{i % 5}", supervisor=f"sup-{i % 3}")
            for i in range(30)
        ]
        result = schedule(projects, two_rooms, config)
        assert result.unassigned == []
        assert audit_sessions(result.assigned)["num_conflicts"] == 0

    def test_break_between_sessions_of_a_room(self, config, one_room):
        result = schedule([build_project(f"p{i}") for i in range(8)], one_room, config)
        assert all(gap["gap_minutes"] >= config.break_duration for gap in room_gaps(result.assigned))

    def test_existing_occupancy_is_respected(self, config, one_room):
        tracker = AvailabilityTracker()
        schedule([build_project("p1")], one_room, config, tracker=tracker)
        result = schedule([build_project("p2")], one_room, config, tracker=tracker)
        assert result.assigned[0].start_time == "10:00"

    def test_sessions_are_recorded_in_store(self, config, one_room, three_projects):
        store = ScheduleStore()
        store.register_projects(three_projects)
        AssignmentEngine(config, one_room, store=store).schedule(three_projects)
        assert [s.session_id for s in store.list_sessions()] == ["1:p1", "1:p2", "1:p3"]


class TestInputValidation:
    def test_duplicate_project_ids(self, config, one_room):
        with pytest.raises(InvalidConfigurationError):
            schedule([build_project("p1"), build_project("p1")], one_room, config)

    def test_no_rooms(self, config, three_projects):
        with pytest.raises(InvalidConfigurationError) as excinfo:
            schedule(three_projects, [], config)
        assert excinfo.value.field == "rooms"

    def test_duplicate_room_names(self, config, three_projects):
        with pytest.raises(InvalidConfigurationError):
            schedule(three_projects, [Room.named("A1"), Room("other", "a1")], config)

    def test_missing_president(self, config, one_room):
        with pytest.raises(InvalidConfigurationError):
            schedule([build_project("p1", president="")], one_room, config)

    def test_invalid_hours(self, one_room, three_projects):
        with pytest.raises(InvalidConfigurationError):
            schedule(three_projects, one_room, build_config(working_start=16 * 60, working_end=8 * 60))

    def test_rooms_with_colliding_ids(self, config):
        rooms = [Room.named("Salle 1.2"), Room.named("Salle 1-2")]
        result = schedule([build_project("p1"), build_project("p2")], rooms, config)
        assert _times(result) == [(MONDAY, "08:00", "salle-1-2"), (MONDAY, "08:00", "salle-1-2-2")]

    def test_explicit_duplicate_room_id(self, config, three_projects):
        with pytest.raises(InvalidConfigurationError) as excinfo:
            schedule(three_projects, [Room("r1", "North"), Room("r1", "South")], config)
        assert "Duplicate room id" in excinfo.value.message

    def test_named_room_yields_to_explicit_id(self, config):
        engine = AssignmentEngine(config, [Room.named("B2"), Room("b2", "Annex")])
        assert [room.room_id for room in engine.rooms] == ["b2-2", "b2"]


class TestStorageFailure:
    def test_failed_write_stops_the_run(self, config, one_room, three_projects):
        class FailingStore(ScheduleStore):
            def __init__(self):
                super().__init__()
                self.writes = 0

            def _persist(self):
                self.writes += 1
                if self.writes == 2:
                    raise OSError("disk full")

        store = FailingStore()
        tracker = AvailabilityTracker()
        with pytest.raises(StorageError):
            schedule(three_projects, one_room, config, tracker=tracker, store=store)
        # the session whose write failed is neither stored nor reserved
        assert [s.session_id for s in store.list_sessions()] == ["1:p1"]
        assert AvailabilityTracker.from_sessions(store.list_sessions()).occupancy(MONDAY) == tracker.occupancy(MONDAY)
