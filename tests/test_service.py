import threading

import pytest

from conftest import MONDAY, TUESDAY, WEDNESDAY, build_config, build_project
from pfe_scheduler.errors import (
    InvalidConfigurationError,
    ProjectNotFoundError,
    RoomConflictError,
    SessionNotFoundError,
    StorageError,
)
from pfe_scheduler.service import SchedulingService
from pfe_scheduler.store import JsonScheduleStore, ScheduleStore


class CountingStore(ScheduleStore):
    """In-memory store whose n-th write from now fails."""

    def __init__(self):
        super().__init__()
        self.writes = 0
        self.fail_on = None

    def fail_write(self, n):
        self.writes = 0
        self.fail_on = n

    def _persist(self):
        self.writes += 1
        if self.writes == self.fail_on:
            self.fail_on = None
            raise OSError("disk full")


class TestGenerate:
    def test_generate_records_sessions(self, service, config, one_room, three_projects):
        result = service.generate(three_projects, one_room, config)
        assert result.created_count == 3
        assert [s.session_id for s in service.list_sessions()] == ["1:p1", "1:p2", "1:p3"]
        assert len(service.tracker) == 3

    def test_regenerate_replaces_batch(self, service, config, one_room, three_projects):
        service.generate(three_projects, one_room, config)
        service.move_session("1:p1", TUESDAY)
        result = service.generate(three_projects, one_room, config)
        assert [s.to_record() for s in result.assigned] == [s.to_record() for s in service.list_sessions()]
        assert service.get_session("1:p1").day == MONDAY

    def test_other_batches_stay_as_occupancy(self, service, config, two_rooms):
        service.generate([build_project("p1", president="dr-x")], two_rooms, config)
        batch2 = build_config(batch="2")
        result = service.generate([build_project("q1", president="dr-x")], two_rooms, batch2)
        q1 = result.assigned[0]
        assert (q1.day, q1.start_time) == (MONDAY, "10:00")
        assert len(service.list_sessions()) == 2
        assert service.list_sessions(batch="2") == [q1]

    def test_invalid_input_changes_nothing(self, service, config, one_room, three_projects):
        service.generate(three_projects, one_room, config)
        with pytest.raises(InvalidConfigurationError):
            service.generate(three_projects + [build_project("p1")], one_room, config)
        assert len(service.list_sessions()) == 3

    def test_jury_change_rejected_while_sessions_exist(self, service, config, one_room, three_projects):
        service.generate(three_projects, one_room, config)
        changed = build_project("p1", president="dr-new")
        with pytest.raises(InvalidConfigurationError) as excinfo:
            service.generate([changed], one_room, build_config(batch="2"))
        assert excinfo.value.field == "projects"
        assert len(service.list_sessions(batch="1")) == 3
        assert service.store.get_project("p1") == three_projects[0]

    def test_jury_change_allowed_when_regenerating_the_batch(self, service, config, one_room, three_projects):
        service.generate(three_projects, one_room, config)
        changed = build_project("p1", president="dr-new")
        service.generate([changed] + three_projects[1:], one_room, config)
        assert "dr-new" in service.get_session("1:p1").person_ids
        assert [s.session_id for s in service.participant_sessions("dr-new")] == ["1:p1"]


class TestGenerateStorageFailure:
    @pytest.fixture
    def store(self):
        return CountingStore()

    def _assert_ledger_matches_store(self, service):
        replayed = service.rebuild_tracker()
        for day in (MONDAY, TUESDAY, WEDNESDAY):
            assert replayed.occupancy(day) == service.tracker.occupancy(day)
        assert len(service.tracker) == len(service.list_sessions())

    @pytest.mark.parametrize("failing_write", [2, 3], ids=["configuration", "projects"])
    def test_failure_after_batch_delete(self, store, config, one_room, three_projects, failing_write):
        service = SchedulingService(store)
        service.generate(three_projects, one_room, config)
        # 1: delete previous batch, 2: save configuration, 3: register projects
        store.fail_write(failing_write)
        with pytest.raises(StorageError):
            service.generate(three_projects, one_room, config)
        assert service.list_sessions() == []
        self._assert_ledger_matches_store(service)
        booked = service.book_session("p1", MONDAY, "1", start=8 * 60)
        assert booked.room_id == "a1"

    def test_failure_while_adding_sessions(self, store, config, one_room, three_projects):
        service = SchedulingService(store)
        # 1: save configuration, 2: register projects, 3-5: one write per session
        store.fail_write(4)
        with pytest.raises(StorageError):
            service.generate(three_projects, one_room, config)
        assert [s.session_id for s in service.list_sessions()] == ["1:p1"]
        self._assert_ledger_matches_store(service)
        moved = service.move_session("1:p1", TUESDAY)
        assert moved.day == TUESDAY


class TestSessionOperations:
    def test_delete_frees_the_slot(self, service, config, one_room, three_projects):
        service.generate(three_projects, one_room, config)
        deleted = service.delete_session("1:p1")
        assert deleted.start_time == "08:00"
        with pytest.raises(SessionNotFoundError):
            service.get_session("1:p1")
        booked = service.book_session("p1", MONDAY, "1", start=8 * 60)
        assert booked.start_time == "08:00"

    def test_delete_unknown_session(self, service):
        with pytest.raises(SessionNotFoundError):
            service.delete_session("1:nope")

    def test_move_unknown_session(self, service, config, one_room, three_projects):
        service.generate(three_projects, one_room, config)
        with pytest.raises(SessionNotFoundError):
            service.move_session("1:nope", TUESDAY)

    def test_book_unknown_project(self, service, config, one_room, three_projects):
        service.generate(three_projects, one_room, config)
        with pytest.raises(ProjectNotFoundError):
            service.book_session("ghost", TUESDAY, "1")

    def test_book_unconfigured_batch(self, service, config, one_room, three_projects):
        service.generate(three_projects, one_room, config)
        with pytest.raises(InvalidConfigurationError):
            service.book_session("p1", TUESDAY, "9")

    def test_ledger_matches_replay(self, service, config, two_rooms):
        projects = [build_project(f"p{i}", president=f"dr-{i % 2}") for i in range(6)]
        service.generate(projects, two_rooms, config)
        service.move_session("1:p0", TUESDAY)
        service.edit_session_time("1:p3", 14 * 60)
        service.delete_session("1:p5")
        replayed = service.rebuild_tracker()
        for day in (MONDAY, TUESDAY, WEDNESDAY):
            assert replayed.occupancy(day) == service.tracker.occupancy(day)
        assert service.audit()["num_conflicts"] == 0

    def test_participant_sessions(self, service, config, two_rooms):
        projects = [build_project("p1", examiner="dr-y"), build_project("p2", supervisor="dr-y"), build_project("p3")]
        service.generate(projects, two_rooms, config)
        assert [s.project_id for s in service.participant_sessions("dr-y")] == ["p1", "p2"]


class TestConcurrency:
    def test_only_one_move_wins_a_slot(self, service, config, one_room):
        projects = [build_project(f"p{i}") for i in range(4)]
        service.generate(projects, one_room, config)
        outcomes = []
        barrier = threading.Barrier(len(projects))

        def move(session_id):
            barrier.wait()
            try:
                service.reschedule(session_id, new_date=WEDNESDAY, new_start=8 * 60)
                outcomes.append("ok")
            except RoomConflictError:
                outcomes.append("conflict")

        threads = [threading.Thread(target=move, args=(f"1:p{i}",)) for i in range(len(projects))]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert sorted(outcomes) == ["conflict", "conflict", "conflict", "ok"]
        assert len(service.list_sessions(start=WEDNESDAY, end=WEDNESDAY)) == 1
        assert service.audit()["num_conflicts"] == 0

    def test_generation_waits_for_date_operations(self, service, config, one_room, three_projects):
        service.generate(three_projects, one_room, config)
        entered = threading.Event()
        release = threading.Event()
        finished = threading.Event()

        def hold_monday():
            with service.locks.dates(MONDAY):
                entered.set()
                release.wait(timeout=5)

        def regenerate():
            service.generate(three_projects, one_room, config)
            finished.set()

        holder = threading.Thread(target=hold_monday)
        holder.start()
        entered.wait(timeout=5)
        generator = threading.Thread(target=regenerate)
        generator.start()
        assert not finished.wait(timeout=0.2)
        release.set()
        holder.join(timeout=5)
        generator.join(timeout=5)
        assert finished.is_set()


class TestPersistence:
    def test_reload_from_json(self, tmp_path, config, one_room, three_projects):
        path = tmp_path / "schedule.json"
        service = SchedulingService(JsonScheduleStore(path))
        service.generate(three_projects, one_room, config)
        service.move_session("1:p2", TUESDAY)

        reloaded = SchedulingService(JsonScheduleStore(path))
        assert [s.to_record() for s in reloaded.list_sessions()] == [s.to_record() for s in service.list_sessions()]
        assert reloaded.tracker.occupancy(TUESDAY) == service.tracker.occupancy(TUESDAY)
        with pytest.raises(RoomConflictError):
            reloaded.edit_session_time("1:p3", 8 * 60 + 30)


def test_idle_date_locks_are_dropped(service):
    with service.locks.dates(MONDAY, TUESDAY):
        with service.locks.dates(WEDNESDAY):
            assert service.locks.locked_dates() == [MONDAY, TUESDAY, WEDNESDAY]
        assert service.locks.locked_dates() == [MONDAY, TUESDAY]
    assert service.locks.locked_dates() == []
