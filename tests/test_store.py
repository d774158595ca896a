import json

import pytest

from conftest import MONDAY, TUESDAY, build_config, build_project, build_session
from pfe_scheduler.errors import (
    DuplicateSessionError,
    InvalidConfigurationError,
    ProjectNotFoundError,
    SessionNotFoundError,
    StorageError,
)
from pfe_scheduler.models import DefenseSession, Room
from pfe_scheduler.store import JsonScheduleStore, ScheduleStore


def _session(project_id, day=MONDAY, start=480, batch="1", room_id="a1"):
    return DefenseSession(
        session_id=f"{batch}:{project_id}",
        project_id=project_id,
        batch=batch,
        day=day,
        start=start,
        end=start + 60,
        room_id=room_id,
    )


class TestScheduleStore:
    def test_add_and_get(self):
        store = ScheduleStore()
        store.register_projects([build_project("p1", president="dr-x")])
        stored = store.add(_session("p1"))
        assert store.get("1:p1") == stored
        # constrained people come from the registered project
        assert "dr-x" in stored.person_ids

    def test_add_twice_is_rejected(self):
        store = ScheduleStore()
        store.add(_session("p1"))
        with pytest.raises(DuplicateSessionError):
            store.add(_session("p1", day=TUESDAY))

    def test_update_unknown_session(self):
        with pytest.raises(SessionNotFoundError):
            ScheduleStore().update(_session("p1"))

    def test_delete(self):
        store = ScheduleStore()
        store.add(_session("p1"))
        assert store.delete("1:p1").project_id == "p1"
        with pytest.raises(SessionNotFoundError):
            store.delete("1:p1")

    def test_delete_batch_only_touches_that_batch(self):
        store = ScheduleStore()
        store.add(_session("p1"))
        store.add(_session("p2", start=600))
        store.add(_session("q1", batch="2"))
        assert store.delete_batch("1") == 2
        assert store.delete_batch("1") == 0
        assert [s.session_id for s in store.list_sessions()] == ["2:q1"]

    def test_list_sessions_filters_and_sorts(self):
        store = ScheduleStore()
        store.add(_session("late", day=TUESDAY))
        store.add(_session("b", start=600))
        store.add(_session("a", start=480, room_id="a2"))
        assert [s.project_id for s in store.list_sessions()] == ["a", "b", "late"]
        assert [s.project_id for s in store.list_sessions(start=TUESDAY)] == ["late"]
        assert [s.project_id for s in store.list_sessions(end=MONDAY)] == ["a", "b"]

    def test_session_for_project(self):
        store = ScheduleStore()
        store.add(_session("p1"))
        assert store.session_for_project("1", "p1").session_id == "1:p1"
        assert store.session_for_project("2", "p1") is None

    def test_unknown_configuration_and_project(self):
        store = ScheduleStore()
        with pytest.raises(InvalidConfigurationError):
            store.get_configuration("1")
        with pytest.raises(ProjectNotFoundError):
            store.get_project("p1")

    def test_jury_change_for_scheduled_project(self):
        store = ScheduleStore()
        store.register_projects([build_project("p1")])
        store.add(_session("p1"))
        with pytest.raises(InvalidConfigurationError):
            store.register_projects([build_project("p1", examiner="dr-other")])
        assert store.get_project("p1") == build_project("p1")
        # same jury, or a batch being replaced, is fine
        store.register_projects([build_project("p1")])
        store.check_projects([build_project("p1", examiner="dr-other")], ignore_batch="1")
        store.delete_batch("1")
        store.register_projects([build_project("p1", examiner="dr-other")])
        assert store.get_project("p1").examiner_id == "dr-other"


class FailingJsonStore(JsonScheduleStore):
    fail = False

    def _persist(self):
        if self.fail:
            raise OSError("read-only file system")
        super()._persist()


class TestJsonScheduleStore:
    def test_round_trip(self, tmp_path):
        path = tmp_path / "store" / "schedule.json"
        config = build_config(excluded_dates=frozenset({TUESDAY}))
        rooms = [Room.named("Amphi A"), Room.named("B2")]
        store = JsonScheduleStore(path)
        store.save_configuration(config, rooms)
        store.register_projects([build_project("p1", co_supervisor="dr-co")])
        store.add(_session("p1", room_id="amphi-a"))

        reloaded = JsonScheduleStore(path)
        assert reloaded.get_configuration("1") == (config, rooms)
        assert reloaded.get_project("p1") == store.get_project("p1")
        session = reloaded.get("1:p1")
        assert session == store.get("1:p1")
        assert session.person_ids == frozenset({"pres-p1", "exam-p1", "sup-p1", "dr-co"})

    def test_document_layout(self, tmp_path):
        path = tmp_path / "schedule.json"
        store = JsonScheduleStore(path)
        store.add(build_session("1:p1", MONDAY, 480, 540))
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["sessions"] == [
            {
                "session_id": "1:p1",
                "project_id": "1:p1",
                "batch": "1",
                "date": "2025-03-03",
                "start_time": "08:00",
                "end_time": "09:00",
                "room_id": "a1",
            }
        ]

    def test_failed_write_leaves_store_unchanged(self, tmp_path):
        path = tmp_path / "schedule.json"
        store = FailingJsonStore(path)
        store.add(_session("p1"))
        store.fail = True
        with pytest.raises(StorageError):
            store.add(_session("p2", start=600))
        with pytest.raises(StorageError):
            store.delete("1:p1")
        assert [s.session_id for s in store.list_sessions()] == ["1:p1"]
        store.fail = False
        assert [s["session_id"] for s in json.loads(path.read_text())["sessions"]] == ["1:p1"]
