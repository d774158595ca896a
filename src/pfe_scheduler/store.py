"""
Schedule store: the durable record of defense sessions.

The store keeps no scheduling logic. It records batch configurations, the
project records sessions refer to, and the sessions themselves. A failed
write raises ``StorageError`` and leaves the in-memory view unchanged.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from datetime import date
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .errors import (
    DuplicateSessionError,
    InvalidConfigurationError,
    ProjectNotFoundError,
    SessionNotFoundError,
    StorageError,
)
from .models import CalendarConfig, DefenseSession, Project, Room

logger = logging.getLogger(__name__)


class ScheduleStore:
    """In-memory store. Subclasses persist by overriding ``_persist``."""

    def __init__(self) -> None:
        self._configurations: Dict[str, Tuple[CalendarConfig, List[Room]]] = {}
        self._projects: Dict[str, Project] = {}
        self._sessions: Dict[str, DefenseSession] = {}
        self._lock = threading.RLock()

    # -- batch configuration -------------------------------------------------

    def save_configuration(self, config: CalendarConfig, rooms: Iterable[Room]) -> None:
        rooms = list(rooms)
        with self._lock:
            previous = self._configurations.get(config.batch)

            def revert() -> None:
                if previous is None:
                    self._configurations.pop(config.batch, None)
                else:
                    self._configurations[config.batch] = previous

            self._configurations[config.batch] = (config, rooms)
            self._commit(revert)

    def get_configuration(self, batch: str) -> Tuple[CalendarConfig, List[Room]]:
        with self._lock:
            entry = self._configurations.get(batch)
        if entry is None:
            raise InvalidConfigurationError(f"Batch {batch} has not been configured", field="batch")
        return entry[0], list(entry[1])

    # -- projects ------------------------------------------------------------

    def check_projects(self, projects: Iterable[Project], ignore_batch: Optional[str] = None) -> None:
        """Reject a jury change for a project that still has sessions outside ``ignore_batch``."""
        with self._lock:
            for project in projects:
                known = self._projects.get(project.project_id)
                if known is None or known.person_ids == project.person_ids:
                    continue
                for session in self._sessions.values():
                    if session.project_id == project.project_id and session.batch != ignore_batch:
                        raise InvalidConfigurationError(
                            f"Project '{project.project_id}' has session {session.session_id} "
                            "with a different jury",
                            field="projects",
                        )

    def register_projects(self, projects: Iterable[Project]) -> None:
        projects = list(projects)
        with self._lock:
            self.check_projects(projects)
            previous = dict(self._projects)

            def revert() -> None:
                self._projects = previous

            for project in projects:
                self._projects[project.project_id] = project
            self._commit(revert)

    def get_project(self, project_id: str) -> Project:
        with self._lock:
            project = self._projects.get(project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        return project

    def projects(self) -> List[Project]:
        with self._lock:
            return list(self._projects.values())

    # -- sessions ------------------------------------------------------------

    def add(self, session: DefenseSession) -> DefenseSession:
        session = self._with_people(session)
        with self._lock:
            if session.session_id in self._sessions:
                raise DuplicateSessionError(session.project_id, session.session_id)

            def revert() -> None:
                self._sessions.pop(session.session_id, None)

            self._sessions[session.session_id] = session
            self._commit(revert)
        return session

    def update(self, session: DefenseSession) -> DefenseSession:
        session = self._with_people(session)
        with self._lock:
            previous = self._sessions.get(session.session_id)
            if previous is None:
                raise SessionNotFoundError(session.session_id)

            def revert() -> None:
                self._sessions[session.session_id] = previous

            self._sessions[session.session_id] = session
            self._commit(revert)
        return session

    def get(self, session_id: str) -> DefenseSession:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def delete(self, session_id: str) -> DefenseSession:
        with self._lock:
            session = self._sessions.pop(session_id, None)
            if session is None:
                raise SessionNotFoundError(session_id)

            def revert() -> None:
                self._sessions[session_id] = session

            self._commit(revert)
        return session

    def delete_batch(self, batch: str) -> int:
        with self._lock:
            removed = {sid: s for sid, s in self._sessions.items() if s.batch == batch}
            if not removed:
                return 0

            def revert() -> None:
                self._sessions.update(removed)

            for session_id in removed:
                del self._sessions[session_id]
            self._commit(revert)
        logger.info("Deleted %d session(s) of batch %s", len(removed), batch)
        return len(removed)

    def session_for_project(self, batch: str, project_id: str) -> Optional[DefenseSession]:
        with self._lock:
            for session in self._sessions.values():
                if session.batch == batch and session.project_id == project_id:
                    return session
        return None

    def list_sessions(
        self,
        start: Optional[date] = None,
        end: Optional[date] = None,
        batch: Optional[str] = None,
    ) -> List[DefenseSession]:
        with self._lock:
            sessions = list(self._sessions.values())
        if start is not None:
            sessions = [s for s in sessions if s.day >= start]
        if end is not None:
            sessions = [s for s in sessions if s.day <= end]
        if batch is not None:
            sessions = [s for s in sessions if s.batch == batch]
        return sorted(sessions, key=lambda s: (s.day, s.start, s.room_id, s.session_id))

    # -- internals -----------------------------------------------------------

    def _with_people(self, session: DefenseSession) -> DefenseSession:
        if session.person_ids:
            return session
        project = self._projects.get(session.project_id)
        if project is None:
            return session
        return DefenseSession.from_record(session.to_record(), project.person_ids)

    def _commit(self, revert: Callable[[], None]) -> None:
        try:
            self._persist()
        except Exception as exc:
            revert()
            logger.error("Schedule store write failed: %s", exc)
            raise StorageError(f"Could not persist schedule: {exc}") from exc

    def _persist(self) -> None:
        """Durably record the current state. The in-memory store has nothing to do."""

    def _snapshot(self) -> Dict:
        return {
            "configurations": {
                batch: {"calendar": config.to_record(), "rooms": [{"room_id": r.room_id, "name": r.name} for r in rooms]}
                for batch, (config, rooms) in self._configurations.items()
            },
            "projects": [p.to_record() for p in self._projects.values()],
            "sessions": [s.to_record() for s in self.list_sessions()],
        }

    def _restore(self, data: Dict) -> None:
        for batch, entry in (data.get("configurations") or {}).items():
            config = CalendarConfig.from_record(entry["calendar"])
            rooms = [Room(room_id=r["room_id"], name=r["name"]) for r in entry.get("rooms", [])]
            self._configurations[batch] = (config, rooms)
        for record in data.get("projects") or []:
            project = Project.from_record(record)
            self._projects[project.project_id] = project
        for record in data.get("sessions") or []:
            project = self._projects.get(str(record["project_id"]))
            people = project.person_ids if project else frozenset()
            session = DefenseSession.from_record(record, people)
            self._sessions[session.session_id] = session


class JsonScheduleStore(ScheduleStore):
    """Store backed by a single JSON document, rewritten atomically on each change."""

    def __init__(self, path: Path) -> None:
        super().__init__()
        self.path = Path(path)
        if self.path.exists():
            self._restore(json.loads(self.path.read_text(encoding="utf-8")))
            logger.info("Loaded %d session(s) from %s", len(self._sessions), self.path)

    def _persist(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(self._snapshot(), indent=2), encoding="utf-8")
        os.replace(tmp_path, self.path)


__all__ = ["ScheduleStore", "JsonScheduleStore"]
