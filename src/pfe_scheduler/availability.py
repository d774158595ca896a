"""
Availability tracker: the occupancy ledger of rooms and people, keyed by date.

The ledger is derived state. It can always be rebuilt by replaying the
persisted sessions (``AvailabilityTracker.from_sessions``) and holds no rule
beyond half-open interval overlap: ``[a, b)`` and ``[b, c)`` do not conflict.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from .models import DefenseSession


@dataclass(frozen=True)
class Interval:
    session_id: str
    start: int
    end: int

    def overlaps(self, start: int, end: int) -> bool:
        return self.start < end and start < self.end


class AvailabilityTracker:
    """Per-date ledger of room and person intervals."""

    def __init__(self) -> None:
        self._rooms: Dict[date, Dict[str, List[Interval]]] = defaultdict(lambda: defaultdict(list))
        self._people: Dict[date, Dict[str, List[Interval]]] = defaultdict(lambda: defaultdict(list))
        self._reserved: Dict[str, DefenseSession] = {}
        self._lock = threading.RLock()

    @classmethod
    def from_sessions(cls, sessions: Iterable[DefenseSession]) -> "AvailabilityTracker":
        tracker = cls()
        for session in sessions:
            tracker.reserve(session)
        return tracker

    def is_room_free(self, room_id: str, day: date, start: int, end: int) -> bool:
        return self.room_blocker(room_id, day, start, end) is None

    def is_person_free(self, person_id: str, day: date, start: int, end: int) -> bool:
        return self.person_blocker(person_id, day, start, end) is None

    def room_blocker(self, room_id: str, day: date, start: int, end: int) -> Optional[str]:
        """Id of the first session holding ``room_id`` during [start, end), if any."""
        return self._first_overlap(self._rooms, room_id, day, start, end)

    def person_blocker(self, person_id: str, day: date, start: int, end: int) -> Optional[str]:
        return self._first_overlap(self._people, person_id, day, start, end)

    def reserve(self, session: DefenseSession) -> None:
        """Record the session's room and people. Reserving the same session twice is a no-op."""
        with self._lock:
            current = self._reserved.get(session.session_id)
            if current is not None:
                if _same_footprint(current, session):
                    return
                self._remove(current)
            interval = Interval(session.session_id, session.start, session.end)
            self._rooms[session.day][session.room_id].append(interval)
            for person_id in session.person_ids:
                self._people[session.day][person_id].append(interval)
            self._reserved[session.session_id] = session

    def release(self, session: DefenseSession) -> None:
        with self._lock:
            current = self._reserved.get(session.session_id)
            if current is None:
                return
            self._remove(current)

    def is_reserved(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._reserved

    def occupancy(self, day: date) -> List[Tuple[str, str, int, int]]:
        """Flat view of one date: (kind:id, session id, start, end) sorted by start."""
        with self._lock:
            rows = []
            for kind, ledger in (("room", self._rooms), ("person", self._people)):
                for key, intervals in ledger.get(day, {}).items():
                    rows.extend((f"{kind}:{key}", iv.session_id, iv.start, iv.end) for iv in intervals)
        return sorted(rows, key=lambda row: (row[2], row[0]))

    def __len__(self) -> int:
        with self._lock:
            return len(self._reserved)

    def _first_overlap(
        self,
        ledger: Dict[date, Dict[str, List[Interval]]],
        key: str,
        day: date,
        start: int,
        end: int,
    ) -> Optional[str]:
        with self._lock:
            by_key = ledger.get(day)
            if not by_key:
                return None
            for interval in by_key.get(key, ()):
                if interval.overlaps(start, end):
                    return interval.session_id
        return None

    def _remove(self, session: DefenseSession) -> None:
        _discard(self._rooms, session.day, session.room_id, session.session_id)
        for person_id in session.person_ids:
            _discard(self._people, session.day, person_id, session.session_id)
        del self._reserved[session.session_id]


def _discard(ledger: Dict[date, Dict[str, List[Interval]]], day: date, key: str, session_id: str) -> None:
    by_key = ledger.get(day)
    if not by_key or key not in by_key:
        return
    remaining = [iv for iv in by_key[key] if iv.session_id != session_id]
    if remaining:
        by_key[key] = remaining
    else:
        del by_key[key]
    if not by_key:
        del ledger[day]


def _same_footprint(a: DefenseSession, b: DefenseSession) -> bool:
    return (a.day, a.start, a.end, a.room_id, a.person_ids) == (b.day, b.start, b.end, b.room_id, b.person_ids)


__all__ = ["AvailabilityTracker", "Interval"]
