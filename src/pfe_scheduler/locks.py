"""Locking for the shared occupancy ledger."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from datetime import date
from typing import Dict, Iterator, List


class ScheduleLocks:
    """
    One lock per date, plus an exclusive mode for generation runs.

    Operations on disjoint dates proceed in parallel. ``exclusive()`` waits for
    in-flight date operations to drain and blocks new ones until it exits.
    A date lock is dropped once no operation holds or waits for it.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._date_locks: Dict[date, threading.Lock] = {}
        self._users: Dict[date, int] = {}
        self._active = 0
        self._exclusive = False

    @contextmanager
    def dates(self, *days: date) -> Iterator[None]:
        days = tuple(sorted(set(days)))
        with self._cond:
            while self._exclusive:
                self._cond.wait()
            self._active += 1
            locks = [self._checkout(day) for day in days]
        acquired = []
        try:
            for lock in locks:
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            with self._cond:
                for day in days:
                    self._checkin(day)
                self._active -= 1
                self._cond.notify_all()

    @contextmanager
    def exclusive(self) -> Iterator[None]:
        with self._cond:
            while self._exclusive:
                self._cond.wait()
            self._exclusive = True
            while self._active:
                self._cond.wait()
        try:
            yield
        finally:
            with self._cond:
                self._exclusive = False
                self._cond.notify_all()

    def locked_dates(self) -> List[date]:
        """Dates that currently have a lock in use."""
        with self._cond:
            return sorted(self._date_locks)

    def _checkout(self, day: date) -> threading.Lock:
        lock = self._date_locks.get(day)
        if lock is None:
            lock = self._date_locks[day] = threading.Lock()
        self._users[day] = self._users.get(day, 0) + 1
        return lock

    def _checkin(self, day: date) -> None:
        self._users[day] -= 1
        if not self._users[day]:
            del self._users[day]
            del self._date_locks[day]


__all__ = ["ScheduleLocks"]
