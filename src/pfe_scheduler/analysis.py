from __future__ import annotations

from collections import defaultdict
from typing import Dict, Iterable, List

from .models import DefenseSession


def _overlapping_pairs(groups: Dict[str, List[DefenseSession]], kind: str) -> List[Dict]:
    conflicts = []
    for key, rows in groups.items():
        rows.sort(key=lambda s: (s.day, s.start, s.session_id))
        for i, cur in enumerate(rows):
            for nxt in rows[i + 1:]:
                if nxt.day != cur.day or nxt.start >= cur.end:
                    break
                conflicts.append(
                    {
                        f"{kind}_id": key,
                        "conflict_type": f"{kind}_overlap",
                        "date": cur.day.isoformat(),
                        "description": f"{kind.capitalize()} {key} has overlapping sessions",
                        "affected_sessions": [cur.session_id, nxt.session_id],
                    }
                )
    return conflicts


def audit_sessions(sessions: Iterable[DefenseSession]) -> Dict:
    """Every pair of sessions double-booking a room or a person."""
    by_room = defaultdict(list)
    by_person = defaultdict(list)
    for session in sessions:
        by_room[session.room_id].append(session)
        for pid in session.person_ids:
            by_person[pid].append(session)
    conflicts = _overlapping_pairs(by_room, "room") + _overlapping_pairs(by_person, "person")
    return {"conflicts": conflicts, "num_conflicts": len(conflicts)}


def room_gaps(sessions: Iterable[DefenseSession]) -> List[Dict]:
    """Idle minutes between consecutive sessions of the same room on the same day."""
    by_room_day = defaultdict(list)
    for session in sessions:
        by_room_day[(session.room_id, session.day)].append(session)
    gaps = []
    for (room_id, day), rows in sorted(by_room_day.items()):
        rows.sort(key=lambda s: s.start)
        for prev, nxt in zip(rows, rows[1:]):
            gaps.append(
                {
                    "room_id": room_id,
                    "date": day.isoformat(),
                    "after_session": prev.session_id,
                    "before_session": nxt.session_id,
                    "gap_minutes": nxt.start - prev.end,
                }
            )
    return gaps


def participant_schedule(sessions: Iterable[DefenseSession], person_id: str) -> List[DefenseSession]:
    return [s for s in sessions if person_id in s.person_ids]


__all__ = ["audit_sessions", "room_gaps", "participant_schedule"]
