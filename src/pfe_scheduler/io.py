"""Reading project/room inputs and writing run outputs."""

from __future__ import annotations

import datetime
import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from .errors import InvalidConfigurationError
from .models import Project, Room, ScheduleResult
from .settings import rooms_from_names

PROJECT_COLUMNS = ["title", "president", "examiner", "supervisor"]
OPTIONAL_PROJECT_COLUMNS = ["project_id", "co_supervisor", "student1", "student2", "option"]
SESSION_COLUMNS = ["session_id", "project_id", "title", "date", "start_time", "end_time", "room"]


def read_projects_csv(path, order_by: Optional[str] = None) -> List[Project]:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Missing file {path.name}")
    df = pd.read_csv(path, dtype=str, keep_default_na=False)
    df.columns = [c.strip() for c in df.columns]
    missing = [col for col in PROJECT_COLUMNS if col not in df.columns]
    if missing:
        raise InvalidConfigurationError(f"Missing required columns in {path.name}: {missing}", field="projects")
    for col in OPTIONAL_PROJECT_COLUMNS:
        if col not in df.columns:
            df[col] = ""
    df = df.apply(lambda column: column.str.strip())

    # rows without an id are numbered by position in the file
    df["project_id"] = [pid or f"pfe-{idx + 1}" for idx, pid in enumerate(df["project_id"])]
    if order_by:
        if order_by not in df.columns:
            raise InvalidConfigurationError(f"Cannot order projects by unknown column '{order_by}'", field="order_by")
        df = df.sort_values(order_by, kind="stable")

    projects = []
    for row in df.to_dict(orient="records"):
        projects.append(
            Project(
                project_id=row["project_id"],
                title=row["title"],
                president_id=row["president"],
                examiner_id=row["examiner"],
                supervisor_id=row["supervisor"],
                co_supervisor_id=row["co_supervisor"] or None,
                students=tuple(s for s in (row["student1"], row["student2"]) if s),
                option=row["option"] or None,
            )
        )
    return projects


def read_rooms_json(path) -> List[Room]:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Missing file {path.name}")
    data = json.loads(path.read_text(encoding="utf-8"))
    if "rooms" not in data:
        raise InvalidConfigurationError(f"Missing key 'rooms' in {path.name}", field="rooms")
    return rooms_from_names(data["rooms"])


def load_dataset(dataset_dir, order_by: Optional[str] = None) -> Tuple[List[Project], List[Room]]:
    """Projects and rooms of a dataset folder; rooms are empty when no rooms.json exists."""
    dataset_dir = Path(dataset_dir)
    if not dataset_dir.is_dir():
        raise FileNotFoundError(f"Dataset '{dataset_dir}' not found")
    projects = read_projects_csv(dataset_dir / "projects.csv", order_by=order_by)
    rooms_path = dataset_dir / "rooms.json"
    rooms = read_rooms_json(rooms_path) if rooms_path.exists() else []
    return projects, rooms


def create_run_folder(base="data/output"):
    run_id = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
    folder_path = os.path.join(base, run_id)
    os.makedirs(folder_path, exist_ok=True)
    return folder_path, run_id


def output_csv(result: ScheduleResult, projects: List[Project], rooms: List[Room], output_folder) -> None:
    titles = {p.project_id: p.title for p in projects}
    room_names = {r.room_id: r.name for r in rooms}
    rows = [
        {
            "session_id": s.session_id,
            "project_id": s.project_id,
            "title": titles.get(s.project_id, ""),
            "date": s.day.isoformat(),
            "start_time": s.start_time,
            "end_time": s.end_time,
            "room": room_names.get(s.room_id, s.room_id),
        }
        for s in result.assigned
    ]
    df = pd.DataFrame(rows, columns=SESSION_COLUMNS)
    df.to_csv(f"{output_folder}/sessions.csv", index=False)

    unassigned = pd.DataFrame(
        [item.to_record() for item in result.unassigned],
        columns=["project_id", "reason", "code"],
    )
    unassigned.to_csv(f"{output_folder}/unassigned.csv", index=False)


def save_summary(result: ScheduleResult, cfg: Dict[str, Any], output_folder) -> None:
    summary = {
        "status": "COMPLETE" if not result.unassigned else "PARTIAL",
        "batch": cfg.get("batch"),
        "total_projects": result.created_count + result.unassigned_count,
        "created_count": result.created_count,
        "unassigned_count": result.unassigned_count,
        "unassigned_project_ids": [item.project_id for item in result.unassigned],
        "solve_time_sec": round(result.elapsed_sec, 4),
    }
    with open(f"{output_folder}/summary.json", "w") as f:
        json.dump(summary, f, indent=2)


__all__ = [
    "read_projects_csv",
    "read_rooms_json",
    "load_dataset",
    "create_run_folder",
    "output_csv",
    "save_summary",
]
