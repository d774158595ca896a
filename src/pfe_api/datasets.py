from __future__ import annotations

import csv
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pfe_scheduler.io import load_dataset as read_dataset_folder
from pfe_scheduler.models import Project, Room

from .config import DATA_INPUT_DIR

REQUIRED_FILES = ["projects.csv"]


def ensure_dataset(name: str) -> Path:
    dataset_dir = DATA_INPUT_DIR / name
    if not dataset_dir.is_dir():
        raise FileNotFoundError(f"Dataset '{name}' not found")
    return dataset_dir


def list_datasets() -> List[Dict[str, Any]]:
    entries: List[Dict[str, Any]] = []
    for path in sorted(DATA_INPUT_DIR.iterdir()):
        if not path.is_dir():
            continue
        entry: Dict[str, Any] = {"name": path.name}
        try:
            entry.update(_dataset_stats(path))
        except (OSError, ValueError, csv.Error):
            entry["error"] = "unreadable"
        entries.append(entry)
    return entries


def load_dataset(name: str, order_by: Optional[str] = None) -> Tuple[List[Project], List[Room]]:
    return read_dataset_folder(ensure_dataset(name), order_by=order_by)


def _dataset_stats(dataset_dir: Path) -> Dict[str, Any]:
    stats: Dict[str, Any] = {}
    projects_path = dataset_dir / "projects.csv"
    if projects_path.exists():
        with projects_path.open(encoding="utf-8") as f:
            reader = csv.DictReader(f)
            stats["project_count"] = sum(1 for _ in reader)
    rooms_path = dataset_dir / "rooms.json"
    if rooms_path.exists():
        rooms = json.loads(rooms_path.read_text(encoding="utf-8")).get("rooms", [])
        stats["room_count"] = len(rooms)
    latest_mtime = max(
        (child.stat().st_mtime for child in dataset_dir.glob("*") if child.exists()),
        default=dataset_dir.stat().st_mtime,
    )
    stats["updated_at"] = datetime.fromtimestamp(latest_mtime, tz=timezone.utc).isoformat()
    return stats


__all__ = [
    "REQUIRED_FILES",
    "ensure_dataset",
    "list_datasets",
    "load_dataset",
]
