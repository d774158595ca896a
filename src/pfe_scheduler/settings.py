"""
Scheduler settings: defaults, YAML overrides and conversion to ``CalendarConfig``.

Precedence is defaults < dataset settings file < YAML file < explicit overrides
(CLI flags, API request body).
"""

from __future__ import annotations

import logging
from datetime import date
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import yaml

from .calendar_model import DEFAULT_HOLIDAYS
from .errors import InvalidConfigurationError
from .models import WEEKDAYS, CalendarConfig, Room, parse_date, parse_hhmm

logger = logging.getLogger(__name__)

DATASET_CONFIG_NAMES = ["solver.yml", "solver.yaml", "config.yml", "config.yaml"]

DEFAULT_SETTINGS: Dict[str, Any] = {
    # Regarding the input data
    "input_data": "data/input/sample",
    "output_dir": "data/output",
    "order_by": None,

    # Regarding the calendar
    "batch": "1",
    "working_start": "08:00",
    "working_end": "16:00",
    "session_duration": 60,
    "break_duration": 60,
    "day_off": "friday",
    "holidays": sorted(f"{m:02d}-{d:02d}" for m, d in DEFAULT_HOLIDAYS),
    "excluded_dates": [],
    "start_date": None,
    "end_date": None,
    "horizon_days": 60,

    # Regarding the rooms (used when the dataset ships no rooms.json)
    "rooms": [],
}


def load_config_file(path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise InvalidConfigurationError(f"{path} does not contain key/value mappings")
    return normalize_keys(data)


def load_dataset_config(dataset_path) -> Dict[str, Any]:
    """Optional per-dataset settings file; unreadable files are ignored with a warning."""
    for name in DATASET_CONFIG_NAMES:
        path = Path(dataset_path) / name
        if not path.exists():
            continue
        try:
            return load_config_file(path)
        except (OSError, yaml.YAMLError, InvalidConfigurationError) as exc:
            logger.warning("Ignoring dataset config %s: %s", path, exc)
    return {}


def normalize_keys(values: Dict[str, Any]) -> Dict[str, Any]:
    return {str(key).replace("-", "_"): value for key, value in values.items()}


def merge_settings(*layers: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    settings = DEFAULT_SETTINGS.copy()
    for layer in layers:
        if not layer:
            continue
        for key, value in normalize_keys(layer).items():
            if value is None:
                continue
            settings[key] = value
    return settings


def parse_day_off(value: Any) -> Optional[int]:
    if value is None or value == "" or str(value).lower() in ("none", "null", "false"):
        return None
    if isinstance(value, int):
        return value
    key = str(value).strip().lower()
    if key.isdigit():
        return int(key)
    if key not in WEEKDAYS:
        raise InvalidConfigurationError(f"Unknown weekday '{value}'", field="day_off")
    return WEEKDAYS[key]


def parse_holidays(values: Iterable[Any]) -> frozenset:
    holidays = set()
    for item in values or []:
        text = str(item).strip()
        try:
            month, day = (int(part) for part in text.split("-")[-2:])
            date(2000, month, day)
        except ValueError:
            raise InvalidConfigurationError(f"Invalid holiday '{item}', expected MM-DD", field="holidays")
        holidays.add((month, day))
    return frozenset(holidays)


def _as_list(value: Any) -> List[Any]:
    if value is None or value == "":
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return list(value)


def _as_int(settings: Dict[str, Any], key: str) -> int:
    try:
        return int(settings[key])
    except (TypeError, ValueError):
        raise InvalidConfigurationError(f"{key} must be a whole number of minutes", field=key)


def calendar_config_from_settings(settings: Dict[str, Any], today: Optional[date] = None) -> CalendarConfig:
    start_date = settings.get("start_date")
    end_date = settings.get("end_date")
    config = CalendarConfig(
        working_start=parse_hhmm(settings["working_start"], "working_start"),
        working_end=parse_hhmm(settings["working_end"], "working_end"),
        start_date=parse_date(start_date, "start_date") if start_date else (today or date.today()),
        end_date=parse_date(end_date, "end_date") if end_date else None,
        session_duration=_as_int(settings, "session_duration"),
        break_duration=_as_int(settings, "break_duration"),
        batch=str(settings.get("batch") or "1"),
        excluded_dates=frozenset(parse_date(d, "excluded_dates") for d in _as_list(settings.get("excluded_dates"))),
        day_off=parse_day_off(settings.get("day_off")),
        holidays=parse_holidays(_as_list(settings.get("holidays"))),
        horizon_days=_as_int(settings, "horizon_days"),
    )
    config.validate()
    return config


def rooms_from_names(names: Iterable[Any]) -> List[Room]:
    """Build rooms from plain names or ``{"name": ..., "enabled": ...}`` entries, skipping disabled ones."""
    rooms = []
    for entry in names:
        if isinstance(entry, dict):
            if not entry.get("enabled", True):
                continue
            name = entry.get("name") or entry.get("id")
            room_id = entry.get("room_id") or entry.get("id")
        else:
            name = entry
            room_id = None
        if not name or not str(name).strip():
            raise InvalidConfigurationError("Room name must not be empty", field="rooms")
        room = Room.named(str(name))
        if room_id:
            room = Room(room_id=str(room_id), name=room.name)
        rooms.append(room)
    return rooms


__all__ = [
    "DEFAULT_SETTINGS",
    "load_config_file",
    "load_dataset_config",
    "normalize_keys",
    "merge_settings",
    "parse_day_off",
    "parse_holidays",
    "calendar_config_from_settings",
    "rooms_from_names",
]
