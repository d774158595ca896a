"""Application configuration and path helpers."""
from __future__ import annotations

import os
from pathlib import Path

APP_DIR = Path(__file__).resolve().parent  # src/pfe_api directory
BASE_DIR = Path(os.getenv("PROJECT_ROOT", str(APP_DIR.parent.parent)))

DATA_DIR = Path(os.getenv("DATA_DIR", str(BASE_DIR / "data")))
DATA_INPUT_DIR = DATA_DIR / "input"
STORE_PATH = Path(os.getenv("PFE_STORE_PATH", str(DATA_DIR / "schedule.json")))

DATA_INPUT_DIR.mkdir(parents=True, exist_ok=True)

GENERATION_WORKERS = int(os.getenv("PFE_GENERATION_WORKERS", "1"))
GENERATION_MAX_ATTEMPTS = int(os.getenv("PFE_GENERATION_MAX_ATTEMPTS", "3"))
