from __future__ import annotations

import asyncio
import logging
import os
import shutil
import tempfile
import threading
import zipfile
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pfe_scheduler import __version__
from pfe_scheduler.errors import SchedulingError
from pfe_scheduler.models import CalendarConfig, Project, Room, parse_hhmm
from pfe_scheduler.service import SchedulingService
from pfe_scheduler.settings import (
    DATASET_CONFIG_NAMES,
    DEFAULT_SETTINGS,
    calendar_config_from_settings,
    load_dataset_config,
    merge_settings,
    rooms_from_names,
)
from pfe_scheduler.store import JsonScheduleStore

from .config import DATA_INPUT_DIR, GENERATION_MAX_ATTEMPTS, GENERATION_WORKERS, STORE_PATH
from .datasets import REQUIRED_FILES, ensure_dataset, list_datasets, load_dataset
from .jobs import GenerationRunManager, GenerationRunRecord
from .schemas import (
    BookRequest,
    EditTimeRequest,
    GenerateRequest,
    GenerationResult,
    GenerationRunResponse,
    MoveRequest,
    SessionListResponse,
    SessionOut,
)

logger = logging.getLogger("uvicorn.error")

app = FastAPI(title="PFE Defense Scheduler API", version=__version__)

STATUS_BY_CODE = {
    "session_not_found": 404,
    "project_not_found": 404,
    "room_conflict": 409,
    "person_conflict": 409,
    "duplicate_session": 409,
    "no_feasible_slot": 409,
    "storage_error": 500,
}


def _unique(seq: list[str]) -> list[str]:
    seen = set()
    result = []
    for item in seq:
        if item in seen:
            continue
        seen.add(item)
        result.append(item)
    return result


def _parse_origins(value: str | None) -> list[str]:
    if not value:
        return []
    return [entry.strip() for entry in value.split(",") if entry.strip()]


def _resolve_allowed_origins() -> list[str]:
    explicit = _parse_origins(os.getenv("ALLOWED_ORIGINS"))
    if explicit:
        return _unique(explicit)
    default_origins = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]
    return _unique(default_origins + _parse_origins(os.getenv("FRONTEND_HOSTS")))


app.add_middleware(
    CORSMiddleware,
    allow_origins=_resolve_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


_service: Optional[SchedulingService] = None
_run_manager: Optional[GenerationRunManager] = None
_singleton_lock = threading.Lock()


def get_scheduling_service() -> SchedulingService:
    global _service
    with _singleton_lock:
        if _service is None:
            _service = SchedulingService(JsonScheduleStore(STORE_PATH))
            logger.info("Schedule store loaded from %s", STORE_PATH)
        return _service


def get_run_manager() -> GenerationRunManager:
    global _run_manager
    with _singleton_lock:
        if _run_manager is None:
            _run_manager = GenerationRunManager(
                get_scheduling_service,
                max_workers=GENERATION_WORKERS,
                max_attempts=GENERATION_MAX_ATTEMPTS,
            )
        return _run_manager


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError):
    status_code = STATUS_BY_CODE.get(exc.code, 400)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"code": "invalid_configuration", "message": "Invalid request body", "errors": errors},
    )


@app.get("/health")
def health_check():
    """Health check endpoint for monitoring and container orchestration."""
    return {
        "status": "healthy",
        "service": "pfe-defense-scheduler",
        "version": __version__,
    }


@app.get("/api/settings/defaults")
def read_default_settings():
    return {key: value for key, value in DEFAULT_SETTINGS.items() if key not in ("input_data", "output_dir")}


@app.get("/api/datasets")
def get_datasets():
    DATA_INPUT_DIR.mkdir(parents=True, exist_ok=True)
    return list_datasets()


def _validate_dataset_name(value: str) -> str:
    value = value.strip()
    if not value:
        raise HTTPException(status_code=400, detail="dataset_id is required")
    allowed = set("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789-_")
    if any(ch not in allowed for ch in value):
        raise HTTPException(
            status_code=400,
            detail="dataset_id may only contain letters, numbers, dashes, and underscores",
        )
    return value


@app.post("/api/datasets/upload")
async def upload_dataset(dataset_id: str = Form(...), archive: UploadFile = File(...)):
    DATA_INPUT_DIR.mkdir(parents=True, exist_ok=True)
    safe_name = _validate_dataset_name(dataset_id)
    filename = archive.filename or ""
    if not filename.lower().endswith(".zip"):
        raise HTTPException(status_code=400, detail="Please upload a .zip archive")

    temp_dir = Path(tempfile.mkdtemp(prefix="dataset-upload-"))
    try:
        zip_path = temp_dir / "archive.zip"
        with zip_path.open("wb") as buffer:
            while True:
                chunk = await archive.read(1024 * 1024)
                if not chunk:
                    break
                buffer.write(chunk)

        extract_dir = temp_dir / "extracted"
        extract_dir.mkdir(parents=True, exist_ok=True)
        try:
            with zipfile.ZipFile(zip_path) as zf:
                zf.extractall(extract_dir)
        except zipfile.BadZipFile:
            raise HTTPException(status_code=400, detail="Archive is not a valid zip file")

        # archives zipped from a folder hold a single top-level directory
        base_dir = extract_dir
        if not all((base_dir / name).exists() for name in REQUIRED_FILES):
            contents = list(base_dir.iterdir())
            if len(contents) == 1 and contents[0].is_dir():
                base_dir = contents[0]

        missing = [name for name in REQUIRED_FILES if not (base_dir / name).exists()]
        if missing:
            raise HTTPException(
                status_code=400,
                detail=f"Archive missing required files: {', '.join(missing)}",
            )

        target_dir = DATA_INPUT_DIR / safe_name
        if target_dir.exists():
            shutil.rmtree(target_dir)
        target_dir.mkdir(parents=True, exist_ok=True)
        for name in ["projects.csv", "rooms.json", *DATASET_CONFIG_NAMES]:
            source = base_dir / name
            if source.is_file():
                shutil.copy2(source, target_dir / name)

        logger.info("Dataset %s uploaded", safe_name)
        return {"status": "uploaded", "dataset": safe_name}
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)


def _generation_inputs(req: GenerateRequest) -> Tuple[List[Project], List[Room], CalendarConfig]:
    projects = [item.to_project() for item in req.projects or []]
    dataset_rooms: List[Room] = []
    dataset_settings: Dict[str, Any] = {}
    if req.dataset_id:
        dataset_id = _validate_dataset_name(req.dataset_id)
        try:
            dataset_dir = ensure_dataset(dataset_id)
            dataset_projects, dataset_rooms = load_dataset(dataset_id, order_by=req.order_by)
        except FileNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        dataset_settings = load_dataset_config(dataset_dir)
        if req.projects is None:
            projects = dataset_projects

    settings = merge_settings(dataset_settings, req.settings_overrides())
    rooms = rooms_from_names(settings["rooms"]) if settings.get("rooms") else dataset_rooms
    config = calendar_config_from_settings(settings)
    return projects, rooms, config


@app.post("/api/sessions/generate")
async def generate_sessions(
    req: GenerateRequest,
    service: SchedulingService = Depends(get_scheduling_service),
) -> GenerationResult:
    projects, rooms, config = _generation_inputs(req)
    loop = asyncio.get_running_loop()
    result = await loop.run_in_executor(None, service.generate, projects, rooms, config)
    return GenerationResult(batch=config.batch, **result.summary())


def _run_to_response(record: GenerationRunRecord) -> GenerationRunResponse:
    return GenerationRunResponse(
        run_id=record.id,
        batch=record.batch,
        status=record.status,
        attempts=record.attempts,
        project_count=record.project_count,
        created_at=record.created_at,
        started_at=record.started_at,
        finished_at=record.finished_at,
        error=record.error,
        result=record.result,
        retry_of=record.metadata.get("retry_of"),
    )


@app.post("/api/generation/runs", status_code=202)
def create_generation_run(
    req: GenerateRequest,
    manager: GenerationRunManager = Depends(get_run_manager),
) -> GenerationRunResponse:
    projects, rooms, config = _generation_inputs(req)
    return _run_to_response(manager.submit(projects, rooms, config))


@app.get("/api/generation/runs")
def list_generation_runs(
    batch: Optional[str] = None,
    manager: GenerationRunManager = Depends(get_run_manager),
) -> Dict[str, Any]:
    runs = []
    for record in manager.list_runs().values():
        if batch and record.batch != batch:
            continue
        runs.append(_run_to_response(record))
    return {"runs": runs}


@app.get("/api/generation/runs/{run_id}")
def read_generation_run(
    run_id: str,
    manager: GenerationRunManager = Depends(get_run_manager),
) -> GenerationRunResponse:
    record = manager.get(run_id)
    if not record:
        raise HTTPException(status_code=404, detail="Run not found")
    return _run_to_response(record)


@app.delete("/api/generation/runs/{run_id}")
def cancel_generation_run(
    run_id: str,
    manager: GenerationRunManager = Depends(get_run_manager),
) -> GenerationRunResponse:
    record = manager.get(run_id)
    if not record:
        raise HTTPException(status_code=404, detail="Run not found")
    if not manager.cancel(run_id):
        raise HTTPException(status_code=409, detail=f"Run is {manager.get(run_id).status}, only pending runs can be cancelled")
    return _run_to_response(manager.get(run_id))


@app.post("/api/generation/runs/{run_id}/retry", status_code=202)
def retry_generation_run(
    run_id: str,
    manager: GenerationRunManager = Depends(get_run_manager),
) -> GenerationRunResponse:
    record = manager.get(run_id)
    if not record:
        raise HTTPException(status_code=404, detail="Run not found")
    retried = manager.retry(run_id)
    if retried is None:
        raise HTTPException(status_code=409, detail=f"Run is {record.status}, only failed or cancelled runs can be retried")
    return _run_to_response(retried)


@app.get("/api/sessions")
def list_sessions(
    start: Optional[date] = None,
    end: Optional[date] = None,
    batch: Optional[str] = None,
    service: SchedulingService = Depends(get_scheduling_service),
) -> SessionListResponse:
    sessions = service.list_sessions(start=start, end=end, batch=batch)
    return SessionListResponse(
        sessions=[SessionOut(**session.to_record()) for session in sessions],
        count=len(sessions),
    )


@app.post("/api/sessions", status_code=201)
def book_session(
    req: BookRequest,
    service: SchedulingService = Depends(get_scheduling_service),
) -> SessionOut:
    start = parse_hhmm(req.start_time, "start_time") if req.start_time else None
    session = service.book_session(req.project_id, req.day, req.batch, start=start, room_id=req.room_id)
    return SessionOut(**session.to_record())


@app.get("/api/sessions/conflicts")
def session_conflicts(service: SchedulingService = Depends(get_scheduling_service)):
    return service.audit()


@app.get("/api/sessions/{session_id}")
def read_session(
    session_id: str,
    service: SchedulingService = Depends(get_scheduling_service),
) -> SessionOut:
    return SessionOut(**service.get_session(session_id).to_record())


@app.patch("/api/sessions/{session_id}/date")
def move_session(
    session_id: str,
    req: MoveRequest,
    service: SchedulingService = Depends(get_scheduling_service),
) -> SessionOut:
    session = service.move_session(session_id, req.new_date, room_id=req.room_id)
    return SessionOut(**session.to_record())


@app.patch("/api/sessions/{session_id}/time")
def edit_session_time(
    session_id: str,
    req: EditTimeRequest,
    service: SchedulingService = Depends(get_scheduling_service),
) -> SessionOut:
    start = parse_hhmm(req.start_time, "start_time")
    session = service.edit_session_time(session_id, start, room_id=req.room_id)
    return SessionOut(**session.to_record())


@app.delete("/api/sessions/{session_id}")
def delete_session(
    session_id: str,
    service: SchedulingService = Depends(get_scheduling_service),
):
    session = service.delete_session(session_id)
    return {"status": "deleted", "session": session.to_record()}


@app.get("/api/participants/{person_id}/sessions")
def participant_sessions(
    person_id: str,
    service: SchedulingService = Depends(get_scheduling_service),
):
    sessions = service.participant_sessions(person_id)
    return {"person_id": person_id, "sessions": [session.to_record() for session in sessions]}
