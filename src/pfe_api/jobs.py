from __future__ import annotations

import logging
import threading
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from pfe_scheduler.errors import SchedulingError, StorageError
from pfe_scheduler.models import CalendarConfig, Project, Room
from pfe_scheduler.service import SchedulingService

logger = logging.getLogger("uvicorn.error")


@dataclass
class GenerationRunRecord:
    id: str
    batch: str
    status: str
    created_at: float
    project_count: int
    attempts: int = 0
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[Dict[str, Any]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


GenerationInputs = Tuple[Sequence[Project], Sequence[Room], CalendarConfig]
RunListener = Callable[[GenerationRunRecord], None]


class GenerationRunManager:
    """
    Runs batch generations on a thread pool.

    Storage failures and unexpected errors are retried up to ``max_attempts``;
    domain errors (bad configuration, conflicts) fail the run straight away.
    Listeners are called once per run with the finished record.
    """

    def __init__(
        self,
        service_provider: Callable[[], SchedulingService],
        max_workers: int = 1,
        max_attempts: int = 3,
    ) -> None:
        self._service_provider = service_provider
        self._max_attempts = max(1, max_attempts)
        self._runs: Dict[str, GenerationRunRecord] = {}
        self._inputs: Dict[str, GenerationInputs] = {}
        self._futures: Dict[str, Future] = {}
        self._listeners: List[RunListener] = []
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="generation")

    def add_listener(self, listener: RunListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def submit(
        self,
        projects: Sequence[Project],
        rooms: Sequence[Room],
        config: CalendarConfig,
        retry_of: Optional[str] = None,
    ) -> GenerationRunRecord:
        run_id = uuid.uuid4().hex
        record = GenerationRunRecord(
            id=run_id,
            batch=config.batch,
            status="pending",
            created_at=time.time(),
            project_count=len(projects),
            metadata={"retry_of": retry_of} if retry_of else {},
        )
        with self._lock:
            self._runs[run_id] = record
            self._inputs[run_id] = (list(projects), list(rooms), config)
            self._futures[run_id] = self._executor.submit(self._execute, run_id)
        logger.info("Queued generation run %s for batch %s", run_id, config.batch)
        return record

    def list_runs(self) -> Dict[str, GenerationRunRecord]:
        with self._lock:
            return dict(self._runs)

    def get(self, run_id: str) -> Optional[GenerationRunRecord]:
        with self._lock:
            return self._runs.get(run_id)

    def cancel(self, run_id: str) -> bool:
        """Cancel a run that has not started yet."""
        with self._lock:
            record = self._runs.get(run_id)
            future = self._futures.get(run_id)
            if not record or record.status != "pending" or future is None or not future.cancel():
                return False
            record.status = "cancelled"
            record.finished_at = time.time()
            self._futures.pop(run_id, None)
        logger.info("Cancelled generation run %s", run_id)
        self._notify(record)
        return True

    def retry(self, run_id: str) -> Optional[GenerationRunRecord]:
        """Resubmit the inputs of a failed or cancelled run as a new run."""
        with self._lock:
            record = self._runs.get(run_id)
            if not record or record.status not in ("failed", "cancelled"):
                return None
            projects, rooms, config = self._inputs[run_id]
        return self.submit(projects, rooms, config, retry_of=run_id)

    def wait(self, run_id: str, timeout: Optional[float] = None) -> Optional[GenerationRunRecord]:
        with self._lock:
            future = self._futures.get(run_id)
        if future is not None and not future.cancelled():
            future.result(timeout=timeout)
        return self.get(run_id)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _execute(self, run_id: str) -> None:
        with self._lock:
            record = self._runs.get(run_id)
            if not record or record.status != "pending":
                return
            record.status = "running"
            record.started_at = time.time()
            projects, rooms, config = self._inputs[run_id]

        result: Optional[Dict[str, Any]] = None
        error: Optional[Dict[str, Any]] = None
        attempts = 0
        while attempts < self._max_attempts:
            attempts += 1
            try:
                result = self._service_provider().generate(projects, rooms, config).summary()
                error = None
                break
            except StorageError as exc:
                error = exc.to_dict()
            except SchedulingError as exc:
                error = exc.to_dict()
                break
            except Exception as exc:
                logger.exception("Generation run %s crashed", run_id)
                error = {"code": "internal_error", "message": str(exc)}
            if attempts < self._max_attempts:
                logger.warning(
                    "Generation run %s attempt %d/%d failed: %s",
                    run_id,
                    attempts,
                    self._max_attempts,
                    error["message"],
                )

        with self._lock:
            record.attempts = attempts
            record.finished_at = time.time()
            if error is None:
                record.status = "succeeded"
                record.result = result
                # only failed runs keep their inputs for a retry
                self._inputs.pop(run_id, None)
            else:
                record.status = "failed"
                record.error = error
        if error is None:
            logger.info("Generation run %s succeeded after %d attempt(s)", run_id, attempts)
        else:
            logger.error("Generation run %s failed: %s", run_id, error["message"])
        self._notify(record)
        with self._lock:
            self._futures.pop(run_id, None)

    def _notify(self, record: GenerationRunRecord) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(record)
            except Exception:
                logger.exception("Run listener failed for generation run %s", record.id)


__all__ = ["GenerationRunManager", "GenerationRunRecord"]
