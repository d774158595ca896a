from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from pfe_scheduler.models import Project


class ProjectIn(BaseModel):
    project_id: str = Field(..., description="Project identifier, unique within the request")
    title: str = ""
    president_id: str
    examiner_id: str
    supervisor_id: str
    co_supervisor_id: Optional[str] = None
    students: List[str] = Field(default_factory=list)
    option: Optional[str] = None

    def to_project(self) -> Project:
        return Project(
            project_id=self.project_id,
            title=self.title,
            president_id=self.president_id,
            examiner_id=self.examiner_id,
            supervisor_id=self.supervisor_id,
            co_supervisor_id=self.co_supervisor_id or None,
            students=tuple(self.students),
            option=self.option,
        )


class GenerateRequest(BaseModel):
    """
    Calendar settings plus the projects to schedule.

    Projects come inline or from an uploaded dataset; settings left unset fall
    back to the dataset settings file, then to ``DEFAULT_SETTINGS``.
    """

    model_config = ConfigDict(extra="forbid")

    dataset_id: Optional[str] = None
    projects: Optional[List[ProjectIn]] = None
    order_by: Optional[str] = None

    batch: Optional[str] = None
    working_start: Optional[str] = Field(None, description="HH:MM")
    working_end: Optional[str] = Field(None, description="HH:MM")
    session_duration: Optional[int] = Field(None, description="Minutes")
    break_duration: Optional[int] = Field(None, description="Minutes")
    rooms: Optional[List[Union[str, Dict[str, Any]]]] = None
    excluded_dates: Optional[List[dt.date]] = None
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    horizon_days: Optional[int] = None
    day_off: Optional[Union[int, str]] = Field(None, description="Weekday name, index, or 'none'")
    holidays: Optional[List[str]] = Field(None, description="MM-DD entries")

    @model_validator(mode="after")
    def _projects_source(self) -> "GenerateRequest":
        if self.projects is None and not self.dataset_id:
            raise ValueError("either projects or dataset_id is required")
        return self

    def settings_overrides(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"dataset_id", "projects", "order_by"}, exclude_none=True)


class MoveRequest(BaseModel):
    new_date: dt.date
    room_id: Optional[str] = None


class EditTimeRequest(BaseModel):
    start_time: str = Field(..., description="HH:MM")
    room_id: Optional[str] = None


class BookRequest(BaseModel):
    project_id: str
    day: dt.date
    batch: str = "1"
    start_time: Optional[str] = Field(None, description="HH:MM; first free start of the day when omitted")
    room_id: Optional[str] = None


class SessionOut(BaseModel):
    session_id: str
    project_id: str
    batch: str
    date: str
    start_time: str
    end_time: str
    room_id: str


class SessionListResponse(BaseModel):
    sessions: List[SessionOut]
    count: int


class GenerationResult(BaseModel):
    batch: str
    created_count: int
    unassigned_count: int
    unassigned: List[Dict[str, Any]]
    sessions: List[SessionOut]
    elapsed_sec: float


class GenerationRunResponse(BaseModel):
    run_id: str
    batch: str
    status: str
    attempts: int
    project_count: int
    created_at: float
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    error: Optional[Dict[str, Any]] = None
    result: Optional[Dict[str, Any]] = None
    retry_of: Optional[str] = None
