from __future__ import annotations

from datetime import time
from typing import List, Optional

from pydantic import AwareDatetime, BaseModel, Field

from .config import MAX_TASK_DURATION_MINUTES, MIN_CHUNK_MINUTES
from .scheduler.schemas import SchedulerSettings, TaskCategory, TaskPriority, TaskStatus


class TaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    duration: int = Field(ge=MIN_CHUNK_MINUTES, le=MAX_TASK_DURATION_MINUTES)
    category: TaskCategory = TaskCategory.WORK
    priority: TaskPriority = TaskPriority.MEDIUM
    deadline: Optional[AwareDatetime] = None
    tags: List[str] = Field(default_factory=list)


class TaskStatusUpdate(BaseModel):
    status: TaskStatus


class WorkingHoursUpdate(BaseModel):
    start_time: time
    end_time: time
    timezone: Optional[str] = None
    working_days: Optional[List[int]] = None
    lunch_start: Optional[time] = None
    lunch_end: Optional[time] = None


class PreviewRequest(BaseModel):
    task_ids: Optional[List[str]] = None
    now: Optional[AwareDatetime] = None
    settings: Optional[SchedulerSettings] = None


class RetryRequest(BaseModel):
    now: Optional[AwareDatetime] = None
    settings: Optional[SchedulerSettings] = None


class ApplyRequest(BaseModel):
    preview_id: Optional[str] = None


class PlaceRequest(BaseModel):
    task_id: str
    start: AwareDatetime


class SweepRequest(BaseModel):
    now: Optional[AwareDatetime] = None
