from __future__ import annotations

import uuid
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, model_validator

from ..config import (
    AUTO_SPLIT_THRESHOLD_MINUTES,
    DEFAULT_HORIZON_DAYS,
    DEFAULT_TIMEZONE,
    DEFAULT_WORKING_DAYS,
    MAX_HORIZON_DAYS,
    MAX_TASK_DURATION_MINUTES,
    MIN_CHUNK_MINUTES,
    MISSED_GRACE_MINUTES,
    SLOT_MINUTES,
)


_Date = date


def _new_id() -> str:
  return uuid.uuid4().hex


def _utc_now() -> datetime:
  return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
#  Enums
# ---------------------------------------------------------------------------

class TaskPriority(str, Enum):
  URGENT = "URGENT"
  HIGH = "HIGH"
  MEDIUM = "MEDIUM"
  LOW = "LOW"

  @property
  def rank(self) -> int:
    return _PRIORITY_RANK[self]


_PRIORITY_RANK: Dict[TaskPriority, int] = {
    TaskPriority.URGENT: 0,
    TaskPriority.HIGH: 1,
    TaskPriority.MEDIUM: 2,
    TaskPriority.LOW: 3,
}


class TaskStatus(str, Enum):
  WAITING = "WAITING"
  SCHEDULED = "SCHEDULED"
  SPLIT = "SPLIT"  # structural marker only
  IN_PROGRESS = "IN_PROGRESS"
  MISSED = "MISSED"
  COMPLETED = "COMPLETED"


PENDING_STATUSES = frozenset({TaskStatus.WAITING, TaskStatus.MISSED})


class TaskCategory(str, Enum):
  WORK = "WORK"
  PERSONAL = "PERSONAL"
  HEALTH = "HEALTH"
  LEARNING = "LEARNING"
  SOCIAL = "SOCIAL"
  OTHER = "OTHER"


class SplitReason(str, Enum):
  AUTO_SPLIT = "auto-split"
  USER_SPLIT = "user-split"
  TIME_CONFLICT = "time-conflict"


class ConflictType(str, Enum):
  CAPACITY_CONFLICT = "CAPACITY_CONFLICT"
  DEADLINE_CONFLICT = "DEADLINE_CONFLICT"
  TIME_CONFLICT = "TIME_CONFLICT"


# ---------------------------------------------------------------------------
#  Tasks and blocks
# ---------------------------------------------------------------------------

class Task(BaseModel):
  """A unit of work owned by the task store. Read-mostly for the engine."""
  model_config = ConfigDict(extra="ignore")

  id: str = Field(default_factory=_new_id)
  user_id: str
  title: str = Field(min_length=1, max_length=200)
  description: Optional[str] = None
  duration: int = Field(ge=MIN_CHUNK_MINUTES, le=MAX_TASK_DURATION_MINUTES)
  category: TaskCategory = TaskCategory.WORK
  priority: TaskPriority = TaskPriority.MEDIUM
  status: TaskStatus = TaskStatus.WAITING
  deadline: Optional[AwareDatetime] = None
  tags: List[str] = Field(default_factory=list)
  created_at: AwareDatetime = Field(default_factory=_utc_now)
  priority_boost: int = Field(default=0, ge=0, le=1)
  parent_id: Optional[str] = None
  split_index: Optional[int] = Field(default=None, ge=1)
  split_total: Optional[int] = Field(default=None, ge=1)
  child_ids: List[str] = Field(default_factory=list)

  @model_validator(mode="after")
  def _check_split(self) -> "Task":
    if self.split_index is not None and self.split_total is not None:
      if self.split_index > self.split_total:
        raise ValueError("split_index cannot exceed split_total")
    return self

  @property
  def is_pending(self) -> bool:
    return self.status in PENDING_STATUSES


class SplitInfo(BaseModel):
  model_config = ConfigDict(extra="ignore")

  part_number: int = Field(ge=1)
  total_parts: int = Field(ge=1)
  split_reason: SplitReason = SplitReason.AUTO_SPLIT

  @model_validator(mode="after")
  def _check_part(self) -> "SplitInfo":
    if self.part_number > self.total_parts:
      raise ValueError("part_number cannot exceed total_parts")
    return self


class ScheduleBlock(BaseModel):
  """One placed interval of a task. start < end, both timezone-aware."""
  model_config = ConfigDict(extra="ignore")

  id: str = Field(default_factory=_new_id)
  task_id: str
  user_id: str
  start: AwareDatetime
  end: AwareDatetime
  split_info: Optional[SplitInfo] = None
  completed: bool = False

  @model_validator(mode="after")
  def _check_interval(self) -> "ScheduleBlock":
    if self.start >= self.end:
      raise ValueError("block start must be strictly before end")
    return self

  @property
  def duration_minutes(self) -> int:
    return int((self.end - self.start).total_seconds() // 60)


# ---------------------------------------------------------------------------
#  Availability
# ---------------------------------------------------------------------------

class AvailabilityWindow(BaseModel):
  """Contiguous free stretch on one local calendar day. Immutable."""
  model_config = ConfigDict(frozen=True)

  date: _Date
  start: AwareDatetime
  end: AwareDatetime
  is_working_time: bool = True

  @property
  def duration_minutes(self) -> int:
    return int((self.end - self.start).total_seconds() // 60)

  def consume(self, minutes: int) -> Optional["AvailabilityWindow"]:
    """Return the window left after taking `minutes` from its start, or None."""
    new_start = self.start + timedelta(minutes=minutes)
    if new_start >= self.end:
      return None
    return self.model_copy(update={"start": new_start})

  def clip_end(self, limit: datetime) -> Optional["AvailabilityWindow"]:
    if limit <= self.start:
      return None
    if limit >= self.end:
      return self
    return self.model_copy(update={"end": limit})


class WorkingHoursPolicy(BaseModel):
  model_config = ConfigDict(extra="ignore")

  user_id: str
  start_time: time = time(10, 0)
  end_time: time = time(20, 0)
  timezone: str = DEFAULT_TIMEZONE
  working_days: List[int] = Field(default_factory=lambda: list(DEFAULT_WORKING_DAYS))
  lunch_start: Optional[time] = None
  lunch_end: Optional[time] = None

  def is_working_day(self, day: date) -> bool:
    return day.isoweekday() in self.working_days


# ---------------------------------------------------------------------------
#  Settings and results
# ---------------------------------------------------------------------------

class SchedulerSettings(BaseModel):
  """Per-run knobs. Defaults come from config."""
  model_config = ConfigDict(extra="ignore")

  slot_minutes: int = Field(default=SLOT_MINUTES, ge=5, le=240)
  min_chunk_minutes: int = Field(default=MIN_CHUNK_MINUTES, ge=5)
  auto_split_threshold: int = Field(default=AUTO_SPLIT_THRESHOLD_MINUTES, ge=0)
  horizon_days: int = Field(default=DEFAULT_HORIZON_DAYS, ge=1, le=MAX_HORIZON_DAYS)
  group_same_category: bool = False
  respect_working_hours: bool = True
  tie_break: Literal["newest", "oldest"] = "newest"
  missed_grace_minutes: int = Field(default=MISSED_GRACE_MINUTES, ge=0)


class Conflict(BaseModel):
  task_id: str
  task_title: Optional[str] = None
  conflict_type: ConflictType
  reason: str
  suggested_action: str = ""
  conflict_with: Optional[str] = None


class PlacementOutcome(BaseModel):
  blocks: List[ScheduleBlock] = Field(default_factory=list)
  conflicts: List[Conflict] = Field(default_factory=list)
  remaining: List[AvailabilityWindow] = Field(default_factory=list)


class SchedulingResult(BaseModel):
  success: bool
  blocks: List[ScheduleBlock] = Field(default_factory=list)
  conflicts: List[Conflict] = Field(default_factory=list)
  suggestions: List[str] = Field(default_factory=list)
  message: str = ""
  preview_id: Optional[str] = None

  def blocks_for(self, task_id: str) -> List[ScheduleBlock]:
    return [block for block in self.blocks if block.task_id == task_id]

  @property
  def scheduled_task_ids(self) -> List[str]:
    seen: List[str] = []
    for block in self.blocks:
      if block.task_id not in seen:
        seen.append(block.task_id)
    return seen


class FeasibilityReport(BaseModel):
  total_required: int
  total_available: int
  can_schedule_all: bool
  problematic_task_ids: List[str] = Field(default_factory=list)
  suggestions: List[str] = Field(default_factory=list)
