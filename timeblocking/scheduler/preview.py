"""
Preview / Apply workflow

A scheduling run is computed against a snapshot of the stores and held as the
user's active preview until it is applied, retried or cancelled. Only one
preview is active per user; starting a new one replaces the previous one.
Applying is all-or-nothing and is refused when the schedule store moved
since the snapshot was taken.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Dict, List, Optional, Sequence, Tuple

from pydantic import AwareDatetime, BaseModel, Field

from ..errors import (
    InvalidInputError,
    PreviewNotFoundError,
    StalePreviewError,
    TaskNotFoundError,
)
from ..utils import _log_debug, _now_utc, ceil_to_slot, resolve_tz, to_utc
from . import status as status_machine
from .conflict_manager import ensure_no_conflict
from .ports import PolicyProvider, ScheduleStore, TaskStore
from .schemas import (
    AvailabilityWindow,
    FeasibilityReport,
    ScheduleBlock,
    SchedulerSettings,
    SchedulingResult,
    Task,
    TaskStatus,
)
from .time_block_planner import TimeBlockPlanner

logger = logging.getLogger(__name__)


class Preview(BaseModel):
  preview_id: str
  user_id: str
  task_ids: Optional[List[str]] = None
  range_start: AwareDatetime
  range_end: AwareDatetime
  settings: SchedulerSettings
  snapshot_version: int
  task_statuses: Dict[str, TaskStatus] = Field(default_factory=dict)
  result: SchedulingResult


class SchedulingService:
  """Hosts the scheduling engine on top of the task/schedule/policy stores."""

  def __init__(self,
               task_store: TaskStore,
               schedule_store: ScheduleStore,
               policy_provider: PolicyProvider,
               settings: Optional[SchedulerSettings] = None):
    self.tasks = task_store
    self.schedules = schedule_store
    self.policies = policy_provider
    self.settings = settings or SchedulerSettings()
    self._previews: Dict[str, Preview] = {}
    self._lock = Lock()

  # -------------------------
  # snapshot helpers
  # -------------------------
  def _horizon(self, user_id: str, now: datetime,
               settings: SchedulerSettings) -> Tuple[datetime, datetime]:
    policy = self.policies.get_working_hours_policy(user_id)
    tz = resolve_tz(policy.timezone)
    start = ceil_to_slot(now.astimezone(tz), settings.slot_minutes).astimezone(timezone.utc)
    return start, start + timedelta(days=settings.horizon_days)

  def _select_tasks(self, user_id: str, task_ids: Optional[Sequence[str]]) -> List[Task]:
    pending = self.tasks.list_pending_tasks(user_id)
    if task_ids is None:
      return pending
    wanted = list(dict.fromkeys(task_ids))
    by_id = {t.id: t for t in pending}
    for task_id in wanted:
      if task_id in by_id:
        continue
      task = self._owned_task(user_id, task_id)
      raise InvalidInputError(
          f"Task {task_id} is {task.status.value} and cannot be auto-scheduled.",
          task_id=task_id)
    return [by_id[task_id] for task_id in wanted]

  def _owned_task(self, user_id: str, task_id: str) -> Task:
    task = self.tasks.get_task(task_id)
    if task.user_id != user_id:
      raise TaskNotFoundError(f"Task {task_id} not found.", task_id=task_id)
    return task

  def _compute(self, user_id: str, task_ids: Optional[Sequence[str]], now: datetime,
               settings: SchedulerSettings) -> Preview:
    # one read of every store; later mutations are caught at apply time
    version = self.schedules.get_version(user_id)
    policy = self.policies.get_working_hours_policy(user_id)
    tasks = self._select_tasks(user_id, task_ids)
    range_start, range_end = self._horizon(user_id, now, settings)
    rescheduled = {t.id for t in tasks}
    existing = [
        b for b in self.schedules.list_blocks(user_id, range_start, range_end)
        if b.task_id not in rescheduled
    ]
    planner = TimeBlockPlanner(settings)
    result = planner.plan_tasks(user_id, tasks, policy, existing, (range_start, range_end))
    preview_id = uuid.uuid4().hex
    return Preview(
        preview_id=preview_id,
        user_id=user_id,
        task_ids=list(task_ids) if task_ids is not None else None,
        range_start=range_start,
        range_end=range_end,
        settings=settings,
        snapshot_version=version,
        task_statuses={t.id: t.status for t in tasks},
        result=result.model_copy(update={"preview_id": preview_id}),
    )

  # -------------------------
  # preview lifecycle
  # -------------------------
  def run_preview(self,
                  user_id: str,
                  task_ids: Optional[Sequence[str]] = None,
                  now: Optional[datetime] = None,
                  settings: Optional[SchedulerSettings] = None) -> SchedulingResult:
    now = to_utc(now, "now") if now is not None else _now_utc()
    preview = self._compute(user_id, task_ids, now, settings or self.settings)
    with self._lock:
      replaced = self._previews.get(user_id)
      self._previews[user_id] = preview
    if replaced is not None:
      _log_debug(f"[SCHEDULER] preview {replaced.preview_id} replaced by {preview.preview_id}")
    return preview.result

  def retry_preview(self,
                    user_id: str,
                    now: Optional[datetime] = None,
                    settings: Optional[SchedulerSettings] = None) -> SchedulingResult:
    with self._lock:
      active = self._previews.get(user_id)
    if active is None:
      raise PreviewNotFoundError()
    return self.run_preview(user_id,
                            task_ids=active.task_ids,
                            now=now,
                            settings=settings or active.settings)

  def cancel_preview(self, user_id: str) -> bool:
    with self._lock:
      return self._previews.pop(user_id, None) is not None

  def get_active_preview(self, user_id: str) -> Optional[SchedulingResult]:
    with self._lock:
      active = self._previews.get(user_id)
    return active.result if active is not None else None

  def apply_preview(self, user_id: str, preview_id: Optional[str] = None) -> List[ScheduleBlock]:
    with self._lock:
      preview = self._previews.get(user_id)
      if preview is None:
        raise PreviewNotFoundError()
      if preview_id is not None and preview.preview_id != preview_id:
        raise StalePreviewError("This preview was replaced by a newer one.",
                                preview_id=preview_id)
      if self.schedules.get_version(user_id) != preview.snapshot_version:
        raise StalePreviewError(preview_id=preview.preview_id)

      result = preview.result
      task_ids = result.scheduled_task_ids
      for task_id in task_ids:
        task = self.tasks.get_task(task_id)
        if task.status != preview.task_statuses.get(task_id):
          raise StalePreviewError(f"Task {task_id} changed since the preview.",
                                  task_id=task_id)
        status_machine.ensure_transition(task.status, TaskStatus.SCHEDULED)

      removed: List[ScheduleBlock] = []
      for task_id in task_ids:
        removed.extend(self.schedules.delete_blocks_for_task(task_id))
      try:
        committed = self.schedules.create_blocks(result.blocks) if result.blocks else []
      except Exception:
        if removed:
          self.schedules.create_blocks(removed)
        logger.warning("apply of preview %s rejected by the schedule store", preview.preview_id)
        raise

      for task_id in task_ids:
        self.tasks.update_task_status(task_id, TaskStatus.SCHEDULED, priority_boost=0)
      self._previews.pop(user_id, None)

    _log_debug(f"[SCHEDULER] applied preview {preview.preview_id} blocks={len(committed)}")
    return committed

  # -------------------------
  # direct operations
  # -------------------------
  def place_manually(self, user_id: str, task_id: str, start: datetime) -> ScheduleBlock:
    """Place one task at a caller-chosen start, guarded by the overlap check."""
    start = to_utc(start, "start")
    with self._lock:
      task = self._owned_task(user_id, task_id)
      # a SCHEDULED task is being moved; its own blocks are replaced below
      if task.status != TaskStatus.SCHEDULED:
        status_machine.ensure_transition(task.status, TaskStatus.SCHEDULED)
      end = start + timedelta(minutes=task.duration)
      existing = self.schedules.list_blocks(user_id, start, end)
      ensure_no_conflict(start, end, existing, ignore_task_id=task.id)
      self.schedules.delete_blocks_for_task(task.id)
      block = ScheduleBlock(task_id=task.id, user_id=user_id, start=start, end=end)
      committed = self.schedules.create_blocks([block])
      self.tasks.update_task_status(task.id, TaskStatus.SCHEDULED, priority_boost=0)
    return committed[0]

  def sweep_missed(self, user_id: str, now: Optional[datetime] = None) -> List[str]:
    now = to_utc(now, "now") if now is not None else _now_utc()
    with self._lock:
      blocks = self.schedules.list_blocks(user_id)
      tasks = [self.tasks.get_task(task_id) for task_id in dict.fromkeys(b.task_id for b in blocks)]
      missed = status_machine.sweep_missed(blocks, tasks, now, self.settings.missed_grace_minutes)
      for task_id in missed:
        self.tasks.update_task_status(task_id, TaskStatus.MISSED, priority_boost=1)
    if missed:
      _log_debug(f"[SCHEDULER] sweep user={user_id} missed={missed}")
    return missed

  def update_task_status(self, user_id: str, task_id: str, requested: TaskStatus) -> Task:
    with self._lock:
      task = self._owned_task(user_id, task_id)
      status_machine.ensure_transition(task.status, requested)
      if requested == TaskStatus.COMPLETED:
        self.schedules.complete_blocks_for_task(task_id)
      elif requested == TaskStatus.WAITING:
        self.schedules.delete_blocks_for_task(task_id)
      elif requested == TaskStatus.MISSED:
        return self.tasks.update_task_status(task_id, requested, priority_boost=1)
      return self.tasks.update_task_status(task_id, requested)

  # -------------------------
  # read-only helpers
  # -------------------------
  def availability(self,
                   user_id: str,
                   now: Optional[datetime] = None,
                   settings: Optional[SchedulerSettings] = None) -> List[AvailabilityWindow]:
    settings = settings or self.settings
    now = to_utc(now, "now") if now is not None else _now_utc()
    range_start, range_end = self._horizon(user_id, now, settings)
    policy = self.policies.get_working_hours_policy(user_id)
    blocks = self.schedules.list_blocks(user_id, range_start, range_end)
    return TimeBlockPlanner(settings).find_available_slots(
        user_id, (range_start, range_end), policy, blocks)

  def feasibility(self,
                  user_id: str,
                  now: Optional[datetime] = None,
                  settings: Optional[SchedulerSettings] = None) -> FeasibilityReport:
    settings = settings or self.settings
    windows = self.availability(user_id, now=now, settings=settings)
    tasks = self.tasks.list_pending_tasks(user_id)
    return TimeBlockPlanner(settings).analyze_feasibility(tasks, windows)
