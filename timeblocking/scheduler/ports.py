"""Interfaces of the stores the scheduler reads from and writes to."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Protocol, Sequence

from .schemas import ScheduleBlock, Task, TaskStatus, WorkingHoursPolicy


class TaskStore(Protocol):

  def list_pending_tasks(self, user_id: str) -> List[Task]:
    """WAITING and MISSED tasks of the user."""
    ...

  def get_task(self, task_id: str) -> Task:
    """Raises TaskNotFoundError when missing."""
    ...

  def update_task_status(self, task_id: str, status: TaskStatus,
                         priority_boost: Optional[int] = None) -> Task:
    ...


class ScheduleStore(Protocol):

  def list_blocks(self, user_id: str, range_start: Optional[datetime] = None,
                  range_end: Optional[datetime] = None) -> List[ScheduleBlock]:
    ...

  def create_blocks(self, blocks: Sequence[ScheduleBlock]) -> List[ScheduleBlock]:
    """All-or-nothing. Raises StalePreviewError when a block can no longer be committed."""
    ...

  def delete_blocks_for_task(self, task_id: str) -> List[ScheduleBlock]:
    ...

  def complete_blocks_for_task(self, task_id: str) -> int:
    ...

  def get_version(self, user_id: str) -> int:
    """Monotonic counter bumped on every committed change for the user."""
    ...


class PolicyProvider(Protocol):

  def get_working_hours_policy(self, user_id: str) -> WorkingHoursPolicy:
    ...
