from __future__ import annotations

import json
import logging
import pathlib
from datetime import datetime
from threading import RLock
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from .config import DATA_FILE, DEFAULT_TIMEZONE, DEFAULT_WORK_END, DEFAULT_WORK_START, DEFAULT_WORKING_DAYS
from .errors import StalePreviewError, TaskNotFoundError
from .scheduler.conflict_manager import find_conflicts, find_double_bookings
from .scheduler.schemas import (
    ScheduleBlock,
    Task,
    TaskStatus,
    WorkingHoursPolicy,
)
from .utils import (
    _log_debug,
    parse_hhmm,
    resolve_tz,
    to_utc,
    validate_lunch,
    validate_working_days,
    validate_working_hours,
)

logger = logging.getLogger(__name__)


def default_policy(user_id: str) -> WorkingHoursPolicy:
    return WorkingHoursPolicy(
        user_id=user_id,
        start_time=parse_hhmm(DEFAULT_WORK_START, "DEFAULT_WORK_START"),
        end_time=parse_hhmm(DEFAULT_WORK_END, "DEFAULT_WORK_END"),
        timezone=DEFAULT_TIMEZONE,
        working_days=list(DEFAULT_WORKING_DAYS),
    )


class LocalStore:
    """
    In-memory task/schedule/policy store with optional JSON persistence.

    Implements the TaskStore, ScheduleStore and PolicyProvider interfaces.
    NOTE: all mutations go through the methods of this class.
    """

    def __init__(self, data_file: Optional[pathlib.Path] = DATA_FILE):
        self.data_file = data_file
        self.tasks: Dict[str, Task] = {}
        self.blocks: Dict[str, ScheduleBlock] = {}
        self.policies: Dict[str, WorkingHoursPolicy] = {}
        self._versions: Dict[str, int] = {}
        self._lock = RLock()
        self._load_from_disk()

    # -------------------------
    # persistence
    # -------------------------
    def _serialize(self) -> Dict[str, Any]:
        return {
            "version": 1,
            "tasks": [t.model_dump(mode="json") for t in self.tasks.values()],
            "blocks": [b.model_dump(mode="json") for b in self.blocks.values()],
            "policies": [p.model_dump(mode="json") for p in self.policies.values()],
        }

    def _save_to_disk(self) -> None:
        if self.data_file is None:
            return
        try:
            self.data_file.write_text(json.dumps(self._serialize(), ensure_ascii=False, indent=2),
                                      encoding="utf-8")
        except OSError as exc:
            logger.warning("[STORE] save failed: %s", exc)

    def _load_from_disk(self) -> None:
        if self.data_file is None or not self.data_file.exists():
            return
        try:
            data = json.loads(self.data_file.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("[STORE] load failed: %s", exc)
            return
        if not isinstance(data, dict):
            return

        for raw in data.get("tasks") or []:
            try:
                task = Task.model_validate(raw)
            except ValidationError as exc:
                _log_debug(f"[STORE] skipped task: {exc}")
                continue
            self.tasks[task.id] = task
        for raw in data.get("blocks") or []:
            try:
                block = ScheduleBlock.model_validate(raw)
            except ValidationError as exc:
                _log_debug(f"[STORE] skipped block: {exc}")
                continue
            self.blocks[block.id] = block
        for raw in data.get("policies") or []:
            try:
                policy = WorkingHoursPolicy.model_validate(raw)
            except ValidationError as exc:
                _log_debug(f"[STORE] skipped policy: {exc}")
                continue
            self.policies[policy.user_id] = policy

    def _bump(self, user_id: str) -> None:
        self._versions[user_id] = self._versions.get(user_id, 0) + 1

    # -------------------------
    # tasks
    # -------------------------
    def add_task(self, task: Task) -> Task:
        with self._lock:
            self.tasks[task.id] = task
            self._save_to_disk()
            return task

    def list_tasks(self, user_id: str, status: Optional[TaskStatus] = None) -> List[Task]:
        with self._lock:
            items = [t for t in self.tasks.values() if t.user_id == user_id]
        if status is not None:
            items = [t for t in items if t.status == status]
        return sorted(items, key=lambda t: (t.created_at, t.id))

    def list_pending_tasks(self, user_id: str) -> List[Task]:
        return [t for t in self.list_tasks(user_id) if t.is_pending]

    def get_task(self, task_id: str) -> Task:
        with self._lock:
            task = self.tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(f"Task {task_id} not found.", task_id=task_id)
        return task

    def update_task_status(self, task_id: str, status: TaskStatus,
                           priority_boost: Optional[int] = None) -> Task:
        with self._lock:
            task = self.get_task(task_id)
            update: Dict[str, Any] = {"status": status}
            if priority_boost is not None:
                update["priority_boost"] = priority_boost
            updated = task.model_copy(update=update)
            self.tasks[task_id] = updated
            self._save_to_disk()
            return updated

    # -------------------------
    # schedule blocks
    # -------------------------
    def list_blocks(self, user_id: str, range_start: Optional[datetime] = None,
                    range_end: Optional[datetime] = None) -> List[ScheduleBlock]:
        with self._lock:
            items = [b for b in self.blocks.values() if b.user_id == user_id]
        if range_start is not None:
            start = to_utc(range_start, "range_start")
            items = [b for b in items if b.end > start]
        if range_end is not None:
            end = to_utc(range_end, "range_end")
            items = [b for b in items if b.start < end]
        return sorted(items, key=lambda b: (b.start, b.end, b.id))

    def create_blocks(self, blocks: Sequence[ScheduleBlock]) -> List[ScheduleBlock]:
        with self._lock:
            pairs = find_double_bookings(blocks)
            if pairs:
                raise StalePreviewError("Blocks in the batch overlap each other.",
                                        conflicting_ids=[pairs[0][0].id, pairs[0][1].id])
            for block in blocks:
                if block.task_id not in self.tasks:
                    raise TaskNotFoundError(f"Task {block.task_id} not found.",
                                            task_id=block.task_id)
                committed = [b for b in self.blocks.values() if b.user_id == block.user_id]
                hits = find_conflicts(block.start, block.end, committed)
                if hits:
                    raise StalePreviewError(
                        "A block overlaps a committed block; retry the preview.",
                        conflicting_ids=[b.id for b in hits])
            for block in blocks:
                self.blocks[block.id] = block
            for user_id in {b.user_id for b in blocks}:
                self._bump(user_id)
            self._save_to_disk()
            return list(blocks)

    def delete_blocks_for_task(self, task_id: str) -> List[ScheduleBlock]:
        with self._lock:
            removed = [b for b in self.blocks.values() if b.task_id == task_id]
            for block in removed:
                del self.blocks[block.id]
            for user_id in {b.user_id for b in removed}:
                self._bump(user_id)
            if removed:
                self._save_to_disk()
            return removed

    def complete_blocks_for_task(self, task_id: str) -> int:
        with self._lock:
            count = 0
            for block in list(self.blocks.values()):
                if block.task_id == task_id and not block.completed:
                    self.blocks[block.id] = block.model_copy(update={"completed": True})
                    count += 1
            if count:
                self._save_to_disk()
            return count

    def get_version(self, user_id: str) -> int:
        with self._lock:
            return self._versions.get(user_id, 0)

    # -------------------------
    # working hours
    # -------------------------
    def get_working_hours_policy(self, user_id: str) -> WorkingHoursPolicy:
        with self._lock:
            policy = self.policies.get(user_id)
        return policy if policy is not None else default_policy(user_id)

    def set_working_hours_policy(self, policy: WorkingHoursPolicy) -> WorkingHoursPolicy:
        validate_working_hours(policy.start_time, policy.end_time)
        validate_lunch(policy.lunch_start, policy.lunch_end)
        resolve_tz(policy.timezone)
        days = validate_working_days(policy.working_days)
        policy = policy.model_copy(update={"working_days": days})
        with self._lock:
            self.policies[policy.user_id] = policy
            self._bump(policy.user_id)
            self._save_to_disk()
        return policy
