"""
Task lifecycle state machine.

Every status change requested by a caller goes through `ensure_transition`.
COMPLETED is terminal (reopening is not supported). Pausing an IN_PROGRESS
task returns it to SCHEDULED and keeps the blocks it already has.
SPLIT is a structural marker and is never a valid transition target.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, FrozenSet, Iterable, List

from ..config import MISSED_GRACE_MINUTES
from ..errors import InvalidTransitionError
from ..utils import to_utc
from .schemas import ScheduleBlock, Task, TaskStatus

TERMINAL_STATUSES: FrozenSet[TaskStatus] = frozenset({TaskStatus.COMPLETED})

ALLOWED_TRANSITIONS: Dict[TaskStatus, FrozenSet[TaskStatus]] = {
    TaskStatus.WAITING: frozenset(
        {
            TaskStatus.SCHEDULED,
            TaskStatus.IN_PROGRESS,
            TaskStatus.COMPLETED,
        }
    ),
    TaskStatus.SCHEDULED: frozenset(
        {
            TaskStatus.IN_PROGRESS,
            TaskStatus.COMPLETED,
            TaskStatus.MISSED,
        }
    ),
    # IN_PROGRESS -> SCHEDULED is "pause"
    TaskStatus.IN_PROGRESS: frozenset(
        {
            TaskStatus.COMPLETED,
            TaskStatus.SCHEDULED,
        }
    ),
    TaskStatus.MISSED: frozenset(
        {
            TaskStatus.WAITING,
            TaskStatus.SCHEDULED,
        }
    ),
    TaskStatus.COMPLETED: frozenset(),
}


def is_terminal(status: TaskStatus) -> bool:
    return status in TERMINAL_STATUSES


def is_valid_transition(current: TaskStatus, requested: TaskStatus) -> bool:
    """Return True if current -> requested appears in the transition table."""
    allowed = ALLOWED_TRANSITIONS.get(current)
    if allowed is None:
        return False
    return requested in allowed


def ensure_transition(current: TaskStatus, requested: TaskStatus) -> None:
    if not is_valid_transition(current, requested):
        raise InvalidTransitionError(current, requested)


def sweep_missed(
    blocks: Iterable[ScheduleBlock],
    tasks: Iterable[Task],
    now: datetime,
    grace_minutes: int = MISSED_GRACE_MINUTES,
) -> List[str]:
    """
    Ids of SCHEDULED tasks owning a block that ended more than
    `grace_minutes` before `now` without being completed.

    Pure: the caller applies the SCHEDULED -> MISSED transitions.
    """
    now = to_utc(now, "now")
    grace = timedelta(minutes=grace_minutes)
    scheduled = {t.id for t in tasks if t.status == TaskStatus.SCHEDULED}
    missed: List[str] = []
    for block in sorted(blocks, key=lambda b: (b.end, b.id)):
        if block.completed or block.task_id not in scheduled:
            continue
        if block.end + grace < now and block.task_id not in missed:
            missed.append(block.task_id)
    return missed
