"""Deterministic placement order for pending tasks."""

from __future__ import annotations

from typing import Iterable, List, Tuple

from .schemas import Task

_NO_DEADLINE = 1


def effective_rank(task: Task) -> int:
    """Priority rank after applying the one-time missed-task boost (0 = URGENT)."""
    return max(0, task.priority.rank - task.priority_boost)


def sort_key(task: Task, tie_break: str = "newest") -> Tuple[int, int, float, float, str]:
    # deadline: present before absent, earlier before later
    if task.deadline is not None:
        deadline_key = (0, task.deadline.timestamp())
    else:
        deadline_key = (_NO_DEADLINE, 0.0)
    created = task.created_at.timestamp()
    recency = -created if tie_break == "newest" else created
    return (effective_rank(task), deadline_key[0], deadline_key[1], recency, task.id)


def order(tasks: Iterable[Task], tie_break: str = "newest") -> List[Task]:
    """
    Sort by effective priority, then deadline proximity, then creation time.

    `tie_break="newest"` puts the most recently created task first among
    otherwise equal tasks; `"oldest"` reverses that. The task id settles any
    remaining tie so the order is total.
    """
    if tie_break not in ("newest", "oldest"):
        raise ValueError(f"unknown tie_break: {tie_break}")
    return sorted(tasks, key=lambda t: sort_key(t, tie_break))
