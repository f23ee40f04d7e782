"""
Semantic test: task lifecycle.

Invariant:
Only transitions listed in the lifecycle table are accepted. COMPLETED is
terminal and SPLIT is never a transition target. The missed sweep only
reports SCHEDULED tasks whose block ended more than the grace period ago.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import at, make_block, make_task
from timeblocking.config import MISSED_GRACE_MINUTES
from timeblocking.errors import InvalidTransitionError
from timeblocking.scheduler.schemas import TaskStatus
from timeblocking.scheduler.status import (
    ensure_transition,
    is_terminal,
    is_valid_transition,
    sweep_missed,
)

S = TaskStatus

ALLOWED = {
    (S.WAITING, S.SCHEDULED),
    (S.WAITING, S.IN_PROGRESS),
    (S.WAITING, S.COMPLETED),
    (S.SCHEDULED, S.IN_PROGRESS),
    (S.SCHEDULED, S.COMPLETED),
    (S.SCHEDULED, S.MISSED),
    (S.IN_PROGRESS, S.COMPLETED),
    (S.IN_PROGRESS, S.SCHEDULED),
    (S.MISSED, S.WAITING),
    (S.MISSED, S.SCHEDULED),
}


def test_transition_table_matches_lifecycle() -> None:
  for current in TaskStatus:
    for requested in TaskStatus:
      assert is_valid_transition(current, requested) == ((current, requested) in ALLOWED)


def test_completed_is_terminal() -> None:
  assert is_terminal(S.COMPLETED)
  for requested in TaskStatus:
    with pytest.raises(InvalidTransitionError):
      ensure_transition(S.COMPLETED, requested)


def test_invalid_transition_carries_both_states() -> None:
  with pytest.raises(InvalidTransitionError) as excinfo:
    ensure_transition(S.WAITING, S.MISSED)

  assert excinfo.value.to_dict()["details"] == {"current": "WAITING", "requested": "MISSED"}


def test_split_is_never_a_target() -> None:
  assert not any(is_valid_transition(current, S.SPLIT) for current in TaskStatus)


def test_sweep_respects_grace_period() -> None:
  task = make_task("call", 60, status=S.SCHEDULED)
  blocks = [make_block(task.id, at(6, 10), at(6, 11))]
  deadline = at(6, 11) + timedelta(minutes=MISSED_GRACE_MINUTES)

  assert sweep_missed(blocks, [task], deadline) == []
  assert sweep_missed(blocks, [task], deadline + timedelta(minutes=1)) == [task.id]


def test_sweep_grace_can_be_overridden() -> None:
  task = make_task("call", 60, status=S.SCHEDULED)
  blocks = [make_block(task.id, at(6, 10), at(6, 11))]

  assert sweep_missed(blocks, [task], at(6, 11, 5), grace_minutes=0) == [task.id]


def test_sweep_skips_completed_blocks_and_unscheduled_tasks() -> None:
  done = make_task("done", 60, status=S.SCHEDULED)
  running = make_task("running", 60, status=S.IN_PROGRESS)
  blocks = [
      make_block(done.id, at(6, 10), at(6, 11), completed=True),
      make_block(running.id, at(6, 11), at(6, 12)),
  ]

  assert sweep_missed(blocks, [done, running], at(7, 10)) == []


def test_sweep_reports_each_task_once() -> None:
  task = make_task("split", 300, status=S.SCHEDULED)
  blocks = [make_block(task.id, at(6, 10), at(6, 12)), make_block(task.id, at(7, 10), at(7, 13))]

  assert sweep_missed(blocks, [task], at(8, 10)) == [task.id]
