"""
Semantic test: preview / apply workflow.

Invariant:
A preview never mutates the stores. Applying commits every block of the
preview or none of them, and is refused once the user's calendar changed
since the preview was computed. At most one preview is active per user.
"""

from __future__ import annotations

import pytest

from conftest import NOW, USER, at, make_task, spans
from timeblocking.errors import (
    InvalidInputError,
    InvalidTransitionError,
    PlacementConflictError,
    PreviewNotFoundError,
    StalePreviewError,
    TaskNotFoundError,
)
from timeblocking.scheduler.conflict_manager import find_double_bookings
from timeblocking.scheduler.preview import SchedulingService
from timeblocking.scheduler.schemas import TaskPriority, TaskStatus
from timeblocking.state import LocalStore


def test_preview_is_idempotent_and_read_only(store, service) -> None:
  task = store.add_task(make_task("report", 180))

  first = service.run_preview(USER, now=NOW)
  second = service.run_preview(USER, now=NOW)

  assert spans(first.blocks) == spans(second.blocks) == [(task.id, at(6, 10), at(6, 13))]
  assert first.preview_id != second.preview_id
  assert store.list_blocks(USER) == []
  assert store.get_task(task.id).status == TaskStatus.WAITING


def test_apply_commits_blocks_and_schedules_tasks(store, service) -> None:
  urgent = store.add_task(make_task("urgent", 120, priority=TaskPriority.URGENT))
  low = store.add_task(make_task("low", 60, priority=TaskPriority.LOW))
  result = service.run_preview(USER, now=NOW)

  committed = service.apply_preview(USER, preview_id=result.preview_id)

  assert spans(committed) == [(urgent.id, at(6, 10), at(6, 12)), (low.id, at(6, 12), at(6, 13))]
  assert spans(store.list_blocks(USER)) == spans(committed)
  assert store.get_task(urgent.id).status == TaskStatus.SCHEDULED
  assert store.get_task(low.id).status == TaskStatus.SCHEDULED
  assert service.get_active_preview(USER) is None


def test_unplaced_tasks_stay_waiting_after_apply(store, service) -> None:
  placed = store.add_task(make_task("placed", 60))
  late = store.add_task(make_task("late", 60, deadline=at(6, 9, 30)))
  result = service.run_preview(USER, now=NOW)

  service.apply_preview(USER)

  assert [c.task_id for c in result.conflicts] == [late.id]
  assert store.get_task(placed.id).status == TaskStatus.SCHEDULED
  assert store.get_task(late.id).status == TaskStatus.WAITING


def test_apply_is_refused_after_calendar_changed(store, service) -> None:
  task = store.add_task(make_task("report", 180))
  other = store.add_task(make_task("call", 60))
  service.run_preview(USER, task_ids=[task.id], now=NOW)

  service.place_manually(USER, other.id, at(6, 15))

  with pytest.raises(StalePreviewError):
    service.apply_preview(USER)
  assert store.get_task(task.id).status == TaskStatus.WAITING
  assert [b.task_id for b in store.list_blocks(USER)] == [other.id]


def test_retry_after_stale_preview_avoids_new_blocks(store, service) -> None:
  task = store.add_task(make_task("report", 180))
  other = store.add_task(make_task("call", 60))
  service.run_preview(USER, task_ids=[task.id], now=NOW)
  service.place_manually(USER, other.id, at(6, 11))

  result = service.retry_preview(USER, now=NOW)
  service.apply_preview(USER, preview_id=result.preview_id)

  assert spans(store.list_blocks(USER, at(6, 0), at(7, 0))) == [
      (other.id, at(6, 11), at(6, 12)),
      (task.id, at(6, 12), at(6, 15)),
  ]
  assert find_double_bookings(store.list_blocks(USER)) == []


def test_apply_is_refused_when_task_status_changed(store, service) -> None:
  task = store.add_task(make_task("report", 180))
  service.run_preview(USER, now=NOW)

  service.update_task_status(USER, task.id, TaskStatus.IN_PROGRESS)

  with pytest.raises(StalePreviewError):
    service.apply_preview(USER)
  assert store.list_blocks(USER) == []


def test_new_preview_replaces_the_previous_one(store, service) -> None:
  store.add_task(make_task("report", 180))
  old = service.run_preview(USER, now=NOW)
  new = service.run_preview(USER, now=NOW)

  assert service.get_active_preview(USER).preview_id == new.preview_id
  with pytest.raises(StalePreviewError):
    service.apply_preview(USER, preview_id=old.preview_id)


def test_cancel_discards_the_preview(store, service) -> None:
  store.add_task(make_task("report", 180))
  service.run_preview(USER, now=NOW)

  assert service.cancel_preview(USER) is True
  assert service.cancel_preview(USER) is False
  with pytest.raises(PreviewNotFoundError):
    service.apply_preview(USER)
  with pytest.raises(PreviewNotFoundError):
    service.retry_preview(USER, now=NOW)


def test_previews_are_per_user(store, service) -> None:
  store.add_task(make_task("mine", 60))
  service.run_preview(USER, now=NOW)

  assert service.get_active_preview("user-2") is None
  with pytest.raises(PreviewNotFoundError):
    service.apply_preview("user-2")


def test_selected_tasks_must_be_pending_and_owned(store, service) -> None:
  task = store.add_task(make_task("report", 60))
  foreign = store.add_task(make_task("foreign", 60, user_id="user-2"))
  service.place_manually(USER, task.id, at(6, 10))

  with pytest.raises(InvalidInputError):
    service.run_preview(USER, task_ids=[task.id], now=NOW)
  with pytest.raises(TaskNotFoundError):
    service.run_preview(USER, task_ids=["missing"], now=NOW)
  with pytest.raises(TaskNotFoundError):
    service.run_preview(USER, task_ids=[foreign.id], now=NOW)


def test_manual_placement_rejects_overlap(store, service) -> None:
  first = store.add_task(make_task("first", 60))
  second = store.add_task(make_task("second", 60))
  service.place_manually(USER, first.id, at(6, 10))

  with pytest.raises(PlacementConflictError):
    service.place_manually(USER, second.id, at(6, 10, 30))
  # touching the end is fine
  block = service.place_manually(USER, second.id, at(6, 11))

  assert (block.start, block.end) == (at(6, 11), at(6, 12))


def test_missed_task_is_boosted_and_rescheduled(store, service) -> None:
  task = store.add_task(make_task("report", 180, priority=TaskPriority.LOW))
  service.run_preview(USER, now=NOW)
  service.apply_preview(USER)

  missed = service.sweep_missed(USER, now=at(6, 14))

  assert missed == [task.id]
  swept = store.get_task(task.id)
  assert swept.status == TaskStatus.MISSED
  assert swept.priority_boost == 1

  result = service.run_preview(USER, now=at(6, 14))
  service.apply_preview(USER, preview_id=result.preview_id)

  rescheduled = store.get_task(task.id)
  assert rescheduled.status == TaskStatus.SCHEDULED
  assert rescheduled.priority_boost == 0
  assert spans(store.list_blocks(USER)) == [(task.id, at(6, 14), at(6, 17))]


def test_completing_a_task_completes_its_blocks(store, service) -> None:
  task = store.add_task(make_task("report", 60))
  service.place_manually(USER, task.id, at(6, 10))

  service.update_task_status(USER, task.id, TaskStatus.COMPLETED)

  assert [b.completed for b in store.list_blocks(USER)] == [True]
  assert service.sweep_missed(USER, now=at(7, 10)) == []
  with pytest.raises(InvalidTransitionError):
    service.update_task_status(USER, task.id, TaskStatus.WAITING)


def test_feasibility_and_availability_follow_the_store(store, service) -> None:
  store.add_task(make_task("a", 240))
  other = store.add_task(make_task("b", 60))
  service.place_manually(USER, other.id, at(6, 10))

  windows = service.availability(USER, now=NOW)
  report = service.feasibility(USER, now=NOW)

  assert windows[0].start == at(6, 11)
  assert report.total_required == 240
  assert report.can_schedule_all


def test_scheduled_task_can_be_moved(store, service) -> None:
  task = store.add_task(make_task("report", 60))
  service.place_manually(USER, task.id, at(6, 10))

  moved = service.place_manually(USER, task.id, at(6, 14))
  # overlapping its own current block is allowed too
  nudged = service.place_manually(USER, task.id, at(6, 14, 30))

  assert (moved.start, moved.end) == (at(6, 14), at(6, 15))
  assert spans(store.list_blocks(USER)) == [(task.id, nudged.start, nudged.end)]
  assert (nudged.start, nudged.end) == (at(6, 14, 30), at(6, 15, 30))
  assert store.get_task(task.id).status == TaskStatus.SCHEDULED


def test_completed_task_cannot_be_placed(store, service) -> None:
  task = store.add_task(make_task("report", 60))
  service.update_task_status(USER, task.id, TaskStatus.COMPLETED)

  with pytest.raises(InvalidTransitionError):
    service.place_manually(USER, task.id, at(6, 10))
  assert store.list_blocks(USER) == []


def test_marking_missed_by_hand_sets_the_boost(store, service) -> None:
  task = store.add_task(make_task("report", 60, priority=TaskPriority.LOW))
  service.place_manually(USER, task.id, at(6, 10))

  missed = service.update_task_status(USER, task.id, TaskStatus.MISSED)

  assert missed.status == TaskStatus.MISSED
  assert missed.priority_boost == 1
  assert store.get_task(task.id).priority_boost == 1


class RejectingStore(LocalStore):
  """Local store whose next block commit fails with the given error."""

  def __init__(self, error: Exception):
    super().__init__(data_file=None)
    self.error = error
    self.armed = False

  def create_blocks(self, blocks):
    if self.armed:
      self.armed = False
      raise self.error
    return super().create_blocks(blocks)


@pytest.mark.parametrize("error", [
    StalePreviewError("rejected"),
    TaskNotFoundError("gone"),
    OSError("disk full"),
])
def test_failed_commit_restores_previous_blocks(policy, error) -> None:
  store = RejectingStore(error)
  store.set_working_hours_policy(policy)
  service = SchedulingService(store, store, store)
  task = store.add_task(make_task("report", 60))
  service.place_manually(USER, task.id, at(5, 10))
  service.sweep_missed(USER, now=NOW)
  result = service.run_preview(USER, now=NOW)
  assert spans(result.blocks) == [(task.id, at(6, 10), at(6, 11))]

  store.armed = True
  with pytest.raises(type(error)):
    service.apply_preview(USER)

  assert spans(store.list_blocks(USER)) == [(task.id, at(5, 10), at(5, 11))]
  unchanged = store.get_task(task.id)
  assert unchanged.status == TaskStatus.MISSED
  assert unchanged.priority_boost == 1
  assert service.get_active_preview(USER) is not None
