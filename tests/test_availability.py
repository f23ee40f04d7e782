"""
Semantic test: availability windows.

Invariant:
Windows are built from slots aligned to local midnight, respect working
hours, working days and lunch, never overlap a committed block and are
returned in chronological order with adjacent slots coalesced.
"""

from __future__ import annotations

from datetime import date, time

from conftest import USER, at, make_block
from timeblocking.scheduler.availability import compute_availability, daily_capacity, total_minutes
from timeblocking.scheduler.schemas import SchedulerSettings


def test_single_working_day_is_one_coalesced_window(policy) -> None:
  windows = compute_availability(USER, at(6, 0), at(7, 0), policy, [])

  assert len(windows) == 1
  assert windows[0].start == at(6, 10)
  assert windows[0].end == at(6, 20)
  assert windows[0].date == date(2025, 1, 6)
  assert windows[0].duration_minutes == 600


def test_lunch_break_splits_the_day(policy) -> None:
  policy = policy.model_copy(update={"lunch_start": time(12, 0), "lunch_end": time(13, 0)})

  windows = compute_availability(USER, at(6, 0), at(7, 0), policy, [])

  assert [(w.start, w.end) for w in windows] == [(at(6, 10), at(6, 12)), (at(6, 13), at(6, 20))]


def test_existing_block_carves_a_gap(policy) -> None:
  blocks = [make_block("busy", at(6, 12), at(6, 13))]

  windows = compute_availability(USER, at(6, 0), at(7, 0), policy, blocks)

  assert [(w.start, w.end) for w in windows] == [(at(6, 10), at(6, 12)), (at(6, 13), at(6, 20))]
  assert total_minutes(windows) == 540


def test_blocks_of_other_users_are_ignored(policy) -> None:
  blocks = [make_block("other", at(6, 12), at(6, 13), user_id="someone-else")]

  windows = compute_availability(USER, at(6, 0), at(7, 0), policy, blocks)

  assert total_minutes(windows) == 600


def test_non_working_days_have_no_windows(policy) -> None:
  policy = policy.model_copy(update={"working_days": [1, 2, 3, 4, 5]})

  # Saturday 11th and Sunday 12th
  windows = compute_availability(USER, at(11, 0), at(13, 0), policy, [])

  assert windows == []


def test_start_not_before_end_yields_no_windows(policy) -> None:
  policy = policy.model_copy(update={"start_time": time(20, 0), "end_time": time(10, 0)})

  assert compute_availability(USER, at(6, 0), at(8, 0), policy, []) == []


def test_range_start_trims_partial_day(policy) -> None:
  windows = compute_availability(USER, at(6, 15), at(7, 0), policy, [])

  assert [(w.start, w.end) for w in windows] == [(at(6, 15), at(6, 20))]


def test_ignoring_working_hours_marks_off_hours_windows(policy) -> None:
  settings = SchedulerSettings(respect_working_hours=False)

  windows = compute_availability(USER, at(6, 0), at(7, 0), policy, [], settings)

  assert [(w.start, w.end, w.is_working_time) for w in windows] == [
      (at(6, 0), at(6, 10), False),
      (at(6, 10), at(6, 20), True),
      (at(6, 20), at(7, 0), False),
  ]


def test_daily_capacity_sums_per_day(policy) -> None:
  blocks = [make_block("busy", at(7, 10), at(7, 14))]

  windows = compute_availability(USER, at(6, 0), at(8, 0), policy, blocks)

  assert daily_capacity(windows) == {date(2025, 1, 6): 600, date(2025, 1, 7): 360}
