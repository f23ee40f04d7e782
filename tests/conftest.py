from __future__ import annotations

from datetime import datetime, time, timedelta, timezone
from typing import Optional

import pytest
from fastapi.testclient import TestClient

from timeblocking.app import create_app
from timeblocking.scheduler.preview import SchedulingService
from timeblocking.scheduler.schemas import (
    ScheduleBlock,
    Task,
    TaskCategory,
    TaskPriority,
    TaskStatus,
    WorkingHoursPolicy,
)
from timeblocking.state import LocalStore

USER = "user-1"

# Monday 2025-01-06, one hour before the working day starts
NOW = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)
CREATED = datetime(2025, 1, 1, 0, 0, tzinfo=timezone.utc)


def at(day: int, hour: int, minute: int = 0) -> datetime:
  """UTC timestamp in January 2025."""
  return datetime(2025, 1, day, hour, minute, tzinfo=timezone.utc)


def make_task(title: str,
              duration: int,
              priority: TaskPriority = TaskPriority.MEDIUM,
              deadline: Optional[datetime] = None,
              created_at: datetime = CREATED,
              category: TaskCategory = TaskCategory.WORK,
              status: TaskStatus = TaskStatus.WAITING,
              priority_boost: int = 0,
              user_id: str = USER) -> Task:
  return Task(
      id=f"task-{title}",
      user_id=user_id,
      title=title,
      duration=duration,
      priority=priority,
      deadline=deadline,
      created_at=created_at,
      category=category,
      status=status,
      priority_boost=priority_boost,
  )


def make_block(task_id: str, start: datetime, end: datetime, user_id: str = USER,
               completed: bool = False) -> ScheduleBlock:
  return ScheduleBlock(task_id=task_id, user_id=user_id, start=start, end=end, completed=completed)


def spans(blocks):
  return [(b.task_id, b.start, b.end) for b in blocks]


@pytest.fixture
def policy() -> WorkingHoursPolicy:
  return WorkingHoursPolicy(
      user_id=USER,
      start_time=time(10, 0),
      end_time=time(20, 0),
      timezone="UTC",
      working_days=[1, 2, 3, 4, 5, 6, 7],
  )


@pytest.fixture
def week():
  return NOW, NOW + timedelta(days=7)


@pytest.fixture
def store(policy) -> LocalStore:
  store = LocalStore(data_file=None)
  store.set_working_hours_policy(policy)
  return store


@pytest.fixture
def service(store) -> SchedulingService:
  return SchedulingService(store, store, store)


@pytest.fixture
def client(store) -> TestClient:
  return TestClient(create_app(store=store))
