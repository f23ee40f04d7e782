"""
Time Block Planner: 태스크 자동 시간 블록 배치
- 우선순위 순서대로 가용 윈도우에 배치 (가장 이른 윈도우 우선)
- 마감 시각을 넘기는 윈도우는 건너뛴다
- 자동 분할 임계값을 넘는 긴 태스크는 Splitter에 위임
- 배치 실패는 예외가 아니라 Conflict 데이터로 보고
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..utils import _log_debug
from . import prioritizer
from .availability import compute_availability, daily_capacity, total_minutes
from .schemas import (
    AvailabilityWindow,
    Conflict,
    ConflictType,
    FeasibilityReport,
    PlacementOutcome,
    ScheduleBlock,
    SchedulerSettings,
    SchedulingResult,
    Task,
    TaskCategory,
    WorkingHoursPolicy,
)
from .splitter import split


def _hours(minutes: int) -> str:
    return f"{minutes / 60:.1f}h"


class TimeBlockPlanner:
    """태스크를 캘린더에 자동 배치"""

    def __init__(self, settings: Optional[SchedulerSettings] = None):
        self.settings = settings or SchedulerSettings()

    # -------------------------
    # 전체 파이프라인
    # -------------------------
    def plan_tasks(
        self,
        user_id: str,
        tasks: Sequence[Task],
        policy: WorkingHoursPolicy,
        existing_blocks: Iterable[ScheduleBlock],
        date_range: Tuple[datetime, datetime],
    ) -> SchedulingResult:
        """
        태스크들을 시간 블록으로 자동 배치 (저장하지 않음)

        Args:
            tasks: 배치할 태스크 목록 (순서 무관)
            existing_blocks: 이미 확정된 블록들
            date_range: (시작 시각, 종료 시각)
        """
        if not tasks:
            return SchedulingResult(
                success=True,
                suggestions=["There are no waiting tasks to schedule."],
                message="Nothing to schedule.",
            )

        windows = self.find_available_slots(user_id, date_range, policy, existing_blocks)
        ordered = self.prioritize_tasks(tasks)
        outcome = self.place(ordered, windows, horizon_start=date_range[0])

        required = sum(t.duration for t in tasks)
        available = total_minutes(windows)
        suggestions = self.suggest_adjustments(outcome.conflicts, required, available)
        placed = {b.task_id for b in outcome.blocks}
        message = f"Scheduled {len(placed)} of {len(tasks)} tasks."
        if outcome.conflicts:
            message += f" {len(outcome.conflicts)} could not be placed."
        _log_debug(f"[SCHEDULER] plan user={user_id} placed={len(placed)} "
                   f"conflicts={len(outcome.conflicts)} blocks={len(outcome.blocks)}")
        return SchedulingResult(
            success=not outcome.conflicts,
            blocks=outcome.blocks,
            conflicts=outcome.conflicts,
            suggestions=suggestions,
            message=message,
        )

    def find_available_slots(
        self,
        user_id: str,
        date_range: Tuple[datetime, datetime],
        policy: WorkingHoursPolicy,
        existing_blocks: Iterable[ScheduleBlock],
    ) -> List[AvailabilityWindow]:
        return compute_availability(
            user_id, date_range[0], date_range[1], policy, existing_blocks, self.settings)

    def prioritize_tasks(self, tasks: Iterable[Task]) -> List[Task]:
        return prioritizer.order(tasks, tie_break=self.settings.tie_break)

    def split_task_if_needed(
        self,
        task: Task,
        windows: List[AvailabilityWindow],
    ) -> Optional[Tuple[List[ScheduleBlock], List[AvailabilityWindow]]]:
        if task.duration <= self.settings.auto_split_threshold:
            return None
        if self._capacity_before(windows, task.deadline) < task.duration:
            return None
        return split(task, windows, self.settings)

    def calculate_daily_capacity(self, windows: Iterable[AvailabilityWindow]) -> Dict[date, int]:
        return daily_capacity(windows)

    # -------------------------
    # 배치 엔진
    # -------------------------
    def place(
        self,
        ordered_tasks: Sequence[Task],
        windows: Iterable[AvailabilityWindow],
        horizon_start: Optional[datetime] = None,
    ) -> PlacementOutcome:
        """
        주어진 순서대로 태스크를 배치

        입력 태스크/윈도우는 변경하지 않는다. 남은 윈도우는 결과에 담긴다.
        horizon_start 이전에 마감된 태스크는 DEADLINE_CONFLICT 로 보고한다.
        """
        remaining = sorted(windows, key=lambda w: (w.start, w.end))
        blocks: List[ScheduleBlock] = []
        conflicts: List[Conflict] = []
        category_tails: Dict[TaskCategory, List[datetime]] = {}

        for task in ordered_tasks:
            idx = self._pick_window(task, remaining, category_tails)
            if idx is not None:
                window = remaining[idx]
                block = ScheduleBlock(
                    task_id=task.id,
                    user_id=task.user_id,
                    start=window.start,
                    end=window.start + timedelta(minutes=task.duration),
                )
                rest = window.consume(task.duration)
                remaining[idx:idx + 1] = [rest] if rest is not None else []
                blocks.append(block)
                category_tails.setdefault(task.category, []).append(block.end)
                continue

            split_outcome = self.split_task_if_needed(task, remaining)
            if split_outcome is not None:
                parts, remaining = split_outcome
                blocks.extend(parts)
                category_tails.setdefault(task.category, []).append(parts[-1].end)
                continue

            conflicts.append(self._explain_failure(task, remaining, horizon_start))

        return PlacementOutcome(blocks=blocks, conflicts=conflicts, remaining=remaining)

    def _pick_window(
        self,
        task: Task,
        windows: List[AvailabilityWindow],
        category_tails: Dict[TaskCategory, List[datetime]],
    ) -> Optional[int]:
        length = timedelta(minutes=task.duration)
        candidates: List[int] = []
        for idx, window in enumerate(windows):
            if window.duration_minutes < task.duration:
                continue
            if task.deadline is not None and window.start + length > task.deadline:
                continue
            candidates.append(idx)
        if not candidates:
            return None
        if self.settings.group_same_category:
            tails = category_tails.get(task.category) or []
            for idx in candidates:
                if windows[idx].start in tails:
                    return idx
        return candidates[0]

    @staticmethod
    def _capacity_before(windows: Iterable[AvailabilityWindow],
                         deadline: Optional[datetime]) -> int:
        if deadline is None:
            return total_minutes(windows)
        clipped = (w.clip_end(deadline) for w in windows)
        return sum(w.duration_minutes for w in clipped if w is not None)

    def _fits_ignoring_deadline(self, task: Task, windows: List[AvailabilityWindow]) -> bool:
        if any(w.duration_minutes >= task.duration for w in windows):
            return True
        if task.duration > self.settings.auto_split_threshold:
            return total_minutes(windows) >= task.duration
        return False

    def _explain_failure(self, task: Task, windows: List[AvailabilityWindow],
                         horizon_start: Optional[datetime] = None) -> Conflict:
        expired = (task.deadline is not None and horizon_start is not None
                   and task.deadline <= horizon_start)
        if expired or (task.deadline is not None and self._fits_ignoring_deadline(task, windows)):
            return Conflict(
                task_id=task.id,
                task_title=task.title,
                conflict_type=ConflictType.DEADLINE_CONFLICT,
                reason=(f"The earliest free time for '{task.title}' ends after its deadline "
                        f"({task.deadline.isoformat()})."),
                suggested_action="Move the deadline later or shorten the estimate.",
            )
        available = total_minutes(windows)
        if task.duration > self.settings.auto_split_threshold:
            reason = (f"Only {available} free minutes remain in range; "
                      f"'{task.title}' needs {task.duration}.")
        else:
            reason = f"No free window of {task.duration} minutes is left for '{task.title}'."
        return Conflict(
            task_id=task.id,
            task_title=task.title,
            conflict_type=ConflictType.CAPACITY_CONFLICT,
            reason=reason,
            suggested_action="Shorten the task, widen the scheduling range or free up calendar time.",
        )

    # -------------------------
    # 분석 / 제안
    # -------------------------
    def analyze_feasibility(
        self,
        tasks: Sequence[Task],
        windows: Sequence[AvailabilityWindow],
    ) -> FeasibilityReport:
        """배치 전 가능성 분석 (용량 부족은 오류가 아니라 권고)"""
        required = sum(t.duration for t in tasks)
        available = total_minutes(windows)
        problematic = [t.id for t in tasks if not self._fits_ignoring_deadline(t, list(windows))]
        can_schedule_all = required <= available and not problematic
        suggestions: List[str] = []
        if not can_schedule_all:
            suggestions.append(f"Total required time: {_hours(required)}, available: {_hours(available)}.")
            if problematic:
                suggestions.append(f"{len(problematic)} task(s) are too long for any free window.")
            suggestions.append("Shorten some tasks or make more time available.")
        return FeasibilityReport(
            total_required=required,
            total_available=available,
            can_schedule_all=can_schedule_all,
            problematic_task_ids=problematic,
            suggestions=suggestions,
        )

    def suggest_adjustments(
        self,
        conflicts: Sequence[Conflict],
        required: int,
        available: int,
    ) -> List[str]:
        """
        배치 못한 태스크에 대한 조정 제안
        - 기한 조정
        - 예상 시간 재평가
        - 가용 시간 확보
        """
        suggestions: List[str] = []
        if required > available:
            suggestions.append(
                f"Not enough free time: {_hours(required)} requested, {_hours(available)} available.")
        deadline_hits = [c for c in conflicts if c.conflict_type == ConflictType.DEADLINE_CONFLICT]
        capacity_hits = [c for c in conflicts if c.conflict_type == ConflictType.CAPACITY_CONFLICT]
        if deadline_hits:
            suggestions.append(
                f"{len(deadline_hits)} task(s) cannot finish before their deadline; "
                "consider moving the deadlines.")
        if capacity_hits:
            suggestions.append(
                f"{len(capacity_hits)} task(s) did not fit; try a longer range or shorter estimates.")
        return suggestions


def place(
    ordered_tasks: Sequence[Task],
    windows: Iterable[AvailabilityWindow],
    settings: Optional[SchedulerSettings] = None,
    horizon_start: Optional[datetime] = None,
) -> PlacementOutcome:
    return TimeBlockPlanner(settings).place(ordered_tasks, windows, horizon_start=horizon_start)
