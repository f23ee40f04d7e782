"""
Availability Model: 사용자의 가용 시간대 계산
- 하루를 자정 기준 고정 슬롯(기본 30분)으로 나눈다
- 업무 시간/근무 요일/점심 시간 정책과 기존 블록을 반영한다
- 같은 날 연속된 가용 슬롯은 하나의 윈도우로 합친다
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, Iterable, List, Optional

from ..utils import _log_debug, resolve_tz, to_utc
from .conflict_manager import overlaps
from .schemas import AvailabilityWindow, ScheduleBlock, SchedulerSettings, WorkingHoursPolicy

MINUTES_PER_DAY = 24 * 60


def _minute_of_day(value: Optional[time]) -> Optional[int]:
    if value is None:
        return None
    return value.hour * 60 + value.minute


def _is_policy_slot(policy: WorkingHoursPolicy, slot_start: int, slot_end: int) -> bool:
    work_start = _minute_of_day(policy.start_time)
    work_end = _minute_of_day(policy.end_time)
    if work_start >= work_end:
        return False
    if slot_start < work_start or slot_end > work_end:
        return False
    lunch_start = _minute_of_day(policy.lunch_start)
    lunch_end = _minute_of_day(policy.lunch_end)
    if lunch_start is not None and lunch_end is not None and lunch_start < lunch_end:
        if slot_start < lunch_end and lunch_start < slot_end:
            return False
    return True


def compute_availability(
    user_id: str,
    range_start: datetime,
    range_end: datetime,
    policy: WorkingHoursPolicy,
    existing_blocks: Iterable[ScheduleBlock],
    settings: Optional[SchedulerSettings] = None,
) -> List[AvailabilityWindow]:
    """
    [range_start, range_end] 범위의 가용 윈도우를 시간순으로 반환

    슬롯은 정책 시간대의 자정 기준으로 정렬되며, 범위를 벗어나는 슬롯은 버린다.
    respect_working_hours=False 이면 업무 시간 밖 슬롯도 포함하되
    is_working_time=False 로 표시한다.
    """
    settings = settings or SchedulerSettings()
    range_start = to_utc(range_start, "range_start")
    range_end = to_utc(range_end, "range_end")
    if range_end <= range_start:
        return []

    tz = resolve_tz(policy.timezone)
    slot = settings.slot_minutes
    busy = sorted(
        (b for b in existing_blocks if b.user_id == user_id),
        key=lambda b: (b.start, b.end),
    )

    windows: List[Dict[str, object]] = []
    day = range_start.astimezone(tz).date()
    last_day = range_end.astimezone(tz).date()
    while day <= last_day:
        if settings.respect_working_hours and not policy.is_working_day(day):
            day += timedelta(days=1)
            continue
        midnight = datetime.combine(day, time(0, 0), tzinfo=tz)
        for offset in range(0, MINUTES_PER_DAY, slot):
            slot_end_minute = min(offset + slot, MINUTES_PER_DAY)
            working = policy.is_working_day(day) and _is_policy_slot(policy, offset, slot_end_minute)
            if settings.respect_working_hours and not working:
                continue
            slot_start = (midnight + timedelta(minutes=offset)).astimezone(timezone.utc)
            slot_end = (midnight + timedelta(minutes=slot_end_minute)).astimezone(timezone.utc)
            if slot_start < range_start or slot_end > range_end:
                continue
            if any(overlaps(slot_start, slot_end, b.start, b.end) for b in busy):
                continue
            current = windows[-1] if windows else None
            if (current is not None and current["date"] == day
                    and current["end"] == slot_start
                    and current["is_working_time"] == working):
                current["end"] = slot_end
            else:
                windows.append({
                    "date": day,
                    "start": slot_start,
                    "end": slot_end,
                    "is_working_time": working,
                })
        day += timedelta(days=1)

    result = [AvailabilityWindow(**w) for w in windows]
    _log_debug(f"[SCHEDULER] availability user={user_id} windows={len(result)} "
               f"minutes={total_minutes(result)}")
    return result


def total_minutes(windows: Iterable[AvailabilityWindow]) -> int:
    return sum(w.duration_minutes for w in windows)


def daily_capacity(windows: Iterable[AvailabilityWindow]) -> Dict[date, int]:
    """날짜별 남은 작업 가능 시간 (분)"""
    capacity: Dict[date, int] = {}
    for w in windows:
        capacity[w.date] = capacity.get(w.date, 0) + w.duration_minutes
    return capacity
