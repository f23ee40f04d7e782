"""
Splitter: 한 윈도우에 들어가지 않는 긴 태스크를 여러 블록으로 분할
- 시간순으로 윈도우 앞부분부터 잘라 쓴다
- 모든 조각은 최소 단위(기본 30분) 이상이어야 한다
- 마지막 조각이 최소 단위보다 작아지면 앞 조각의 몫을 줄여 꼬리를 최소 단위로 맞춘다
"""

from __future__ import annotations

from datetime import timedelta
from typing import List, Optional, Tuple

from ..utils import _log_debug
from .schemas import (
    AvailabilityWindow,
    ScheduleBlock,
    SchedulerSettings,
    SplitInfo,
    SplitReason,
    Task,
)


def split(
    task: Task,
    windows: List[AvailabilityWindow],
    settings: Optional[SchedulerSettings] = None,
    reason: SplitReason = SplitReason.AUTO_SPLIT,
) -> Optional[Tuple[List[ScheduleBlock], List[AvailabilityWindow]]]:
    """
    태스크 전체 시간을 덮는 분할 블록 목록과 소비 후 남은 윈도우 목록

    Returns:
        (blocks, remaining_windows) 또는 가용 시간이 부족하면 None.
        None 인 경우 입력 윈도우는 그대로 유효하다.
    """
    settings = settings or SchedulerSettings()
    min_chunk = settings.min_chunk_minutes
    remaining = task.duration
    pieces: List[Tuple[AvailabilityWindow, int]] = []
    leftover: List[AvailabilityWindow] = []

    for window in sorted(windows, key=lambda w: (w.start, w.end)):
        usable: Optional[AvailabilityWindow] = window
        if task.deadline is not None:
            usable = window.clip_end(task.deadline)
        if remaining == 0 or usable is None or usable.duration_minutes < min_chunk:
            leftover.append(window)
            continue

        take = min(remaining, usable.duration_minutes)
        tail = remaining - take
        if 0 < tail < min_chunk:
            # 꼬리가 너무 작으면 이번 조각을 줄여 꼬리를 최소 단위로 남긴다
            take = remaining - min_chunk
            if take < min_chunk:
                leftover.append(window)
                continue

        pieces.append((window, take))
        remaining -= take
        rest = window.consume(take)
        if rest is not None:
            leftover.append(rest)

    if remaining > 0:
        _log_debug(f"[SCHEDULER] split failed task={task.id} short_by={remaining}min")
        return None

    total = len(pieces)
    blocks = [
        ScheduleBlock(
            task_id=task.id,
            user_id=task.user_id,
            start=window.start,
            end=window.start + timedelta(minutes=minutes),
            split_info=SplitInfo(part_number=idx, total_parts=total, split_reason=reason),
        )
        for idx, (window, minutes) in enumerate(pieces, start=1)
    ]
    _log_debug(f"[SCHEDULER] split task={task.id} parts={[b.duration_minutes for b in blocks]}")
    return blocks, leftover
