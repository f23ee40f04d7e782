"""
Conflict Manager: 시간 구간 충돌 판정
- 자동 배치(가용 시간 계산)와 수동 배치가 같은 판정식을 사용한다
- 구간은 반열림 [start, end): 끝점이 맞닿는 것은 충돌이 아니다
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional

from ..errors import PlacementConflictError
from .schemas import ScheduleBlock


def overlaps(start_a: datetime, end_a: datetime,
             start_b: datetime, end_b: datetime) -> bool:
    return start_a < end_b and start_b < end_a


def find_conflicts(
    start: datetime,
    end: datetime,
    blocks: Iterable[ScheduleBlock],
    ignore_task_id: Optional[str] = None,
) -> List[ScheduleBlock]:
    """
    [start, end)와 겹치는 블록 목록

    Args:
        ignore_task_id: 해당 태스크의 블록은 판정에서 제외 (재배치 대상)
    """
    hits: List[ScheduleBlock] = []
    for block in blocks:
        if ignore_task_id is not None and block.task_id == ignore_task_id:
            continue
        if overlaps(start, end, block.start, block.end):
            hits.append(block)
    hits.sort(key=lambda b: (b.start, b.end, b.id))
    return hits


def ensure_no_conflict(
    start: datetime,
    end: datetime,
    blocks: Iterable[ScheduleBlock],
    ignore_task_id: Optional[str] = None,
) -> None:
    hits = find_conflicts(start, end, blocks, ignore_task_id=ignore_task_id)
    if hits:
        first = hits[0]
        raise PlacementConflictError(
            f"Overlaps an existing block: {first.start.isoformat()} - {first.end.isoformat()}",
            conflicting_ids=[b.id for b in hits],
        )


def find_double_bookings(blocks: Iterable[ScheduleBlock]) -> List[tuple[ScheduleBlock, ScheduleBlock]]:
    """서로 겹치는 블록 쌍. 커밋 전 일괄 검증용."""
    ordered = sorted(blocks, key=lambda b: (b.start, b.end, b.id))
    pairs: List[tuple[ScheduleBlock, ScheduleBlock]] = []
    for idx, block in enumerate(ordered):
        for other in ordered[idx + 1:]:
            if other.start >= block.end:
                break
            if overlaps(block.start, block.end, other.start, other.end):
                pairs.append((block, other))
    return pairs
