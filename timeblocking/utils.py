from __future__ import annotations

from datetime import datetime, time, timedelta, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import re

from .config import DEBUG, SLOT_MINUTES
from .errors import InvalidInputError

HHMM_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def _log_debug(message: str) -> None:
    if DEBUG:
        print(message, flush=True)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc).replace(second=0, microsecond=0)


def ensure_aware(value: datetime, label: str = "timestamp") -> datetime:
    if not isinstance(value, datetime):
        raise InvalidInputError(f"{label} must be a datetime.")
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        raise InvalidInputError(
            f"{label} must carry a timezone offset (e.g. 2025-01-06T01:00:00Z).")
    return value


def to_utc(value: datetime, label: str = "timestamp") -> datetime:
    return ensure_aware(value, label).astimezone(timezone.utc)


def parse_hhmm(value: Any, label: str = "time") -> time:
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0, tzinfo=None)
    if not isinstance(value, str):
        raise InvalidInputError(f"{label} must be an HH:MM string.")
    match = HHMM_RE.match(value.strip())
    if not match:
        raise InvalidInputError(f"{label} must be an HH:MM string.")
    return time(int(match.group(1)), int(match.group(2)))


def resolve_tz(name: Optional[str]) -> ZoneInfo:
    try:
        return ZoneInfo((name or "").strip() or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        raise InvalidInputError(f"Unknown timezone: {name}")


def ceil_to_slot(value: datetime, slot_minutes: int = SLOT_MINUTES) -> datetime:
    """slot 경계(자정 기준)로 올림. tz 정보는 유지한다."""
    base = value.replace(second=0, microsecond=0)
    if base < value:
        base += timedelta(minutes=1)
    minute_of_day = base.hour * 60 + base.minute
    remainder = minute_of_day % slot_minutes
    if remainder:
        base += timedelta(minutes=slot_minutes - remainder)
    return base


def validate_working_hours(start: time, end: time) -> None:
    if start >= end:
        raise InvalidInputError(
            "Working hours start must be earlier than end.",
            start=start.strftime("%H:%M"),
            end=end.strftime("%H:%M"),
        )


def validate_working_days(days: Any) -> list[int]:
    if not isinstance(days, (list, tuple)):
        raise InvalidInputError("working_days must be a list of ISO weekdays.")
    cleaned: list[int] = []
    for raw in days:
        try:
            day = int(raw)
        except (TypeError, ValueError):
            raise InvalidInputError(f"Invalid weekday: {raw}")
        if not 1 <= day <= 7:
            raise InvalidInputError(f"Weekday out of range (1-7): {day}")
        if day not in cleaned:
            cleaned.append(day)
    return sorted(cleaned)


def validate_lunch(start: Optional[time], end: Optional[time]) -> None:
    if start is None and end is None:
        return
    if start is None or end is None:
        raise InvalidInputError("lunch_start and lunch_end must be given together.")
    if start >= end:
        raise InvalidInputError("Lunch start must be earlier than lunch end.")
