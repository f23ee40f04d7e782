"""
스케줄러 예외 계층

엔진 내부의 배치 실패(용량 부족, 마감 초과)는 예외가 아니라 결과 데이터로 보고된다.
여기 정의된 예외는 경계 입력 오류, 상태 전환 오류, 스토어 상태 불일치에만 사용한다.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class SchedulingError(Exception):
    code = "SYS_003"
    default_message = "Internal scheduling error."

    def __init__(self, message: Optional[str] = None, **details: Any):
        self.message = message or self.default_message
        self.details: Dict[str, Any] = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class InvalidInputError(SchedulingError):
    code = "REQ_002"
    default_message = "Invalid parameter value."


class TaskNotFoundError(SchedulingError):
    code = "BIZ_001"
    default_message = "Task not found."


class InvalidTransitionError(SchedulingError):
    code = "BIZ_003"
    default_message = "Invalid status transition."

    def __init__(self, current: Any, requested: Any):
        self.current = current
        self.requested = requested
        super().__init__(
            f"Cannot change status from {_enum_value(current)} to {_enum_value(requested)}.",
            current=_enum_value(current),
            requested=_enum_value(requested),
        )


class StalePreviewError(SchedulingError):
    code = "BIZ_006"
    default_message = "The calendar changed since the preview was computed. Retry the preview."


class PreviewNotFoundError(SchedulingError):
    code = "BIZ_007"
    default_message = "No active preview for this user."


class PlacementConflictError(SchedulingError):
    code = "TIME_CONFLICT"
    default_message = "The requested time overlaps an existing schedule block."

    def __init__(self, message: Optional[str] = None, conflicting_ids: Optional[List[str]] = None):
        self.conflicting_ids = list(conflicting_ids or [])
        super().__init__(message, conflicting_ids=self.conflicting_ids)


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)
