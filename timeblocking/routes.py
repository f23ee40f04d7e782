from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query, Request

from .config import API_BASE, USER_HEADER
from .errors import (
    InvalidInputError,
    InvalidTransitionError,
    PlacementConflictError,
    PreviewNotFoundError,
    SchedulingError,
    StalePreviewError,
    TaskNotFoundError,
)
from .models import (
    ApplyRequest,
    PlaceRequest,
    PreviewRequest,
    RetryRequest,
    SweepRequest,
    TaskCreate,
    TaskStatusUpdate,
    WorkingHoursUpdate,
)
from .scheduler.preview import SchedulingService
from .scheduler.schemas import SchedulerSettings, Task, TaskStatus, WorkingHoursPolicy
from .state import LocalStore

router = APIRouter(prefix=API_BASE)
logger = logging.getLogger(__name__)

_ERROR_STATUS = (
    (TaskNotFoundError, 404),
    (PreviewNotFoundError, 404),
    (InvalidTransitionError, 409),
    (StalePreviewError, 409),
    (PlacementConflictError, 409),
    (InvalidInputError, 400),
)


def _http_error(exc: SchedulingError) -> HTTPException:
  for error_cls, status_code in _ERROR_STATUS:
    if isinstance(exc, error_cls):
      return HTTPException(status_code=status_code, detail=exc.to_dict())
  return HTTPException(status_code=500, detail=exc.to_dict())


def _require_user(request: Request) -> str:
  user_id = (request.headers.get(USER_HEADER) or "").strip()
  if not user_id:
    raise HTTPException(status_code=401, detail=f"{USER_HEADER} header is required.")
  return user_id


def _service(request: Request) -> SchedulingService:
  return request.app.state.scheduler


def _store(request: Request) -> LocalStore:
  return request.app.state.store


def _dump(items: List[Any]) -> List[Dict[str, Any]]:
  return [item.model_dump(mode="json") for item in items]


def _query_settings(request: Request,
                    horizon_days: Optional[int],
                    respect_working_hours: Optional[bool]) -> SchedulerSettings:
  base = _service(request).settings
  update: Dict[str, Any] = {}
  if horizon_days is not None:
    update["horizon_days"] = horizon_days
  if respect_working_hours is not None:
    update["respect_working_hours"] = respect_working_hours
  if not update:
    return base
  try:
    return SchedulerSettings.model_validate({**base.model_dump(), **update})
  except ValueError as exc:
    raise HTTPException(status_code=400, detail=str(exc))


@router.get("/health")
def health():
  return {"ok": True}


# -------------------------
# tasks / working hours
# -------------------------
@router.post("/tasks", status_code=201)
def create_task(request: Request, payload: TaskCreate):
  user_id = _require_user(request)
  task = Task(user_id=user_id, **payload.model_dump())
  return _store(request).add_task(task).model_dump(mode="json")


@router.get("/tasks")
def list_tasks(request: Request, status: Optional[TaskStatus] = Query(None, alias="status")):
  user_id = _require_user(request)
  return {"items": _dump(_store(request).list_tasks(user_id, status=status))}


@router.patch("/tasks/{task_id}/status")
def update_task_status(request: Request, task_id: str, payload: TaskStatusUpdate):
  user_id = _require_user(request)
  try:
    task = _service(request).update_task_status(user_id, task_id, payload.status)
  except SchedulingError as exc:
    raise _http_error(exc)
  return task.model_dump(mode="json")


@router.get("/users/me/working-hours")
def get_working_hours(request: Request):
  user_id = _require_user(request)
  return _store(request).get_working_hours_policy(user_id).model_dump(mode="json")


@router.put("/users/me/working-hours")
def put_working_hours(request: Request, payload: WorkingHoursUpdate):
  user_id = _require_user(request)
  store = _store(request)
  current = store.get_working_hours_policy(user_id)
  data = payload.model_dump(exclude_none=True)
  # lunch is cleared when omitted
  data.setdefault("lunch_start", None)
  data.setdefault("lunch_end", None)
  try:
    policy = WorkingHoursPolicy.model_validate({**current.model_dump(), **data})
    saved = store.set_working_hours_policy(policy)
  except SchedulingError as exc:
    raise _http_error(exc)
  except ValueError as exc:
    raise HTTPException(status_code=400, detail=str(exc))
  return saved.model_dump(mode="json")


@router.get("/blocks")
def list_blocks(request: Request):
  user_id = _require_user(request)
  return {"items": _dump(_store(request).list_blocks(user_id))}


# -------------------------
# scheduling
# -------------------------
@router.post("/schedule/preview")
def trigger_preview(request: Request, payload: PreviewRequest):
  user_id = _require_user(request)
  try:
    result = _service(request).run_preview(user_id,
                                           task_ids=payload.task_ids,
                                           now=payload.now,
                                           settings=payload.settings)
  except SchedulingError as exc:
    raise _http_error(exc)
  except Exception as e:
    logger.exception("Scheduling preview error")
    raise HTTPException(status_code=500, detail=str(e))
  return result.model_dump(mode="json")


@router.get("/schedule/preview")
def get_preview(request: Request):
  user_id = _require_user(request)
  result = _service(request).get_active_preview(user_id)
  if result is None:
    raise _http_error(PreviewNotFoundError())
  return result.model_dump(mode="json")


@router.post("/schedule/preview/retry")
def retry_preview(request: Request, payload: RetryRequest):
  user_id = _require_user(request)
  try:
    result = _service(request).retry_preview(user_id, now=payload.now, settings=payload.settings)
  except SchedulingError as exc:
    raise _http_error(exc)
  return result.model_dump(mode="json")


@router.post("/schedule/preview/apply")
def apply_preview(request: Request, payload: ApplyRequest):
  user_id = _require_user(request)
  try:
    blocks = _service(request).apply_preview(user_id, preview_id=payload.preview_id)
  except SchedulingError as exc:
    raise _http_error(exc)
  except Exception as e:
    logger.exception("Scheduling apply error")
    raise HTTPException(status_code=500, detail=str(e))
  return {"ok": True, "blocks": _dump(blocks), "count": len(blocks)}


@router.delete("/schedule/preview")
def cancel_preview(request: Request):
  user_id = _require_user(request)
  return {"ok": True, "cancelled": _service(request).cancel_preview(user_id)}


@router.post("/schedule/place", status_code=201)
def place_task(request: Request, payload: PlaceRequest):
  user_id = _require_user(request)
  try:
    block = _service(request).place_manually(user_id, payload.task_id, payload.start)
  except SchedulingError as exc:
    raise _http_error(exc)
  return block.model_dump(mode="json")


@router.post("/schedule/sweep")
def sweep_missed(request: Request, payload: SweepRequest):
  user_id = _require_user(request)
  try:
    missed = _service(request).sweep_missed(user_id, now=payload.now)
  except SchedulingError as exc:
    raise _http_error(exc)
  return {"ok": True, "missed_task_ids": missed}


@router.get("/schedule/availability")
def availability(request: Request,
                 horizon_days: Optional[int] = Query(None, alias="horizon_days"),
                 respect_working_hours: Optional[bool] = Query(None,
                                                               alias="respect_working_hours")):
  user_id = _require_user(request)
  settings = _query_settings(request, horizon_days, respect_working_hours)
  try:
    windows = _service(request).availability(user_id, settings=settings)
  except SchedulingError as exc:
    raise _http_error(exc)
  return {"items": _dump(windows)}


@router.get("/schedule/feasibility")
def feasibility(request: Request,
                horizon_days: Optional[int] = Query(None, alias="horizon_days")):
  user_id = _require_user(request)
  settings = _query_settings(request, horizon_days, None)
  try:
    report = _service(request).feasibility(user_id, settings=settings)
  except SchedulingError as exc:
    raise _http_error(exc)
  return report.model_dump(mode="json")
