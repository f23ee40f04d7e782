from __future__ import annotations

import os
import pathlib

DEBUG = os.getenv("TIMEBLOCK_DEBUG", "0") == "1"

DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "Asia/Seoul")

# -------------------------
# 업무 시간 기본값
# -------------------------
DEFAULT_WORK_START = os.getenv("DEFAULT_WORK_START", "10:00")
DEFAULT_WORK_END = os.getenv("DEFAULT_WORK_END", "20:00")
DEFAULT_WORKING_DAYS = [
    int(day) for day in os.getenv("DEFAULT_WORKING_DAYS", "1,2,3,4,5").split(",")
    if day.strip()
]

# -------------------------
# 스케줄러 상수
# -------------------------
SLOT_MINUTES = int(os.getenv("SLOT_MINUTES", "30"))
MIN_CHUNK_MINUTES = int(os.getenv("MIN_CHUNK_MINUTES", "30"))
AUTO_SPLIT_THRESHOLD_MINUTES = int(os.getenv("AUTO_SPLIT_THRESHOLD_MINUTES", "240"))
MISSED_GRACE_MINUTES = int(os.getenv("MISSED_GRACE_MINUTES", "30"))
DEFAULT_HORIZON_DAYS = int(os.getenv("DEFAULT_HORIZON_DAYS", "7"))
MAX_HORIZON_DAYS = int(os.getenv("MAX_HORIZON_DAYS", "60"))
MAX_TASK_DURATION_MINUTES = 60 * 24 * 7

_data_file_raw = os.getenv("TIMEBLOCK_DATA_FILE", "").strip()
DATA_FILE = pathlib.Path(_data_file_raw) if _data_file_raw else None

API_BASE = os.getenv("API_BASE", "/api").rstrip("/")
USER_HEADER = "X-User-Id"

CORS_ALLOW_ORIGINS = os.getenv("CORS_ALLOW_ORIGINS", "")
cors_origins: list[str] = [
    origin.strip() for origin in CORS_ALLOW_ORIGINS.split(",") if origin.strip()
]
