# officehub/settings.py
from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

# Ensure .env variables are loaded
load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    return float(raw) if raw else default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else default


@dataclass(frozen=True)
class Settings:
    mongo_uri: str = ""
    mongo_db: str = "officehub"
    mongo_tls: bool = True
    kpi_ontime_points: float = 1.0
    kpi_late_points: float = 0.5
    kpi_max_retries: int = 5
    leave_quota_enabled: bool = False
    leave_quota_max_leave: int = 2
    leave_quota_max_wfh: int = 2
    leave_quota_period_day: int = 25
    min_password_length: int = 6


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings(
        mongo_uri=os.getenv("MONGODB_URI", "").strip(),
        mongo_db=os.getenv("MONGO_DB", "officehub"),
        mongo_tls=_env_bool("MONGO_TLS", True),
        kpi_ontime_points=_env_float("KPI_ONTIME_POINTS", 1.0),
        kpi_late_points=_env_float("KPI_LATE_POINTS", 0.5),
        kpi_max_retries=_env_int("KPI_MAX_RETRIES", 5),
        leave_quota_enabled=_env_bool("LEAVE_QUOTA_ENABLED", False),
        leave_quota_max_leave=_env_int("LEAVE_QUOTA_MAX_LEAVE", 2),
        leave_quota_max_wfh=_env_int("LEAVE_QUOTA_MAX_WFH", 2),
        leave_quota_period_day=_env_int("LEAVE_QUOTA_PERIOD_DAY", 25),
        min_password_length=_env_int("MIN_PASSWORD_LENGTH", 6),
    )
