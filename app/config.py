"""Runtime settings loaded from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import time
from functools import lru_cache
from typing import Mapping, Optional

from dotenv import load_dotenv


def _to_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _to_time(value: str) -> time:
    hour, minute = value.split(":")[:2]
    return time(int(hour), int(minute))


@dataclass(frozen=True)
class Settings:
    database_url: str
    skip_db_init: bool
    sweeper_enabled: bool
    sweep_interval_seconds: int
    stale_pending_hours: int
    slot_step_minutes: int
    default_slot_duration_minutes: int
    max_reservation_minutes: int
    default_open_time: time
    default_close_time: time
    lounge_advance_booking_hours: int
    log_level: str
    log_file: Optional[str]


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build settings from ``env`` (defaults to ``os.environ`` plus ``.env``)."""
    if env is None:
        load_dotenv(override=False)
        env = os.environ

    return Settings(
        database_url=env.get("DATABASE_URL", "sqlite:///./amenity_reservations.db"),
        skip_db_init=_to_bool(env.get("SKIP_DB_INIT")),
        sweeper_enabled=_to_bool(env.get("SWEEPER_ENABLED"), default=True),
        sweep_interval_seconds=int(env.get("SWEEP_INTERVAL_SECONDS", "300")),
        stale_pending_hours=int(env.get("STALE_PENDING_HOURS", "24")),
        slot_step_minutes=int(env.get("SLOT_STEP_MINUTES", "30")),
        default_slot_duration_minutes=int(env.get("DEFAULT_SLOT_DURATION_MINUTES", "60")),
        max_reservation_minutes=int(env.get("MAX_RESERVATION_MINUTES", "480")),
        default_open_time=_to_time(env.get("DEFAULT_OPEN_TIME", "06:00")),
        default_close_time=_to_time(env.get("DEFAULT_CLOSE_TIME", "22:00")),
        lounge_advance_booking_hours=int(env.get("LOUNGE_ADVANCE_BOOKING_HOURS", "24")),
        log_level=env.get("LOG_LEVEL", "INFO").upper(),
        log_file=env.get("LOG_FILE") or None,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
