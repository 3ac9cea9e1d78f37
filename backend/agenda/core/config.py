from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import time
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _parse_bool(raw: Optional[str], default: bool = False) -> bool:
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _parse_hhmm(raw: Optional[str], name: str) -> Optional[time]:
    # Accepts "HH:MM" and "HH:MM:SS".
    if raw is None or raw.strip() == "":
        return None
    value = raw.strip()
    try:
        return time.fromisoformat(value)
    except ValueError as e:
        raise RuntimeError(f"Invalid {name} value: {value!r}. Expected HH:MM.") from e


def _database_url(raw: Optional[str]) -> str:
    url = (raw or "").strip() or "sqlite+aiosqlite:///./agenda.db"
    # Plain postgres URLs are rewritten to the async driver.
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


@dataclass(frozen=True)
class Settings:
    database_url: str
    db_echo: bool = False

    default_timezone: str = "Europe/Lisbon"
    default_open_time: time = time(9, 0)
    default_close_time: time = time(18, 0)
    break_start: Optional[time] = None
    break_end: Optional[time] = None

    # 0 disables the per-provider daily cap.
    daily_appointment_limit: int = 0
    completion_grace_minutes: int = 10
    run_lock_ttl_seconds: int = 900

    cron_secret: Optional[str] = None
    rate_limit_per_minute: int = 120

    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_phone_number: Optional[str] = None
    twilio_validate_signature: bool = False

    public_booking_url: Optional[str] = None
    log_level: str = "INFO"

    @property
    def break_window(self) -> Optional[tuple[time, time]]:
        if self.break_start and self.break_end and self.break_start < self.break_end:
            return self.break_start, self.break_end
        return None


def load_settings() -> Settings:
    """Build Settings from the process environment (after .env is loaded)."""
    open_time = _parse_hhmm(os.getenv("DEFAULT_OPEN_TIME"), "DEFAULT_OPEN_TIME") or time(9, 0)
    close_time = _parse_hhmm(os.getenv("DEFAULT_CLOSE_TIME"), "DEFAULT_CLOSE_TIME") or time(18, 0)
    if open_time >= close_time:
        raise RuntimeError("DEFAULT_OPEN_TIME must be earlier than DEFAULT_CLOSE_TIME")

    return Settings(
        database_url=_database_url(os.getenv("DATABASE_URL")),
        db_echo=_parse_bool(os.getenv("DB_ECHO")),
        default_timezone=os.getenv("DEFAULT_TIMEZONE", "Europe/Lisbon"),
        default_open_time=open_time,
        default_close_time=close_time,
        break_start=_parse_hhmm(os.getenv("BREAK_START"), "BREAK_START"),
        break_end=_parse_hhmm(os.getenv("BREAK_END"), "BREAK_END"),
        daily_appointment_limit=int(os.getenv("DAILY_APPOINTMENT_LIMIT", "0")),
        completion_grace_minutes=int(os.getenv("COMPLETION_GRACE_MINUTES", "10")),
        run_lock_ttl_seconds=int(os.getenv("RUN_LOCK_TTL_SECONDS", "900")),
        cron_secret=(os.getenv("CRON_SECRET") or "").strip() or None,
        rate_limit_per_minute=int(os.getenv("RATE_LIMIT_PER_MINUTE", "120")),
        twilio_account_sid=os.getenv("TWILIO_ACCOUNT_SID"),
        twilio_auth_token=os.getenv("TWILIO_AUTH_TOKEN"),
        twilio_phone_number=os.getenv("TWILIO_PHONE_NUMBER"),
        twilio_validate_signature=_parse_bool(os.getenv("TWILIO_VALIDATE_SIGNATURE")),
        public_booking_url=(os.getenv("PUBLIC_BOOKING_URL") or "").strip() or None,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
