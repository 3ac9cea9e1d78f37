from datetime import time

import pytest

from agenda.core.config import load_settings
from agenda.core.rate_limit import RateLimiter


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_settings_defaults(monkeypatch):
    for key in ("DATABASE_URL", "DEFAULT_OPEN_TIME", "BREAK_START", "BREAK_END", "CRON_SECRET"):
        monkeypatch.delenv(key, raising=False)

    settings = load_settings()

    assert settings.database_url.startswith("sqlite+aiosqlite://")
    assert settings.default_open_time == time(9, 0)
    assert settings.completion_grace_minutes == 10
    assert settings.run_lock_ttl_seconds == 900
    assert settings.break_window is None
    assert settings.cron_secret is None


def test_postgres_url_is_rewritten_for_asyncpg(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgres://u:p@db:5432/agenda")
    assert load_settings().database_url == "postgresql+asyncpg://u:p@db:5432/agenda"


def test_break_window_parsed(monkeypatch):
    monkeypatch.setenv("BREAK_START", "13:00")
    monkeypatch.setenv("BREAK_END", "14:30")
    assert load_settings().break_window == (time(13, 0), time(14, 30))


def test_inverted_default_hours_are_rejected(monkeypatch):
    monkeypatch.setenv("DEFAULT_OPEN_TIME", "19:00")
    monkeypatch.setenv("DEFAULT_CLOSE_TIME", "08:00")
    with pytest.raises(RuntimeError):
        load_settings()


def test_rate_limiter_counts_per_key_and_window():
    clock = FakeClock()
    limiter = RateLimiter(clock=clock)

    assert limiter.check("ip:1", 2, 60) == (True, 0)
    assert limiter.check("ip:1", 2, 60) == (True, 0)
    allowed, retry_after = limiter.check("ip:1", 2, 60)
    assert not allowed and retry_after == 60
    assert limiter.check("ip:2", 2, 60)[0]

    clock.now += 61
    assert limiter.check("ip:1", 2, 60) == (True, 0)


def test_zero_limit_disables_rate_limiting():
    limiter = RateLimiter(clock=FakeClock())
    assert all(limiter.check("ip:1", 0)[0] for _ in range(10))
