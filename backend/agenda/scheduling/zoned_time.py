"""Wall-clock <-> instant conversion for a named IANA timezone.

The offset that applies depends on the local date (DST), so it is resolved by
rendering a UTC guess back into the zone and correcting by the difference
between the rendered wall clock and the one we asked for.
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from agenda.core.errors import ZoneNotFound

# A correction round can land on the other side of a DST switch; one more
# round settles it. Non-existent local times never settle and stop here.
_MAX_ROUNDS = 3


@lru_cache(maxsize=64)
def get_zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ZoneNotFound(f"Unknown timezone: {name!r}") from e


def to_instant(day: date, wall_time: time, zone: str) -> datetime:
    """Return the UTC instant at which the clock in ``zone`` reads ``day wall_time``."""
    tz = get_zone(zone)
    desired = datetime.combine(day, wall_time.replace(tzinfo=None))

    guess = desired.replace(tzinfo=timezone.utc)
    for _ in range(_MAX_ROUNDS):
        rendered = guess.astimezone(tz).replace(tzinfo=None)
        delta = rendered - desired
        if not delta:
            break
        guess = guess - delta
    return guess


def to_local(instant: datetime, zone: str) -> tuple[date, time]:
    """Return the (date, time) the clock in ``zone`` shows at ``instant``."""
    if instant.tzinfo is None:
        raise ValueError("instant must be timezone-aware")
    local = instant.astimezone(get_zone(zone))
    return local.date(), local.time().replace(tzinfo=None)


def local_day_bounds(day: date, zone: str) -> tuple[datetime, datetime]:
    """Instants of local midnight at the start of ``day`` and of the next day."""
    start = to_instant(day, time(0, 0), zone)
    end = to_instant(date.fromordinal(day.toordinal() + 1), time(0, 0), zone)
    return start, end
