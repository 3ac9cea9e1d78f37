from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Awaitable, Callable, Optional, Protocol
from uuid import UUID

from agenda.scheduling.zoned_time import to_local


@dataclass(frozen=True)
class OpenWindow:
    open: time
    close: time


class HoursRule(Protocol):
    open_time: time
    close_time: time
    active: bool


RuleLookup = Callable[[UUID, int], Awaitable[Optional[HoursRule]]]


def window_for_rule(rule: Optional[HoursRule], default: OpenWindow) -> Optional[OpenWindow]:
    """Effective window for one weekday; ``None`` means closed all day."""
    if rule is None:
        return default
    if not rule.active:
        return None
    return OpenWindow(open=rule.open_time, close=rule.close_time)


class WorkingHoursResolver:
    """Resolves a provider's open/close window for a local calendar date.

    Day-of-week follows ``date.weekday()`` (0 = Monday). Rules come from an
    injected async lookup so the resolver stays free of storage concerns.
    """

    def __init__(self, lookup_rule: RuleLookup, default_window: OpenWindow):
        self._lookup_rule = lookup_rule
        self._default = default_window

    async def resolve(self, provider_id: UUID, day: date) -> Optional[OpenWindow]:
        rule = await self._lookup_rule(provider_id, day.weekday())
        return window_for_rule(rule, self._default)

    async def resolve_at(
        self, provider_id: UUID, instant: datetime, zone: str
    ) -> tuple[date, Optional[OpenWindow]]:
        # The weekday is taken in the provider's zone, not the caller's.
        local_day, _ = to_local(instant, zone)
        return local_day, await self.resolve(provider_id, local_day)
