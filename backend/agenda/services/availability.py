from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from agenda.core.config import Settings
from agenda.core.errors import ValidationFailed
from agenda.scheduling.conflicts import Interval
from agenda.scheduling.slots import Slot, generate_slots
from agenda.scheduling.working_hours import OpenWindow, WorkingHoursResolver
from agenda.scheduling.zoned_time import local_day_bounds, to_instant
from agenda.services.db_service import DBService
from agenda.services.providers import load_provider_for_tenant

logger = logging.getLogger(__name__)


@dataclass
class AvailabilityResult:
    date: date
    timezone: str
    window: Optional[OpenWindow]
    duration_minutes: int
    step_minutes: int
    slots: List[Slot] = field(default_factory=list)


def default_window(settings: Settings) -> OpenWindow:
    return OpenWindow(open=settings.default_open_time, close=settings.default_close_time)


class AvailabilityService:
    """Free slots of one provider for one local day."""

    def __init__(self, db: DBService, settings: Settings):
        self.db = db
        self.settings = settings
        self.resolver = WorkingHoursResolver(db.get_working_hours_rule, default_window(settings))

    async def query(
        self,
        tenant_id: uuid.UUID,
        provider_id: str,
        day: date,
        duration_minutes: int = 30,
        step_minutes: int = 15,
    ) -> AvailabilityResult:
        if duration_minutes <= 0 or step_minutes <= 0:
            raise ValidationFailed("duration and step must be positive")

        provider, tenant = await load_provider_for_tenant(self.db, tenant_id, provider_id)
        zone = tenant.timezone or self.settings.default_timezone
        result = AvailabilityResult(
            date=day,
            timezone=zone,
            window=None,
            duration_minutes=duration_minutes,
            step_minutes=step_minutes,
        )
        if not provider.active:
            return result

        window = await self.resolver.resolve(provider.id, day)
        result.window = window
        if window is None:
            return result

        day_start, day_end = local_day_bounds(day, zone)
        busy = await self.db.busy_intervals(provider.id, day_start, day_end)

        break_window = self.settings.break_window
        if break_window:
            busy.append(
                Interval(
                    to_instant(day, break_window[0], zone),
                    to_instant(day, break_window[1], zone),
                )
            )

        result.slots = list(
            generate_slots(day, window, zone, duration_minutes, step_minutes, busy)
        )
        logger.debug(
            f"📅 {len(result.slots)} free slots for provider {provider.id} on {day.isoformat()}"
        )
        return result
