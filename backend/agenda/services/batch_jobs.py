"""Periodic jobs: completion sweep and customer notifications.

Each job runs under a RunLock so overlapping scheduler invocations (or
replicas) skip instead of duplicating work, and every message goes through
the delivery ledger so re-running a job never re-sends.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agenda.core.config import Settings
from agenda.core.database import utcnow
from agenda.models import Appointment, Customer, NotificationType, Tenant
from agenda.scheduling.state_machine import ACTIVE_STATUSES, AppointmentStatus
from agenda.services import messages
from agenda.services.db_service import DBService
from agenda.services.lifecycle import AppointmentLifecycle
from agenda.services.notifications import Notifier
from agenda.services.run_lock import RunLock

logger = logging.getLogger(__name__)

REMINDER_LEAD = timedelta(hours=24)
REMINDER_TOLERANCE = timedelta(minutes=5)
THANK_YOU_WINDOW = timedelta(hours=2)
REBOOK_AFTER = timedelta(days=28)
REBOOK_TOLERANCE = timedelta(hours=1)

# Pause between sends to avoid bursts against the transport
SEND_PAUSE_SECONDS = 0.2


@dataclass
class BatchResult:
    job: str
    skipped: bool = False
    matched: int = 0
    sent: int = 0
    updated: int = 0

    def as_dict(self) -> dict:
        return {
            "ok": True,
            "job": self.job,
            "skipped": self.skipped,
            "matched": self.matched,
            "sent": self.sent,
            "updated": self.updated,
        }


class BatchJobs:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings,
        notifier: Notifier,
        run_lock: Optional[RunLock] = None,
        clock: Callable[[], datetime] = utcnow,
        send_pause: float = SEND_PAUSE_SECONDS,
    ):
        self.session_factory = session_factory
        self.settings = settings
        self.notifier = notifier
        self.run_lock = run_lock or RunLock(session_factory)
        self.clock = clock
        self.send_pause = send_pause

    async def run(self, job: str) -> BatchResult:
        runner = {
            "complete": self._complete,
            "reminders-24h": self._reminders_24h,
            "thank-you": self._thank_you,
            "rebook": self._rebook,
        }.get(job)
        if runner is None:
            raise KeyError(job)

        async with self.run_lock.hold(f"batch:{job}", self.settings.run_lock_ttl_seconds) as acquired:
            if not acquired:
                logger.info(f"⏭️ Batch '{job}' already running elsewhere; skipping")
                return BatchResult(job=job, skipped=True)
            result = await runner()

        logger.info(
            f"✅ Batch {job}: matched={result.matched} sent={result.sent} skipped={result.matched - result.sent} updated={result.updated}"
        )
        return result

    async def _complete(self) -> BatchResult:
        async with self.session_factory() as session:
            lifecycle = AppointmentLifecycle(DBService(session), self.settings, clock=self.clock)
            updated = await lifecycle.sweep_completed()
        return BatchResult(job="complete", updated=updated)

    async def _reminders_24h(self) -> BatchResult:
        target = self.clock() + REMINDER_LEAD
        return await self._dispatch(
            job="reminders-24h",
            statuses=ACTIVE_STATUSES,
            start=target - REMINDER_TOLERANCE,
            end=target + REMINDER_TOLERANCE,
            notification_type=NotificationType.REMINDER_24H,
            render=lambda appt, customer, zone: messages.reminder_24h(
                appt.customer_name_snapshot or customer.name, appt.start_at, zone
            ),
        )

    async def _thank_you(self) -> BatchResult:
        now = self.clock()
        return await self._dispatch(
            job="thank-you",
            statuses=[AppointmentStatus.COMPLETED],
            start=now - THANK_YOU_WINDOW,
            end=now,
            notification_type=NotificationType.THANK_YOU,
            render=lambda appt, customer, zone: messages.thank_you(
                appt.customer_name_snapshot or customer.name
            ),
        )

    async def _rebook(self) -> BatchResult:
        center = self.clock() - REBOOK_AFTER
        return await self._dispatch(
            job="rebook",
            statuses=[AppointmentStatus.COMPLETED],
            start=center - REBOOK_TOLERANCE,
            end=center + REBOOK_TOLERANCE,
            notification_type=NotificationType.REBOOK,
            render=lambda appt, customer, zone: messages.rebook(
                appt.customer_name_snapshot or customer.name
            ),
        )

    async def _dispatch(
        self,
        job: str,
        statuses: Iterable[AppointmentStatus],
        start: datetime,
        end: datetime,
        notification_type: NotificationType,
        render: Callable[[Appointment, Customer, str], str],
    ) -> BatchResult:
        async with self.session_factory() as session:
            rows = await DBService(session).appointments_starting_between(statuses, start, end)

        result = BatchResult(job=job, matched=len(rows))
        for appointment, customer, tenant in rows:
            zone = self._zone(tenant)
            sent = await self.notifier.send_once(
                appointment.id,
                notification_type,
                customer.phone,
                render(appointment, customer, zone),
                tenant_id=tenant.id,
                from_=tenant.twilio_number,
            )
            if sent:
                result.sent += 1
                if self.send_pause:
                    await asyncio.sleep(self.send_pause)
        return result

    def _zone(self, tenant: Tenant) -> str:
        return tenant.timezone or self.settings.default_timezone


JOB_NAMES = ("complete", "reminders-24h", "thank-you", "rebook")
