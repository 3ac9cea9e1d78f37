from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError

from agenda.core.config import Settings
from agenda.core.database import utcnow
from agenda.core.errors import BookingConflict, CapacityExceeded, ValidationFailed
from agenda.models import Appointment, NotificationType
from agenda.models.appointment import OVERLAP_CONSTRAINT
from agenda.scheduling.state_machine import AppointmentStatus
from agenda.scheduling.zoned_time import local_day_bounds, to_instant, to_local
from agenda.services import messages
from agenda.services.db_service import DBService
from agenda.services.notifications import Notifier
from agenda.services.providers import load_provider_for_tenant

logger = logging.getLogger(__name__)


def only_digits(value: str) -> str:
    return "".join(ch for ch in str(value or "") if ch.isdigit())


@dataclass
class BookingRequest:
    provider_id: str
    customer_phone: str
    duration_minutes: int = 30
    customer_name: Optional[str] = None
    service: Optional[str] = None

    # Either an absolute start instant, or a local date + time in the tenant's zone
    start: Optional[datetime] = None
    local_date: Optional[date] = None
    local_time: Optional[time] = None


def _is_overlap_violation(exc: IntegrityError) -> bool:
    return OVERLAP_CONSTRAINT in str(exc.orig)


class BookingTransaction:
    """Check-then-create for one appointment.

    The read of overlapping appointments only produces a fast, friendly
    conflict. The storage overlap guard (exclusion constraint / trigger) is
    what rejects the loser of two concurrent overlapping writes; its
    violation is mapped to the same ``BookingConflict``.
    """

    def __init__(
        self,
        db: DBService,
        settings: Settings,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.settings = settings
        self.notifier = notifier
        self.clock = clock

    async def book(self, tenant_id: uuid.UUID, request: BookingRequest) -> Appointment:
        if request.duration_minutes is None or request.duration_minutes <= 0:
            raise ValidationFailed("duration_minutes must be positive")
        phone = only_digits(request.customer_phone)
        if not phone:
            raise ValidationFailed("customer_phone is required")

        provider, tenant = await load_provider_for_tenant(self.db, tenant_id, request.provider_id)
        if not provider.active:
            raise ValidationFailed("Provider is not active")

        zone = tenant.timezone or self.settings.default_timezone
        start = self._resolve_start(request, zone)
        end = start + timedelta(minutes=request.duration_minutes)

        await self._check_capacity(provider.id, start, zone)

        clash = await self.db.find_overlapping(provider.id, start, end)
        if clash is not None:
            logger.info(f"🔎 Booking blocked: overlaps appointment {clash.id}")
            raise BookingConflict("Requested time overlaps an existing appointment")

        customer = await self.db.get_or_create_customer(
            tenant.id, phone, (request.customer_name or "").strip() or None
        )

        now = self.clock()
        appointment = Appointment(
            tenant_id=tenant.id,
            provider_id=provider.id,
            customer_id=customer.id,
            start_at=start,
            end_at=end,
            status=AppointmentStatus.BOOKED,
            service=request.service,
            customer_name_snapshot=(request.customer_name or "").strip() or customer.name,
            created_at=now,
            updated_at=now,
        )
        self.db.session.add(appointment)
        try:
            await self.db.session.commit()
        except IntegrityError as e:
            await self.db.session.rollback()
            if _is_overlap_violation(e):
                logger.info(f"🔎 Booking blocked by storage overlap guard for provider {provider.id}")
                raise BookingConflict("Requested time overlaps an existing appointment") from e
            raise
        await self.db.session.refresh(appointment)

        logger.info(f"✅ APPOINTMENT BOOKED: {appointment.id} ({phone}, {start.isoformat()})")

        if self.notifier is not None:
            body = messages.confirmation_request(
                appointment.customer_name_snapshot, tenant.name, start, zone
            )
            self.notifier.dispatch(
                self.notifier.send_once(
                    appointment.id,
                    NotificationType.BOOKING_CONFIRMATION_REQUEST,
                    phone,
                    body,
                    tenant_id=tenant.id,
                    from_=tenant.twilio_number,
                ),
                label=f"confirmation-request:{appointment.id}",
            )
        return appointment

    def _resolve_start(self, request: BookingRequest, zone: str) -> datetime:
        if request.start is not None:
            if request.start.tzinfo is None:
                raise ValidationFailed("start must include a UTC offset")
            return request.start
        if request.local_date is None or request.local_time is None:
            raise ValidationFailed("Provide start, or date and time")
        return to_instant(request.local_date, request.local_time, zone)

    async def _check_capacity(self, provider_id: uuid.UUID, start: datetime, zone: str) -> None:
        limit = self.settings.daily_appointment_limit
        if limit <= 0:
            return
        local_day, _ = to_local(start, zone)
        day_start, day_end = local_day_bounds(local_day, zone)
        count = await self.db.count_appointments_between(provider_id, day_start, day_end)
        if count >= limit:
            raise CapacityExceeded(f"Daily limit of {limit} appointments reached")
