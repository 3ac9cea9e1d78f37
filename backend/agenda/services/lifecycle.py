from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Union

from agenda.core.config import Settings
from agenda.core.database import utcnow
from agenda.core.errors import NotAuthorized, NotFound
from agenda.models import Appointment, NotificationType
from agenda.scheduling.intent import Intent
from agenda.scheduling.state_machine import Trigger
from agenda.services import messages
from agenda.services.db_service import DBService
from agenda.services.notifications import Notifier

logger = logging.getLogger(__name__)

_INTENT_TRIGGERS = {
    Intent.CONFIRM: Trigger.INTENT_CONFIRM,
    Intent.CANCEL: Trigger.INTENT_CANCEL,
}


@dataclass
class TransitionOutcome:
    appointment: Appointment
    changed: bool


class AppointmentLifecycle:
    """Applies state-machine triggers to stored appointments.

    Every update is conditional on the current status, so a trigger with no
    edge from the stored status leaves the row untouched and reports
    ``changed=False`` instead of failing.
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

    async def _load_for_tenant(
        self, tenant_id: uuid.UUID, appointment_id: Union[str, uuid.UUID]
    ) -> Appointment:
        appointment = await self.db.get_appointment(appointment_id)
        if appointment is None:
            raise NotFound("Appointment not found")
        if appointment.tenant_id != tenant_id:
            raise NotAuthorized("Appointment belongs to another tenant")
        return appointment

    async def _apply(self, appointment: Appointment, trigger: Trigger) -> TransitionOutcome:
        changed, fresh = await self.db.apply_transition(appointment.id, trigger, self.clock())
        if fresh is None:
            raise NotFound("Appointment not found")
        if changed:
            logger.info(f"🔁 Appointment {fresh.id}: {trigger.value} -> {fresh.status.value}")
        return TransitionOutcome(appointment=fresh, changed=changed)

    async def cancel_by_operator(
        self, tenant_id: uuid.UUID, appointment_id: Union[str, uuid.UUID]
    ) -> TransitionOutcome:
        appointment = await self._load_for_tenant(tenant_id, appointment_id)
        outcome = await self._apply(appointment, Trigger.OPERATOR_CANCEL)
        if outcome.changed and self.notifier is not None:
            self.notifier.dispatch(
                self._notify_operator_cancel(outcome.appointment.id),
                label=f"operator-cancel:{outcome.appointment.id}",
            )
        return outcome

    async def mark_no_show(
        self, tenant_id: uuid.UUID, appointment_id: Union[str, uuid.UUID]
    ) -> TransitionOutcome:
        appointment = await self._load_for_tenant(tenant_id, appointment_id)
        return await self._apply(appointment, Trigger.OPERATOR_NO_SHOW)

    async def apply_intent(self, appointment: Appointment, intent: Intent) -> Optional[TransitionOutcome]:
        """CONFIRM/CANCEL replies; UNKNOWN changes nothing and returns None."""
        trigger = _INTENT_TRIGGERS.get(intent)
        if trigger is None:
            return None
        return await self._apply(appointment, trigger)

    async def sweep_completed(self) -> int:
        """Mark BOOKED/CONFIRMED appointments that ended more than the grace period ago."""
        now = self.clock()
        cutoff = now - timedelta(minutes=self.settings.completion_grace_minutes)
        updated = await self.db.complete_elapsed(cutoff, now)
        logger.info(f"🏁 Completion sweep: {updated} appointment(s) completed")
        return updated

    async def _notify_operator_cancel(self, appointment_id: uuid.UUID) -> None:
        # Runs detached: reads its own context through a fresh session.
        async with self.notifier.session_factory() as session:
            context = await DBService(session).get_appointment_context(appointment_id)
        if context is None:
            return
        appointment, customer, tenant = context
        body = messages.cancelled_by_operator(
            appointment.customer_name_snapshot or customer.name,
            appointment.start_at,
            tenant.timezone or self.settings.default_timezone,
            self.settings.public_booking_url,
        )
        await self.notifier.send_once(
            appointment.id,
            NotificationType.CANCELLED_BY_OPERATOR,
            customer.phone,
            body,
            tenant_id=tenant.id,
            from_=tenant.twilio_number,
        )
