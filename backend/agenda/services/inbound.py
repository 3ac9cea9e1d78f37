from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from agenda.core.config import Settings
from agenda.core.database import utcnow
from agenda.models import NotificationType
from agenda.scheduling.intent import Intent, classify
from agenda.services import messages
from agenda.services.booking import only_digits
from agenda.services.db_service import DBService
from agenda.services.delivery_ledger import DeliveryLedger
from agenda.services.lifecycle import AppointmentLifecycle

logger = logging.getLogger(__name__)

_REPLY_TYPES = {
    Intent.CONFIRM: (NotificationType.CONFIRM_REPLY, messages.CONFIRMED_REPLY),
    Intent.CANCEL: (NotificationType.CANCEL_REPLY, messages.CANCELLED_REPLY),
}


@dataclass
class InboundMessage:
    from_number: str
    body: str
    to_number: Optional[str] = None
    message_sid: Optional[str] = None


@dataclass
class InboundResult:
    reply: Optional[str]
    duplicate: bool = False
    intent: Intent = Intent.UNKNOWN
    appointment_id: Optional[str] = None
    changed: bool = False
    tenant_id: Optional[uuid.UUID] = None


class InboundMessageHandler:
    """Turns one inbound text into at most one state change and exactly one reply.

    A webhook retried by the transport carries the same MessageSid; the
    second delivery is recognised by the message log's unique external id
    and produces no reply at all.
    """

    def __init__(
        self,
        db: DBService,
        settings: Settings,
        ledger: DeliveryLedger,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.settings = settings
        self.ledger = ledger
        self.clock = clock

    async def handle(self, message: InboundMessage) -> InboundResult:
        phone = only_digits(message.from_number)
        tenant = await self.db.get_tenant_by_phone(message.to_number) if message.to_number else None
        tenant_id = tenant.id if tenant else None

        logged = await self.db.log_message(
            {
                "tenant_id": tenant_id,
                "direction": "inbound",
                "phone": phone,
                "body": message.body,
                "external_id": message.message_sid or None,
                "meta": {"to": message.to_number},
            }
        )
        if logged is None:
            logger.info(f"🔁 Duplicate inbound message {message.message_sid}; ignoring")
            return InboundResult(reply=None, duplicate=True)

        intent = classify(message.body)
        if intent is Intent.UNKNOWN:
            logger.info(f"❓ Unrecognised reply from {phone}: {message.body!r}")
            return InboundResult(reply=messages.CLARIFY_PROMPT, intent=intent, tenant_id=tenant_id)

        customers = []
        if phone:
            customers = await self.db.find_customers_by_phone(phone, tenant_id)
            if not customers and tenant is not None:
                customers = await self.db.find_customers_by_phone(phone)

        appointment = await self.db.next_relevant_appointment(
            [c.id for c in customers], self.clock()
        )
        if appointment is None:
            logger.info(f"📭 No active appointment for {phone}")
            return InboundResult(reply=messages.NO_APPOINTMENT_REPLY, intent=intent, tenant_id=tenant_id)

        lifecycle = AppointmentLifecycle(self.db, self.settings, clock=self.clock)
        outcome = await lifecycle.apply_intent(appointment, intent)

        notification_type, reply = _REPLY_TYPES[intent]
        if not (outcome.changed and await self.ledger.register_once(appointment.id, notification_type)):
            reply = messages.status_reply(outcome.appointment.status)

        return InboundResult(
            reply=reply,
            intent=intent,
            appointment_id=str(appointment.id),
            changed=outcome.changed,
            tenant_id=tenant_id,
        )
