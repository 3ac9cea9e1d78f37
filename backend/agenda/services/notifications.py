from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Awaitable, Optional, Set

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agenda.integrations.twilio_client import TwilioClient
from agenda.models import NotificationType
from agenda.services.db_service import DBService
from agenda.services.delivery_ledger import DeliveryLedger

logger = logging.getLogger(__name__)


class Notifier:
    """Outbound text notifications, each sent at most once per appointment.

    ``send_once`` claims the (appointment, type) pair in the ledger before
    sending. A transport failure after the claim is logged and not retried.
    ``dispatch`` runs work as a detached task whose failure never reaches the
    caller; pending tasks are drained on shutdown.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        ledger: DeliveryLedger,
        twilio: TwilioClient,
    ):
        self.session_factory = session_factory
        self.ledger = ledger
        self.twilio = twilio
        self._tasks: Set[asyncio.Task] = set()

    async def send_once(
        self,
        appointment_id: uuid.UUID,
        notification_type: NotificationType,
        phone: str,
        body: str,
        tenant_id: Optional[uuid.UUID] = None,
        from_: Optional[str] = None,
    ) -> bool:
        if not phone:
            logger.info(f"📵 No phone for appointment {appointment_id}; {notification_type.value} skipped")
            return False

        if not await self.ledger.register_once(appointment_id, notification_type):
            return False

        try:
            await asyncio.to_thread(self.twilio.send_sms, phone, body, from_)
        except Exception as e:
            logger.error(
                f"❌ ERROR sending {notification_type.value} for appointment {appointment_id}: {e}"
            )
            return False

        await self.log_outbound(
            tenant_id,
            phone,
            body,
            {"appointment_id": str(appointment_id), "type": notification_type.value},
        )
        return True

    async def log_outbound(
        self, tenant_id: Optional[uuid.UUID], phone: str, body: str, meta: dict
    ) -> None:
        # Best-effort: a failed log write never fails the send.
        try:
            async with self.session_factory() as session:
                await DBService(session).log_message(
                    {
                        "tenant_id": tenant_id,
                        "direction": "outbound",
                        "phone": phone,
                        "body": body,
                        "meta": meta,
                    }
                )
        except Exception as e:
            logger.warning(f"⚠️ Could not log outbound message to {phone}: {e}")

    def dispatch(self, work: Awaitable, label: str) -> asyncio.Task:
        task = asyncio.ensure_future(work)
        self._tasks.add(task)

        def _done(t: asyncio.Task) -> None:
            self._tasks.discard(t)
            if t.cancelled():
                logger.warning(f"⚠️ Detached task '{label}' was cancelled")
                return
            exc = t.exception()
            if exc is not None:
                logger.error(f"❌ Detached task '{label}' failed: {exc!r}")

        task.add_done_callback(_done)
        return task

    async def drain(self) -> None:
        """Wait for detached tasks still in flight."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
