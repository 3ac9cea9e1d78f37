from __future__ import annotations

import logging
import uuid

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agenda.core.database import is_unique_violation
from agenda.models import DeliveryRecord, NotificationType

logger = logging.getLogger(__name__)


class DeliveryLedger:
    """At most one successful claim per (appointment, notification type).

    The claim is the insert itself: a duplicate is detected by the storage
    uniqueness violation, never by reading first, so concurrent callers cannot
    both win. Each claim runs in its own short session so it commits
    independently of the caller's unit of work.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def register_once(
        self, appointment_id: uuid.UUID, notification_type: NotificationType
    ) -> bool:
        notification_type = NotificationType(notification_type)
        async with self._session_factory() as session:
            session.add(
                DeliveryRecord(
                    appointment_id=appointment_id,
                    notification_type=notification_type,
                )
            )
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                if not is_unique_violation(e, DeliveryRecord.__tablename__):
                    raise
                logger.info(
                    f"📭 {notification_type.value} already registered for appointment {appointment_id}"
                )
                return False
        return True
