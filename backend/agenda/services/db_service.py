from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from agenda.core.database import is_unique_violation
from agenda.models import (
    Tenant,
    Operator,
    Provider,
    WorkingHoursRule,
    Customer,
    Appointment,
    MessageLog,
)
from agenda.scheduling.conflicts import Interval
from agenda.scheduling.state_machine import (
    ACTIVE_STATUSES,
    AppointmentStatus,
    Trigger,
    source_statuses,
    target_status,
)
from typing import Iterable, Optional, List, Tuple, Union
from datetime import datetime
import uuid

IdLike = Union[str, uuid.UUID]

# Timestamp column stamped when an appointment enters a status
_STATUS_TIMESTAMPS = {
    AppointmentStatus.CONFIRMED: "confirmed_at",
    AppointmentStatus.CANCELLED: "cancelled_at",
    AppointmentStatus.COMPLETED: "completed_at",
}


def _as_uuid(value: IdLike) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class DBService:
    """
    Service for database operations
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    # ==================== TENANTS & OPERATORS ====================

    async def get_tenant(self, tenant_id: IdLike) -> Optional[Tenant]:
        """Get tenant by ID"""
        t_uuid = _as_uuid(tenant_id)
        if t_uuid is None:
            return None
        result = await self.session.execute(select(Tenant).where(Tenant.id == t_uuid))
        return result.scalar_one_or_none()

    async def get_tenant_by_phone(self, phone: str) -> Optional[Tenant]:
        """Get tenant by its Twilio number"""
        result = await self.session.execute(
            select(Tenant).where(Tenant.twilio_number == phone)
        )
        return result.scalar_one_or_none()

    async def get_operator_by_token_hash(self, token_hash: str) -> Optional[Operator]:
        result = await self.session.execute(
            select(Operator).where(Operator.token_hash == token_hash, Operator.active.is_(True))
        )
        return result.scalar_one_or_none()

    # ==================== PROVIDERS ====================

    async def get_provider(self, provider_id: IdLike) -> Optional[Provider]:
        """Get provider by ID"""
        p_uuid = _as_uuid(provider_id)
        if p_uuid is None:
            return None
        result = await self.session.execute(select(Provider).where(Provider.id == p_uuid))
        return result.scalar_one_or_none()

    async def get_working_hours_rule(
        self, provider_id: uuid.UUID, day_of_week: int
    ) -> Optional[WorkingHoursRule]:
        """The single rule for (provider, weekday), if configured"""
        result = await self.session.execute(
            select(WorkingHoursRule).where(
                WorkingHoursRule.provider_id == provider_id,
                WorkingHoursRule.day_of_week == day_of_week,
            )
        )
        return result.scalar_one_or_none()

    # ==================== CUSTOMERS ====================

    async def get_or_create_customer(
        self, tenant_id: uuid.UUID, phone: str, name: Optional[str] = None
    ) -> Customer:
        """Find-or-create by (tenant, phone); a concurrent insert wins via the unique key."""
        existing = await self._get_customer(tenant_id, phone)
        if existing:
            if name and not existing.name:
                existing.name = name
                await self.session.commit()
            return existing

        customer = Customer(tenant_id=tenant_id, phone=phone, name=name)
        self.session.add(customer)
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            existing = await self._get_customer(tenant_id, phone)
            if existing is None:
                raise
            return existing
        await self.session.refresh(customer)
        return customer

    async def _get_customer(self, tenant_id: uuid.UUID, phone: str) -> Optional[Customer]:
        result = await self.session.execute(
            select(Customer).where(Customer.tenant_id == tenant_id, Customer.phone == phone)
        )
        return result.scalar_one_or_none()

    async def find_customers_by_phone(
        self, phone: str, tenant_id: Optional[uuid.UUID] = None
    ) -> List[Customer]:
        """Customers with this phone, newest first (optionally within one tenant)"""
        query = select(Customer).where(Customer.phone == phone)
        if tenant_id is not None:
            query = query.where(Customer.tenant_id == tenant_id)
        result = await self.session.execute(query.order_by(Customer.created_at.desc()))
        return list(result.scalars().all())

    # ==================== APPOINTMENTS ====================

    async def get_appointment(self, appointment_id: IdLike) -> Optional[Appointment]:
        """Get appointment by ID (always re-read from the database)"""
        a_uuid = _as_uuid(appointment_id)
        if a_uuid is None:
            return None
        result = await self.session.execute(
            select(Appointment)
            .where(Appointment.id == a_uuid)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    def _blocking(self, provider_id: uuid.UUID, start: datetime, end: datetime):
        # Non-cancelled appointments of the provider overlapping [start, end)
        return (
            Appointment.provider_id == provider_id,
            Appointment.status != AppointmentStatus.CANCELLED,
            Appointment.start_at < end,
            Appointment.end_at > start,
        )

    async def busy_intervals(
        self, provider_id: uuid.UUID, start: datetime, end: datetime
    ) -> List[Interval]:
        result = await self.session.execute(
            select(Appointment.start_at, Appointment.end_at)
            .where(*self._blocking(provider_id, start, end))
            .order_by(Appointment.start_at)
        )
        return [Interval(row.start_at, row.end_at) for row in result.all()]

    async def find_overlapping(
        self, provider_id: uuid.UUID, start: datetime, end: datetime
    ) -> Optional[Appointment]:
        result = await self.session.execute(
            select(Appointment).where(*self._blocking(provider_id, start, end)).limit(1)
        )
        return result.scalars().first()

    async def count_appointments_between(
        self, provider_id: uuid.UUID, start: datetime, end: datetime
    ) -> int:
        """Non-cancelled appointments of a provider starting in [start, end)"""
        result = await self.session.execute(
            select(func.count(Appointment.id)).where(
                Appointment.provider_id == provider_id,
                Appointment.status != AppointmentStatus.CANCELLED,
                Appointment.start_at >= start,
                Appointment.start_at < end,
            )
        )
        return int(result.scalar_one())

    async def apply_transition(
        self, appointment_id: uuid.UUID, trigger: Trigger, now: datetime
    ) -> Tuple[bool, Optional[Appointment]]:
        """Compare-and-set status update.

        Only rows currently in one of the trigger's source statuses move, so
        concurrent transitions on the same row cannot both apply. Returns
        (changed, fresh appointment).
        """
        target = target_status(trigger)
        values = {"status": target, "updated_at": now}
        stamp = _STATUS_TIMESTAMPS.get(target)
        if stamp:
            values[stamp] = now

        result = await self.session.execute(
            update(Appointment)
            .where(
                Appointment.id == appointment_id,
                Appointment.status.in_(list(source_statuses(trigger))),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        changed = result.rowcount == 1
        return changed, await self.get_appointment(appointment_id)

    async def complete_elapsed(self, cutoff: datetime, now: datetime) -> int:
        """BOOKED/CONFIRMED appointments that ended before ``cutoff`` become COMPLETED."""
        result = await self.session.execute(
            update(Appointment)
            .where(
                Appointment.status.in_(list(source_statuses(Trigger.TIME_ELAPSED))),
                Appointment.end_at < cutoff,
            )
            .values(status=AppointmentStatus.COMPLETED, completed_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        return result.rowcount or 0

    async def next_relevant_appointment(
        self, customer_ids: Iterable[uuid.UUID], now: datetime
    ) -> Optional[Appointment]:
        """Soonest upcoming BOOKED/CONFIRMED appointment of these customers"""
        ids = list(customer_ids)
        if not ids:
            return None
        result = await self.session.execute(
            select(Appointment)
            .where(
                Appointment.customer_id.in_(ids),
                Appointment.status.in_(list(ACTIVE_STATUSES)),
                Appointment.end_at > now,
            )
            .order_by(Appointment.start_at.asc())
            .limit(1)
        )
        return result.scalars().first()

    async def appointments_starting_between(
        self,
        statuses: Iterable[AppointmentStatus],
        start: datetime,
        end: datetime,
    ) -> List[Tuple[Appointment, Customer, Tenant]]:
        """Appointments (with customer and tenant) whose start lies in [start, end]"""
        result = await self.session.execute(
            select(Appointment, Customer, Tenant)
            .join(Customer, Customer.id == Appointment.customer_id)
            .join(Tenant, Tenant.id == Appointment.tenant_id)
            .where(
                Appointment.status.in_(list(statuses)),
                Appointment.start_at >= start,
                Appointment.start_at <= end,
            )
            .order_by(Appointment.start_at.asc())
        )
        return [tuple(row) for row in result.all()]

    async def get_appointment_context(
        self, appointment_id: uuid.UUID
    ) -> Optional[Tuple[Appointment, Customer, Tenant]]:
        result = await self.session.execute(
            select(Appointment, Customer, Tenant)
            .join(Customer, Customer.id == Appointment.customer_id)
            .join(Tenant, Tenant.id == Appointment.tenant_id)
            .where(Appointment.id == appointment_id)
        )
        row = result.first()
        return tuple(row) if row else None

    # ==================== MESSAGE LOG ====================

    async def log_message(self, data: dict) -> Optional[MessageLog]:
        """Insert a message log row; returns None when the external id was already logged."""
        entry = MessageLog(**data)
        self.session.add(entry)
        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            if not is_unique_violation(e, MessageLog.__tablename__):
                raise
            return None
        await self.session.refresh(entry)
        return entry
