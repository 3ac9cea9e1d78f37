from __future__ import annotations

import datetime as dt
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from agenda.api.v1.deps import get_current_operator, get_notifier, get_settings, rate_limited
from agenda.core.config import Settings
from agenda.core.database import get_db
from agenda.models import Appointment, Operator
from agenda.services.booking import BookingRequest, BookingTransaction
from agenda.services.db_service import DBService
from agenda.services.lifecycle import AppointmentLifecycle
from agenda.services.notifications import Notifier

router = APIRouter(tags=["appointments"], dependencies=[Depends(rate_limited)])


class CreateAppointmentArgs(BaseModel):
    provider_id: str
    customer_phone: str
    customer_name: Optional[str] = None
    service: Optional[str] = None
    duration_minutes: int = 30
    # Either start (ISO 8601 with offset) or date + time in the tenant's zone
    start: Optional[dt.datetime] = None
    date: Optional[dt.date] = None
    time: Optional[dt.time] = None


class AppointmentOut(BaseModel):
    id: str
    provider_id: str
    customer_id: str
    status: str
    start: str
    end: str
    service: Optional[str] = None
    customer_name: Optional[str] = None


class TransitionOut(BaseModel):
    ok: bool
    changed: bool
    appointment: AppointmentOut


def _serialize(appointment: Appointment) -> AppointmentOut:
    return AppointmentOut(
        id=str(appointment.id),
        provider_id=str(appointment.provider_id),
        customer_id=str(appointment.customer_id),
        status=appointment.status.value,
        start=appointment.start_at.isoformat(),
        end=appointment.end_at.isoformat(),
        service=appointment.service,
        customer_name=appointment.customer_name_snapshot,
    )


@router.post("/appointments", response_model=AppointmentOut, status_code=201)
async def create_appointment(
    args: CreateAppointmentArgs,
    operator: Operator = Depends(get_current_operator),
    settings: Settings = Depends(get_settings),
    notifier: Notifier = Depends(get_notifier),
    db: AsyncSession = Depends(get_db),
):
    request = BookingRequest(
        provider_id=args.provider_id,
        customer_phone=args.customer_phone,
        duration_minutes=args.duration_minutes,
        customer_name=args.customer_name,
        service=args.service,
        start=args.start,
        local_date=args.date,
        local_time=args.time,
    )
    appointment = await BookingTransaction(DBService(db), settings, notifier).book(
        operator.tenant_id, request
    )
    return _serialize(appointment)


@router.post("/appointments/{appointment_id}/cancel", response_model=TransitionOut)
async def cancel_appointment(
    appointment_id: str,
    operator: Operator = Depends(get_current_operator),
    settings: Settings = Depends(get_settings),
    notifier: Notifier = Depends(get_notifier),
    db: AsyncSession = Depends(get_db),
):
    outcome = await AppointmentLifecycle(DBService(db), settings, notifier).cancel_by_operator(
        operator.tenant_id, appointment_id
    )
    return TransitionOut(ok=True, changed=outcome.changed, appointment=_serialize(outcome.appointment))


@router.post("/appointments/{appointment_id}/no-show", response_model=TransitionOut)
async def mark_no_show(
    appointment_id: str,
    operator: Operator = Depends(get_current_operator),
    settings: Settings = Depends(get_settings),
    db: AsyncSession = Depends(get_db),
):
    outcome = await AppointmentLifecycle(DBService(db), settings).mark_no_show(
        operator.tenant_id, appointment_id
    )
    return TransitionOut(ok=True, changed=outcome.changed, appointment=_serialize(outcome.appointment))
