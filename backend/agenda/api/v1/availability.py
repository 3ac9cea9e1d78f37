from __future__ import annotations

from datetime import date as date_type
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from agenda.api.v1.deps import get_current_operator, get_settings, rate_limited
from agenda.core.config import Settings
from agenda.core.database import get_db
from agenda.models import Operator
from agenda.services.availability import AvailabilityService
from agenda.services.db_service import DBService

router = APIRouter(tags=["availability"], dependencies=[Depends(rate_limited)])


class SlotOut(BaseModel):
    label: str
    start: str


class AvailabilityOut(BaseModel):
    date: str
    timezone: str
    open: Optional[str] = None
    close: Optional[str] = None
    closed: bool
    duration_minutes: int
    step_minutes: int
    slots: List[SlotOut]


@router.get("/availability", response_model=AvailabilityOut)
async def get_availability(
    provider_id: str,
    date: date_type,
    duration: int = Query(30),
    step: int = Query(15),
    operator: Operator = Depends(get_current_operator),
    settings: Settings = Depends(get_settings),
    db: AsyncSession = Depends(get_db),
):
    """Free start times for one provider on one local day."""
    result = await AvailabilityService(DBService(db), settings).query(
        operator.tenant_id, provider_id, date, duration, step
    )
    window = result.window
    return AvailabilityOut(
        date=result.date.isoformat(),
        timezone=result.timezone,
        open=window.open.strftime("%H:%M") if window else None,
        close=window.close.strftime("%H:%M") if window else None,
        closed=window is None,
        duration_minutes=result.duration_minutes,
        step_minutes=result.step_minutes,
        slots=[SlotOut(label=s.label, start=s.start.isoformat()) for s in result.slots],
    )
