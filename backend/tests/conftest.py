"""
Pytest configuration: a throwaway SQLite database per test, seeded with one
tenant, operator and provider, plus a Twilio stand-in that records sends.
"""

import hashlib
from datetime import datetime, time, timedelta, timezone

import pytest
from sqlalchemy import select

from agenda.core.config import Settings
from agenda.core.database import create_engine_from_settings, create_schema, create_session_factory
from agenda.models import Appointment, Customer, Operator, Provider, Tenant, WorkingHoursRule
from agenda.scheduling.state_machine import AppointmentStatus
from agenda.services.delivery_ledger import DeliveryLedger
from agenda.services.notifications import Notifier

OPERATOR_TOKEN = "operator-test-token"
CRON_SECRET = "cron-test-secret"
TENANT_NUMBER = "+351210000000"
CUSTOMER_PHONE = "351912345678"


class RecordingTwilio:
    """Same surface as TwilioClient; keeps every message instead of sending it."""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    def send_sms(self, to, message, from_=None):
        if self.fail:
            raise RuntimeError("transport down")
        self.sent.append({"to": to, "body": message, "from": from_})
        return {"sid": f"SM{len(self.sent)}"}

    def validate_request(self, url, params, signature):
        return signature == "valid"


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'agenda.db'}",
        default_timezone="Europe/Lisbon",
        default_open_time=time(9, 0),
        default_close_time=time(18, 0),
        cron_secret=CRON_SECRET,
        rate_limit_per_minute=1000,
    )


@pytest.fixture
async def engine(settings):
    engine = create_engine_from_settings(settings)
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def seed(session_factory):
    """One tenant (Lisbon) with an operator and an active provider open every day 09:00-18:00."""
    async with session_factory() as session:
        tenant = Tenant(name="Barbearia Central", timezone="Europe/Lisbon", twilio_number=TENANT_NUMBER)
        session.add(tenant)
        await session.flush()

        operator = Operator(
            tenant_id=tenant.id,
            name="Owner",
            token_hash=hashlib.sha256(OPERATOR_TOKEN.encode()).hexdigest(),
        )
        provider = Provider(tenant_id=tenant.id, name="Rui")
        session.add_all([operator, provider])
        await session.flush()

        for dow in range(7):
            session.add(
                WorkingHoursRule(
                    provider_id=provider.id,
                    day_of_week=dow,
                    open_time=time(9, 0),
                    close_time=time(18, 0),
                )
            )
        await session.commit()

        return {"tenant": tenant, "operator": operator, "provider": provider}


@pytest.fixture
def twilio():
    return RecordingTwilio()


@pytest.fixture
def ledger(session_factory):
    return DeliveryLedger(session_factory)


@pytest.fixture
def notifier(session_factory, ledger, twilio):
    return Notifier(session_factory, ledger, twilio)


@pytest.fixture
def make_appointment(session_factory, seed):
    """Insert an appointment directly, bypassing booking checks."""

    async def _make(start, minutes=30, status=AppointmentStatus.BOOKED, phone=CUSTOMER_PHONE, name="Ana"):
        async with session_factory() as session:
            tenant = seed["tenant"]
            customer = (
                await session.execute(
                    select(Customer).where(Customer.tenant_id == tenant.id, Customer.phone == phone)
                )
            ).scalar_one_or_none()
            if customer is None:
                customer = Customer(tenant_id=tenant.id, phone=phone, name=name)
                session.add(customer)
                await session.flush()
            appointment = Appointment(
                tenant_id=tenant.id,
                provider_id=seed["provider"].id,
                customer_id=customer.id,
                start_at=start,
                end_at=start + timedelta(minutes=minutes),
                status=status,
                customer_name_snapshot=name,
            )
            session.add(appointment)
            await session.commit()
            return appointment

    return _make
