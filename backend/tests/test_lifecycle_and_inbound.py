import uuid
from datetime import timedelta

import pytest

from conftest import TENANT_NUMBER, utc

from agenda.core.errors import NotAuthorized
from agenda.scheduling.intent import Intent
from agenda.scheduling.state_machine import AppointmentStatus
from agenda.services import messages
from agenda.services.db_service import DBService
from agenda.services.inbound import InboundMessage, InboundMessageHandler
from agenda.services.lifecycle import AppointmentLifecycle

NOW = utc(2026, 5, 3, 12, 0)


def _clock():
    return NOW


def _handler(session, settings, ledger):
    return InboundMessageHandler(DBService(session), settings, ledger, clock=_clock)


def _sms(body, sid):
    return InboundMessage(from_number="+351912345678", to_number=TENANT_NUMBER, body=body, message_sid=sid)


# ==================== LIFECYCLE ====================


async def test_operator_cancel_is_idempotent(session, settings, seed, make_appointment):
    appointment = await make_appointment(NOW + timedelta(days=1))
    lifecycle = AppointmentLifecycle(DBService(session), settings, clock=_clock)

    first = await lifecycle.cancel_by_operator(seed["tenant"].id, appointment.id)
    second = await lifecycle.cancel_by_operator(seed["tenant"].id, appointment.id)

    assert first.changed and first.appointment.status == AppointmentStatus.CANCELLED
    assert first.appointment.cancelled_at == NOW
    assert not second.changed


async def test_operator_cancel_notifies_customer_once(session, settings, seed, make_appointment, notifier, twilio):
    appointment = await make_appointment(NOW + timedelta(days=1))
    lifecycle = AppointmentLifecycle(DBService(session), settings, notifier, clock=_clock)

    await lifecycle.cancel_by_operator(seed["tenant"].id, appointment.id)
    await lifecycle.cancel_by_operator(seed["tenant"].id, appointment.id)
    await notifier.drain()

    assert len(twilio.sent) == 1
    assert "cancelada pelo estabelecimento" in twilio.sent[0]["body"]
    assert twilio.sent[0]["from"] == TENANT_NUMBER


async def test_cancel_after_completion_is_a_no_op(session, settings, seed, make_appointment):
    appointment = await make_appointment(NOW - timedelta(days=1), status=AppointmentStatus.COMPLETED)
    outcome = await AppointmentLifecycle(DBService(session), settings).cancel_by_operator(
        seed["tenant"].id, appointment.id
    )
    assert not outcome.changed
    assert outcome.appointment.status == AppointmentStatus.COMPLETED


async def test_no_show_only_from_confirmed(session, settings, seed, make_appointment):
    booked = await make_appointment(NOW - timedelta(hours=3))
    confirmed = await make_appointment(NOW - timedelta(hours=2), status=AppointmentStatus.CONFIRMED)
    lifecycle = AppointmentLifecycle(DBService(session), settings)

    assert not (await lifecycle.mark_no_show(seed["tenant"].id, booked.id)).changed
    outcome = await lifecycle.mark_no_show(seed["tenant"].id, confirmed.id)
    assert outcome.changed and outcome.appointment.status == AppointmentStatus.NO_SHOW


async def test_transition_from_another_tenant_is_rejected(session, settings, make_appointment):
    appointment = await make_appointment(NOW + timedelta(days=1))
    with pytest.raises(NotAuthorized):
        await AppointmentLifecycle(DBService(session), settings).cancel_by_operator(uuid.uuid4(), appointment.id)


async def test_sweep_completes_only_elapsed_active_appointments(session, settings, make_appointment):
    # Ended 50 minutes ago, past the 10 minute grace
    old_booked = await make_appointment(NOW - timedelta(minutes=80))
    # Ended 5 minutes ago, still within grace
    recent = await make_appointment(NOW - timedelta(minutes=35))
    cancelled = await make_appointment(NOW - timedelta(hours=5), status=AppointmentStatus.CANCELLED)
    old_confirmed = await make_appointment(NOW - timedelta(hours=3), status=AppointmentStatus.CONFIRMED)

    db = DBService(session)
    lifecycle = AppointmentLifecycle(db, settings, clock=_clock)
    assert await lifecycle.sweep_completed() == 2
    assert await lifecycle.sweep_completed() == 0

    statuses = {a.id: (await db.get_appointment(a.id)).status for a in (old_booked, recent, cancelled, old_confirmed)}
    assert statuses[old_booked.id] == AppointmentStatus.COMPLETED
    assert statuses[old_confirmed.id] == AppointmentStatus.COMPLETED
    assert statuses[recent.id] == AppointmentStatus.BOOKED
    assert statuses[cancelled.id] == AppointmentStatus.CANCELLED


# ==================== INBOUND ====================


async def test_confirm_reply_confirms_and_answers(session, settings, ledger, seed, make_appointment):
    appointment = await make_appointment(NOW + timedelta(days=1))

    result = await _handler(session, settings, ledger).handle(_sms("Sim", "SM1"))

    assert result.intent is Intent.CONFIRM
    assert result.changed
    assert result.reply == messages.CONFIRMED_REPLY
    assert result.tenant_id == seed["tenant"].id
    stored = await DBService(session).get_appointment(appointment.id)
    assert stored.status == AppointmentStatus.CONFIRMED


async def test_repeated_confirm_gets_status_reply(session, settings, ledger, make_appointment):
    await make_appointment(NOW + timedelta(days=1))
    handler = _handler(session, settings, ledger)

    await handler.handle(_sms("sim", "SM1"))
    again = await handler.handle(_sms("SIM", "SM2"))

    assert not again.changed
    assert again.reply == messages.status_reply(AppointmentStatus.CONFIRMED)


async def test_cancel_reply_cancels(session, settings, ledger, make_appointment):
    appointment = await make_appointment(NOW + timedelta(days=1), status=AppointmentStatus.CONFIRMED)

    result = await _handler(session, settings, ledger).handle(_sms("quero cancelar", "SM1"))

    assert result.reply == messages.CANCELLED_REPLY
    stored = await DBService(session).get_appointment(appointment.id)
    assert stored.status == AppointmentStatus.CANCELLED


async def test_unknown_text_asks_for_clarification(session, settings, ledger, make_appointment):
    appointment = await make_appointment(NOW + timedelta(days=1))

    result = await _handler(session, settings, ledger).handle(_sms("bom dia", "SM1"))

    assert result.reply == messages.CLARIFY_PROMPT
    stored = await DBService(session).get_appointment(appointment.id)
    assert stored.status == AppointmentStatus.BOOKED


async def test_reply_targets_soonest_upcoming_appointment(session, settings, ledger, make_appointment):
    later = await make_appointment(NOW + timedelta(days=3))
    sooner = await make_appointment(NOW + timedelta(days=1))
    await make_appointment(NOW - timedelta(days=2))

    result = await _handler(session, settings, ledger).handle(_sms("sim", "SM1"))

    assert result.appointment_id == str(sooner.id)
    stored = await DBService(session).get_appointment(later.id)
    assert stored.status == AppointmentStatus.BOOKED


async def test_no_appointment_reply(session, settings, ledger, seed):
    result = await _handler(session, settings, ledger).handle(_sms("sim", "SM1"))
    assert result.reply == messages.NO_APPOINTMENT_REPLY
    assert result.tenant_id == seed["tenant"].id


async def test_duplicate_message_sid_is_ignored(session, settings, ledger, make_appointment):
    await make_appointment(NOW + timedelta(days=1))
    handler = _handler(session, settings, ledger)

    first = await handler.handle(_sms("sim", "SM-retry"))
    second = await handler.handle(_sms("sim", "SM-retry"))

    assert first.reply == messages.CONFIRMED_REPLY
    assert second.duplicate
    assert second.reply is None
