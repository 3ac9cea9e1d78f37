from dataclasses import replace
from datetime import timedelta

from conftest import RecordingTwilio, utc

from agenda.models import NotificationType
from agenda.scheduling.state_machine import AppointmentStatus
from agenda.services.batch_jobs import BatchJobs
from agenda.services.db_service import DBService
from agenda.services.notifications import Notifier
from agenda.services.run_lock import RunLock

NOW = utc(2026, 5, 3, 12, 0)


def _jobs(session_factory, settings, notifier):
    return BatchJobs(session_factory, settings, notifier, clock=lambda: NOW, send_pause=0)


async def test_reminders_sent_once_for_appointments_24h_ahead(session_factory, settings, notifier, twilio, make_appointment):
    due = await make_appointment(NOW + timedelta(hours=24, minutes=3))
    await make_appointment(NOW + timedelta(hours=30))
    await make_appointment(NOW + timedelta(hours=23, minutes=56), status=AppointmentStatus.CANCELLED)

    jobs = _jobs(session_factory, settings, notifier)
    first = await jobs.run("reminders-24h")
    second = await jobs.run("reminders-24h")

    assert (first.matched, first.sent) == (1, 1)
    assert (second.matched, second.sent) == (1, 0)
    assert len(twilio.sent) == 1
    assert "LEMBRETE" in twilio.sent[0]["body"]
    assert not await notifier.ledger.register_once(due.id, NotificationType.REMINDER_24H)


async def test_thank_you_and_rebook_target_completed_appointments(session_factory, settings, notifier, twilio, make_appointment):
    await make_appointment(NOW - timedelta(hours=1), status=AppointmentStatus.COMPLETED)
    await make_appointment(NOW - timedelta(days=28), status=AppointmentStatus.COMPLETED)
    await make_appointment(NOW - timedelta(hours=1, minutes=30), minutes=20, status=AppointmentStatus.NO_SHOW)

    jobs = _jobs(session_factory, settings, notifier)
    thanks = await jobs.run("thank-you")
    rebook = await jobs.run("rebook")

    assert (thanks.matched, thanks.sent) == (1, 1)
    assert (rebook.matched, rebook.sent) == (1, 1)
    bodies = [m["body"] for m in twilio.sent]
    assert any(b.startswith("Obrigado") for b in bodies)
    assert any("marcar novamente" in b for b in bodies)


async def test_complete_job_runs_sweep(session_factory, settings, notifier, make_appointment):
    appointment = await make_appointment(NOW - timedelta(hours=2))

    result = await _jobs(session_factory, settings, notifier).run("complete")

    assert result.updated == 1
    async with session_factory() as session:
        stored = await DBService(session).get_appointment(appointment.id)
    assert stored.status == AppointmentStatus.COMPLETED


async def test_job_skips_while_another_runner_holds_the_lock(session_factory, settings, notifier, twilio, make_appointment):
    await make_appointment(NOW + timedelta(hours=24))
    other_replica = RunLock(session_factory)
    assert await other_replica.acquire("batch:reminders-24h")

    result = await _jobs(session_factory, settings, notifier).run("reminders-24h")

    assert result.skipped
    assert twilio.sent == []


async def test_transport_failure_is_not_retried(session_factory, settings, ledger, make_appointment):
    await make_appointment(NOW + timedelta(hours=24))
    failing = Notifier(session_factory, ledger, RecordingTwilio(fail=True))

    result = await _jobs(session_factory, replace(settings, run_lock_ttl_seconds=60), failing).run("reminders-24h")
    assert (result.matched, result.sent) == (1, 0)

    working = RecordingTwilio()
    retry = await _jobs(session_factory, settings, Notifier(session_factory, ledger, working)).run("reminders-24h")
    assert retry.sent == 0
    assert working.sent == []
