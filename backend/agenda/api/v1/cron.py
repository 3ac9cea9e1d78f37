from fastapi import APIRouter, Depends, Request

from agenda.api.v1.deps import get_notifier, get_run_lock, get_settings, require_cron_secret
from agenda.core.config import Settings
from agenda.services.batch_jobs import BatchJobs
from agenda.services.notifications import Notifier
from agenda.services.run_lock import RunLock

router = APIRouter(tags=["cron"], dependencies=[Depends(require_cron_secret)])


async def _run(request: Request, job: str, settings: Settings, notifier: Notifier, run_lock: RunLock) -> dict:
    jobs = BatchJobs(request.app.state.session_factory, settings, notifier, run_lock)
    result = await jobs.run(job)
    return result.as_dict()


@router.post("/complete")
async def complete_elapsed(
    request: Request,
    settings: Settings = Depends(get_settings),
    notifier: Notifier = Depends(get_notifier),
    run_lock: RunLock = Depends(get_run_lock),
):
    """Mark appointments past their end (plus grace) as COMPLETED."""
    return await _run(request, "complete", settings, notifier, run_lock)


@router.post("/reminders-24h")
async def reminders_24h(
    request: Request,
    settings: Settings = Depends(get_settings),
    notifier: Notifier = Depends(get_notifier),
    run_lock: RunLock = Depends(get_run_lock),
):
    return await _run(request, "reminders-24h", settings, notifier, run_lock)


@router.post("/thank-you")
async def thank_you(
    request: Request,
    settings: Settings = Depends(get_settings),
    notifier: Notifier = Depends(get_notifier),
    run_lock: RunLock = Depends(get_run_lock),
):
    return await _run(request, "thank-you", settings, notifier, run_lock)


@router.post("/rebook")
async def rebook(
    request: Request,
    settings: Settings = Depends(get_settings),
    notifier: Notifier = Depends(get_notifier),
    run_lock: RunLock = Depends(get_run_lock),
):
    return await _run(request, "rebook", settings, notifier, run_lock)
