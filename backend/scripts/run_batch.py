from __future__ import annotations

import argparse
import asyncio
import json
import logging

from agenda.core.config import get_settings
from agenda.core.database import create_engine_from_settings, create_session_factory
from agenda.integrations.twilio_client import TwilioClient
from agenda.services.batch_jobs import JOB_NAMES, BatchJobs
from agenda.services.delivery_ledger import DeliveryLedger
from agenda.services.notifications import Notifier


async def run_job(job: str) -> dict:
    settings = get_settings()
    engine = create_engine_from_settings(settings)
    session_factory = create_session_factory(engine)
    notifier = Notifier(session_factory, DeliveryLedger(session_factory), TwilioClient.from_settings(settings))
    try:
        result = await BatchJobs(session_factory, settings, notifier).run(job)
        await notifier.drain()
        return result.as_dict()
    finally:
        await engine.dispose()


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run one periodic batch job against the DB.")
    parser.add_argument("job", choices=JOB_NAMES, help="Job to run")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    logging.basicConfig(
        level=getattr(logging, get_settings().log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    print(json.dumps(asyncio.run(run_job(args.job)), indent=2))


if __name__ == "__main__":
    main()
