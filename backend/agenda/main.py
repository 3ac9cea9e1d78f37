# agenda/main.py
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agenda.api.v1 import appointments, availability, cron, sms
from agenda.core.config import Settings, get_settings
from agenda.core.database import create_engine_from_settings, create_session_factory
from agenda.core.errors import (
    SchedulingError,
    request_validation_handler,
    scheduling_error_handler,
)
from agenda.core.rate_limit import RateLimiter
from agenda.integrations.twilio_client import TwilioClient
from agenda.services.delivery_ledger import DeliveryLedger
from agenda.services.notifications import Notifier
from agenda.services.run_lock import RunLock

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    twilio: Optional[TwilioClient] = None,
) -> FastAPI:
    """Build the API. Tests pass their own settings, session factory and Twilio client."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cfg = settings or get_settings()
        logging.basicConfig(
            level=getattr(logging, cfg.log_level, logging.INFO),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

        engine = None
        factory = session_factory
        if factory is None:
            engine = create_engine_from_settings(cfg)
            factory = create_session_factory(engine)

        ledger = DeliveryLedger(factory)
        app.state.settings = cfg
        app.state.session_factory = factory
        app.state.rate_limiter = RateLimiter()
        app.state.ledger = ledger
        app.state.notifier = Notifier(factory, ledger, twilio or TwilioClient.from_settings(cfg))
        app.state.run_lock = RunLock(factory)
        logger.info(f"🚀 Agenda API started (timezone={cfg.default_timezone})")

        try:
            yield
        finally:
            await app.state.notifier.drain()
            if engine is not None:
                await engine.dispose()
            logger.info("👋 Agenda API stopped")

    app = FastAPI(
        title="Agenda API",
        description="Appointment scheduling with SMS confirmations",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Restrict in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(SchedulingError, scheduling_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    # Include routers
    app.include_router(availability.router, prefix="/api/v1")
    app.include_router(appointments.router, prefix="/api/v1")
    app.include_router(sms.router, prefix="/sms", tags=["sms"])
    app.include_router(cron.router, prefix="/cron")

    @app.get("/health")
    async def health():
        """Health check endpoint"""
        return {"status": "healthy"}

    return app


app = create_app()
