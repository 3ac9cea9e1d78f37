"""Shared FastAPI dependencies: app-scoped services, operator auth, cron secret, rate limit."""

from __future__ import annotations

import hashlib
import hmac
import logging

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from agenda.core.config import Settings
from agenda.core.database import get_db
from agenda.core.errors import NotAuthenticated
from agenda.core.rate_limit import RateLimiter
from agenda.models import Operator
from agenda.services.db_service import DBService
from agenda.services.delivery_ledger import DeliveryLedger
from agenda.services.notifications import Notifier
from agenda.services.run_lock import RunLock

logger = logging.getLogger(__name__)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


def get_ledger(request: Request) -> DeliveryLedger:
    return request.app.state.ledger


def get_run_lock(request: Request) -> RunLock:
    return request.app.state.run_lock


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def rate_limited(request: Request) -> None:
    """429 once a client IP exceeds RATE_LIMIT_PER_MINUTE."""
    limiter: RateLimiter = request.app.state.rate_limiter
    limit = request.app.state.settings.rate_limit_per_minute
    allowed, retry_after = limiter.check(f"ip:{client_ip(request)}", limit, 60)
    if not allowed:
        raise HTTPException(
            status_code=429,
            detail={
                "message": f"Rate limit exceeded. Maximum {limit} requests per minute.",
                "retry_after": retry_after,
            },
            headers={"Retry-After": str(retry_after)},
        )


async def get_current_operator(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Operator:
    header = request.headers.get("authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise NotAuthenticated("Missing bearer token")

    operator = await DBService(db).get_operator_by_token_hash(hash_token(token.strip()))
    if operator is None:
        raise NotAuthenticated("Invalid token")
    return operator


async def require_cron_secret(request: Request) -> None:
    """Batch endpoints need the x-cron-secret header; with no secret configured, nothing passes."""
    expected = request.app.state.settings.cron_secret
    provided = request.headers.get("x-cron-secret") or ""
    if not expected or not hmac.compare_digest(provided.encode(), expected.encode()):
        logger.warning(f"🔒 Rejected batch call from {client_ip(request)}")
        raise NotAuthenticated("Invalid cron secret")
