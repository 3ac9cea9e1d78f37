"""Error taxonomy shared by the scheduling core and the HTTP layer.

Every error carries the HTTP status and a short machine code so the API can
render it without knowing which service raised it. Conflicts and capacity
limits are distinct classes so callers can tell "pick another time" apart from
"upgrade your plan".
"""

from __future__ import annotations

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class SchedulingError(Exception):
    status_code: int = 400
    code: str = "error"

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.code)
        self.detail = detail or self.code


class ValidationFailed(SchedulingError):
    status_code = 400
    code = "validation"


class NotAuthenticated(SchedulingError):
    status_code = 401
    code = "unauthenticated"


class NotAuthorized(SchedulingError):
    status_code = 403
    code = "forbidden"


class NotFound(SchedulingError):
    status_code = 404
    code = "not_found"


class BookingConflict(SchedulingError):
    status_code = 409
    code = "conflict"


class CapacityExceeded(SchedulingError):
    status_code = 402
    code = "capacity"


class ZoneNotFound(SchedulingError):
    status_code = 500
    code = "configuration"


async def scheduling_error_handler(request: Request, exc: SchedulingError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "detail": exc.detail},
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed query or body values render like any other ValidationFailed."""
    fields = sorted(
        {".".join(str(part) for part in err["loc"][1:]) for err in exc.errors()} - {""}
    )
    detail = f"Invalid value for: {', '.join(fields)}" if fields else "Invalid request"
    return await scheduling_error_handler(request, ValidationFailed(detail))
