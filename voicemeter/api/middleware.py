"""HTTP middleware and exception handlers.

Every error body has the shape ``{"detail": <message>, "code": <code>}`` so
the calling subsystem can branch on ``code`` (for example
``metering_disabled`` vs ``usage_recording_failed``) instead of the text.
"""

import time
import uuid

from fastapi import Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from voicemeter.core.exceptions import (
    InvalidStateError,
    NotFoundException,
    VoiceMeterException,
    unpack_validation_error,
)
from voicemeter.core.logging import logger
from voicemeter.domains.billing.exceptions import PaymentGatewayError
from voicemeter.domains.metering.exceptions import (
    InvalidMeteringConfigError,
    InvalidUsageAmountError,
    MeteringDisabledError,
    UsageRecordingError,
)

REQUEST_ID_HEADER = "X-Request-ID"

# Most specific first: MeteringDisabledError is also an InvalidStateError.
STATUS_BY_EXCEPTION: tuple[tuple[type[VoiceMeterException], int], ...] = (
    (MeteringDisabledError, 403),
    (InvalidUsageAmountError, 422),
    (InvalidMeteringConfigError, 422),
    (UsageRecordingError, 503),
    (InvalidStateError, 409),
)


def _error(status_code: int, detail: str, code: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail, "code": code})


def _request_log(request: Request):
    return logger.with_context(
        request_id=getattr(request.state, "request_id", None),
        method=request.method,
        path=request.url.path,
    )


async def add_request_id(request: Request, call_next) -> Response:
    """Reuse the caller's request id or mint one, and echo it on the response."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


async def log_requests(request: Request, call_next) -> Response:
    """Log status and latency of every request."""
    started = time.monotonic()
    response = await call_next(request)
    elapsed_ms = (time.monotonic() - started) * 1000
    _request_log(request).info(f"{response.status_code} in {elapsed_ms:.1f}ms")
    return response


async def exception_logging_middleware(request: Request, call_next) -> Response:
    """Turn anything the handlers did not map into a logged 500."""
    try:
        return await call_next(request)
    except Exception as exc:
        _request_log(request).error(f"Unhandled {type(exc).__name__}: {exc}", exc_info=True)
        return _error(500, "Internal server error", "internal_error")


async def validation_exception_handler(
    request: Request, exc: RequestValidationError | ValidationError
) -> JSONResponse:
    """422 with one ``{"<field location>": "<message>"}`` entry per failing field."""
    body = unpack_validation_error(exc)
    _request_log(request).warning(f"Rejected invalid input: {body['errors']}")
    return JSONResponse(status_code=422, content=body)


async def not_found_exception_handler(request: Request, exc: NotFoundException) -> JSONResponse:
    """404 for any missing tenant-scoped record."""
    return _error(404, exc.message, exc.code)


async def payment_gateway_exception_handler(
    request: Request, exc: PaymentGatewayError
) -> JSONResponse:
    """502: the payment provider failed, not this service."""
    _request_log(request).error(f"Payment gateway error: {exc}")
    return _error(502, str(exc), exc.code)


async def voicemeter_exception_handler(
    request: Request, exc: VoiceMeterException
) -> JSONResponse:
    """Map the remaining domain errors through ``STATUS_BY_EXCEPTION`` (500 if unlisted).

    NotFoundException has its own handler, registered first.
    """
    status_code = next(
        (status for exc_type, status in STATUS_BY_EXCEPTION if isinstance(exc, exc_type)), 500
    )
    if status_code >= 500:
        _request_log(request).error(f"{type(exc).__name__}: {exc.message}")
    return _error(status_code, exc.message, exc.code)
