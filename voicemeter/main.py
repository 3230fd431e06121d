"""ASGI entry point: ``uvicorn voicemeter.main:app``.

Wires the versioned router, the request middleware and the handlers that
turn domain errors into ``{"detail", "code"}`` responses.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError

from voicemeter.api import middleware
from voicemeter.api.v1.api import api_router
from voicemeter.core.config import settings
from voicemeter.core.exceptions import NotFoundException, VoiceMeterException
from voicemeter.core.logging import logger
from voicemeter.domains.billing.exceptions import PaymentGatewayError


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the container before serving; dispose of the engine on shutdown."""
    from voicemeter.core.container import initialize_container, reset_container
    from voicemeter.db.session import async_engine

    initialize_container(settings)
    logger.with_context(environment=settings.ENVIRONMENT.value).info(
        f"{settings.PROJECT_NAME} started (stripe_enabled={settings.STRIPE_ENABLED})"
    )
    try:
        yield
    finally:
        reset_container()
        await async_engine.dispose()


app = FastAPI(title=settings.PROJECT_NAME, openapi_url="/openapi.json", lifespan=lifespan)
app.include_router(api_router, prefix=settings.API_V1_STR)

# Innermost first: add_request_id wraps everything so the id is set before logging.
for http_middleware in (
    middleware.exception_logging_middleware,
    middleware.log_requests,
    middleware.add_request_id,
):
    app.middleware("http")(http_middleware)

# Starlette picks the handler of the nearest class in the MRO, so the
# specific handlers win over the VoiceMeterException catch-all.
app.add_exception_handler(RequestValidationError, middleware.validation_exception_handler)
app.add_exception_handler(ValidationError, middleware.validation_exception_handler)
app.add_exception_handler(NotFoundException, middleware.not_found_exception_handler)
app.add_exception_handler(PaymentGatewayError, middleware.payment_gateway_exception_handler)
app.add_exception_handler(VoiceMeterException, middleware.voicemeter_exception_handler)
