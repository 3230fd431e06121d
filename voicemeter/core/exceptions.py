"""Error taxonomy shared by every domain.

Each exception carries a stable ``code`` that the API returns next to the
human message, so callers can tell a denied feature from a reached limit
or a temporary failure without parsing text.
"""

from typing import Optional

from pydantic import ValidationError


class VoiceMeterException(Exception):
    """Root of the errors the API maps to a response.

    Attributes:
    ----------
        code (str): Machine-readable error code, constant per class.
        message (str): Human-readable description.

    """

    code: str = "voicemeter_error"
    default_message: str = "Metering request failed"

    def __init__(self, message: Optional[str] = None):
        """Store the message, falling back to the class default."""
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFoundException(VoiceMeterException):
    """A tenant-scoped record does not exist."""

    code = "not_found"
    default_message = "Object not found"


class InvalidStateError(VoiceMeterException):
    """The operation is not valid for the tenant's current metering lifecycle state."""

    code = "invalid_state"
    default_message = "Object is in an invalid state"


class ExternalServiceError(Exception):
    """A call to a third-party service failed permanently.

    Kept outside ``VoiceMeterException``: domains wrap it at their boundary
    (see ``PaymentGatewayError``) rather than letting it reach the API raw.

    Args:
    ----
        service_name (str): The failing service, e.g. ``"Stripe"``.
        message (str, optional): What went wrong.

    """

    code: str = "external_service_error"

    def __init__(self, service_name: str, message: Optional[str] = "External service failed"):
        """Record the service and message."""
        self.service_name = service_name
        self.message = message
        super().__init__(f"{service_name}: {message}")


class ExternalServiceUnavailableError(ExternalServiceError):
    """Transient failure: network error, timeout, 5xx or rate limit. Safe to retry."""

    code = "external_service_unavailable"


def unpack_validation_error(exc: ValidationError) -> dict:
    """Flatten a pydantic validation error for a 422 body.

    Returns:
    -------
        dict: ``{"code": "validation_error", "errors": [{"<loc>": "<msg>"}, ...]}``
            where ``<loc>`` is the dotted field location.

    """
    return {
        "code": "validation_error",
        "errors": [
            {".".join(str(part) for part in error["loc"]): error["msg"]}
            for error in exc.errors()
        ],
    }
