"""Billing domain exceptions."""

import functools

from voicemeter.core.exceptions import ExternalServiceError, InvalidStateError


class BillingNotAvailableError(InvalidStateError):
    """Billing was requested on an instance with no payment provider configured."""

    code = "billing_not_available"
    default_message = "Billing is not enabled for this instance"


class PaymentGatewayError(ExternalServiceError):
    """A payment provider failure, as seen from the billing domain."""

    code = "payment_gateway_error"

    def __init__(self, message: str = "Payment gateway error"):
        """Attribute the failure to the payment gateway."""
        super().__init__(service_name="PaymentGateway", message=message)


class PermanentBillingError(PaymentGatewayError):
    """A billing attempt failed in a way retrying cannot fix.

    Raised for an invalid customer reference or a rejected request. The
    period is left unbilled and surfaced in the sweep report.
    """

    code = "permanent_billing_error"

    def __init__(self, message: str = "Permanent billing failure"):
        super().__init__(message)


class MissingCustomerReferenceError(PermanentBillingError):
    """The tenant has no external customer reference to bill."""

    code = "missing_customer_reference"

    def __init__(self, tenant_id: object):
        self.tenant_id = tenant_id
        super().__init__(f"Tenant {tenant_id} has no external customer reference")


def wrap_gateway_errors(fn):
    """Re-raise adapter ``ExternalServiceError`` as ``PaymentGatewayError``."""

    @functools.wraps(fn)
    async def wrapper(*args, **kwargs):
        try:
            return await fn(*args, **kwargs)
        except PaymentGatewayError:
            raise
        except ExternalServiceError as e:
            raise PaymentGatewayError(message=e.message) from e

    return wrapper
