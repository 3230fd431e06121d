"""Stripe implementation of PaymentGatewayProtocol.

Uses the async variants of the Stripe SDK resources. Stripe errors are
translated at this boundary: connection failures, rate limits and 5xx
responses become ExternalServiceUnavailableError (retryable); everything
else becomes ExternalServiceError (permanent).
"""

import functools
from typing import Any, Dict, List, Optional

import stripe

from voicemeter.core.exceptions import ExternalServiceError, ExternalServiceUnavailableError
from voicemeter.core.protocols.payment import PaymentGatewayProtocol

_SERVICE = "Stripe"
_PAGE_SIZE = 100


def _translate_stripe_errors(fn):
    """Map Stripe SDK exceptions onto the core external-service taxonomy."""

    @functools.wraps(fn)
    async def wrapper(*args, **kwargs):
        try:
            return await fn(*args, **kwargs)
        except (stripe.APIConnectionError, stripe.RateLimitError) as e:
            raise ExternalServiceUnavailableError(_SERVICE, str(e)) from e
        except stripe.StripeError as e:
            status = getattr(e, "http_status", None)
            if isinstance(e, stripe.APIError) or (status is not None and status >= 500):
                raise ExternalServiceUnavailableError(_SERVICE, str(e)) from e
            raise ExternalServiceError(_SERVICE, str(e)) from e

    return wrapper


class StripePaymentGateway(PaymentGatewayProtocol):
    """Payment gateway backed by the Stripe API."""

    def __init__(self, api_key: str, webhook_secret: Optional[str] = None) -> None:
        """Configure the SDK with the secret key."""
        stripe.api_key = api_key
        self._webhook_secret = webhook_secret

    @_translate_stripe_errors
    async def create_invoice_item(
        self,
        *,
        customer_id: str,
        amount: int,
        currency: str,
        description: str,
        idempotency_key: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> Any:
        """Create a pending invoice item.

        The idempotency key is sent both as the request option (Stripe
        dedupes retries for 24h) and in metadata, so older attempts can be
        found with ``find_invoice_item``.
        """
        item_metadata = dict(metadata or {})
        item_metadata["idempotency_key"] = idempotency_key
        return await stripe.InvoiceItem.create_async(
            customer=customer_id,
            amount=amount,
            currency=currency,
            description=description,
            metadata=item_metadata,
            idempotency_key=idempotency_key,
        )

    @_translate_stripe_errors
    async def find_invoice_item(self, *, customer_id: str, idempotency_key: str) -> Optional[Any]:
        """Scan the customer's invoice items for one tagged with idempotency_key."""
        starting_after: Optional[str] = None
        while True:
            params: Dict[str, Any] = {"customer": customer_id, "limit": _PAGE_SIZE}
            if starting_after:
                params["starting_after"] = starting_after
            page = await stripe.InvoiceItem.list_async(**params)
            for item in page.data:
                if (item.metadata or {}).get("idempotency_key") == idempotency_key:
                    return item
            if not page.has_more or not page.data:
                return None
            starting_after = page.data[-1].id

    @_translate_stripe_errors
    async def list_invoice_lines(self, invoice_id: str) -> List[Any]:
        """Return all lines of an invoice, following pagination."""
        lines: List[Any] = []
        starting_after: Optional[str] = None
        while True:
            params: Dict[str, Any] = {"limit": _PAGE_SIZE}
            if starting_after:
                params["starting_after"] = starting_after
            page = await stripe.Invoice.list_lines_async(invoice_id, **params)
            lines.extend(page.data)
            if not page.has_more or not page.data:
                return lines
            starting_after = page.data[-1].id

    def verify_webhook_signature(self, payload: bytes, signature: str) -> Any:
        """Verify and construct webhook event from payload and signature.

        Raises ValueError for a bad signature or unparsable payload.
        """
        if not self._webhook_secret:
            raise ValueError("Stripe webhook secret is not configured")
        try:
            return stripe.Webhook.construct_event(payload, signature, self._webhook_secret)
        except stripe.SignatureVerificationError as e:
            raise ValueError(f"Invalid Stripe signature: {e}") from e
