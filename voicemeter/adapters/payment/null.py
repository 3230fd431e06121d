"""Null payment gateway for when Stripe is disabled.

Satisfies PaymentGatewayProtocol so the container can always be fully
constructed. Lookups return empty defaults; creating a charge raises
BillingNotAvailableError. verify_webhook_signature raises ValueError,
matching the Stripe adapter's contract for invalid signatures.
"""

from typing import Any, Dict, List, Optional

from voicemeter.core.protocols.payment import PaymentGatewayProtocol
from voicemeter.domains.billing.exceptions import BillingNotAvailableError


class NullPaymentGateway(PaymentGatewayProtocol):
    """No-op payment gateway used when Stripe is disabled."""

    async def find_invoice_item(self, *, customer_id: str, idempotency_key: str) -> Optional[Any]:
        """Return None: nothing has ever been billed."""
        return None

    async def list_invoice_lines(self, invoice_id: str) -> List[Any]:
        """Return an empty list."""
        return []

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
        """Raise: charges need a real payment provider."""
        raise BillingNotAvailableError()

    def verify_webhook_signature(self, payload: bytes, signature: str) -> Any:
        """Raise ValueError: webhooks cannot be verified without a provider."""
        raise ValueError("Billing is not enabled; cannot verify webhook signature")
