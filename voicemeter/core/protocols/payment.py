"""Payment gateway protocol.

Cross-cutting infrastructure protocol for the external payment processor.
Direct consumers: OverageInvoicer and BillingWebhookProcessor.
"""

from typing import Any, Dict, List, Optional, Protocol, runtime_checkable


@runtime_checkable
class PaymentGatewayProtocol(Protocol):
    """Protocol for the payment processor operations metering needs.

    Transient provider failures surface as ExternalServiceUnavailableError,
    permanent ones as ExternalServiceError.
    """

    # -------------------------------------------------------------------------
    # Invoice items
    # -------------------------------------------------------------------------

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
        """Create a pending invoice item, deduplicated by idempotency_key."""
        ...

    async def find_invoice_item(self, *, customer_id: str, idempotency_key: str) -> Optional[Any]:
        """Return an existing invoice item created under idempotency_key, if any."""
        ...

    async def list_invoice_lines(self, invoice_id: str) -> List[Any]:
        """Return every line of an invoice (following pagination)."""
        ...

    # -------------------------------------------------------------------------
    # Webhook operations
    # -------------------------------------------------------------------------

    def verify_webhook_signature(self, payload: bytes, signature: str) -> Any:
        """Verify and construct webhook event from payload and signature.

        Raises ValueError when the signature does not match.
        """
        ...
