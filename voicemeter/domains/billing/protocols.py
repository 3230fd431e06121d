"""Billing domain service protocols.

OverageInvoicerProtocol: scheduled sweep that bills closed overage periods.
BillingWebhookProtocol: verify and route payment-provider callbacks.
"""

from datetime import datetime
from typing import Any, Optional, Protocol, runtime_checkable

from voicemeter.schemas.billing import SweepReport


@runtime_checkable
class OverageInvoicerProtocol(Protocol):
    """Creates exactly one provider line item per billable period."""

    async def run_billing_sweep(self, now: Optional[datetime] = None) -> SweepReport:
        """Bill every closed, unbilled ``charge`` period with overage.

        One tenant's failure never stops the sweep; failures land in the report.
        """
        ...


@runtime_checkable
class BillingWebhookProtocol(Protocol):
    """Payment-provider webhook consumer."""

    async def process_webhook(self, payload: bytes, signature: str) -> None:
        """Verify the signature and process the event.

        Raises:
            ValueError: The signature is invalid.
        """
        ...

    async def process_event(self, event: Any) -> None:
        """Process an already verified event."""
        ...
