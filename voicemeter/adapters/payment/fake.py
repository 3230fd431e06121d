"""In-memory payment provider for billing tests.

Invoice items live in a dict keyed by idempotency key, so a replayed
creation returns the original item just as Stripe does. Failure modes
cover the cases the invoicer must survive: transient errors for the
first N attempts and a response lost after the item was created.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
from uuid import uuid4

from voicemeter.core.exceptions import ExternalServiceUnavailableError
from voicemeter.core.protocols.payment import PaymentGatewayProtocol


class FakePaymentGateway(PaymentGatewayProtocol):
    """PaymentGatewayProtocol double that records every call."""

    def __init__(
        self,
        should_raise: Optional[Exception] = None,
        fail_times: int = 0,
        fail_with: Optional[Exception] = None,
        lose_response: bool = False,
    ) -> None:
        """Arm the failure modes.

        Args:
            should_raise: Raise this from every call.
            fail_times: Fail the first N create_invoice_item calls with fail_with.
            fail_with: Exception used for the first fail_times creations.
            lose_response: Create the item but raise as if the response was lost.
        """
        self._should_raise = should_raise
        self._fail_times = fail_times
        self._fail_with = fail_with
        self._lose_response = lose_response
        self._calls: list[tuple[str, tuple, dict]] = []

        self.invoice_items: dict[str, _obj] = {}  # idempotency_key -> item
        self.events: dict[str, _obj] = {}  # signature -> event
        self.invoice_lines: dict[str, list[_obj]] = {}

    def _record(self, method: str, *args: Any, **kwargs: Any) -> None:
        self._calls.append((method, args, kwargs))
        if self._should_raise:
            raise self._should_raise

    # ---- Test helpers ----

    def call_count(self, method: str) -> int:
        """How often ``method`` was called."""
        return sum(1 for name, _, _ in self._calls if name == method)

    def calls_for(self, method: str) -> list[tuple[tuple, dict]]:
        """The (args, kwargs) of each call to ``method``, oldest first."""
        return [(a, k) for name, a, k in self._calls if name == method]

    def seed_invoice_item(self, *, customer_id: str, idempotency_key: str, amount: int) -> _obj:
        """Pretend a prior run already created an item under idempotency_key."""
        item = _obj(
            id=f"ii_{uuid4().hex[:14]}",
            customer=customer_id,
            amount=amount,
            metadata={"idempotency_key": idempotency_key},
        )
        self.invoice_items[idempotency_key] = item
        return item

    def seed_event(self, signature: str, event: Any) -> None:
        """Register the event returned for a given signature."""
        self.events[signature] = event

    def seed_invoice_lines(self, invoice_id: str, lines: list[Any]) -> None:
        """Register the full line list for an invoice."""
        self.invoice_lines[invoice_id] = lines

    def lose_next_response(self, value: bool = True) -> None:
        """Toggle the lost-response failure mode."""
        self._lose_response = value

    # ---- Invoice items ----

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
        """Create (or replay) an invoice item keyed by idempotency_key."""
        self._record(
            "create_invoice_item",
            customer_id=customer_id,
            amount=amount,
            currency=currency,
            idempotency_key=idempotency_key,
        )
        if self._fail_times > 0 and self._fail_with is not None:
            self._fail_times -= 1
            raise self._fail_with

        item = self.invoice_items.get(idempotency_key)
        if item is None:
            item_metadata = dict(metadata or {})
            item_metadata["idempotency_key"] = idempotency_key
            item = _obj(
                id=f"ii_{uuid4().hex[:14]}",
                customer=customer_id,
                amount=amount,
                currency=currency,
                description=description,
                metadata=item_metadata,
            )
            self.invoice_items[idempotency_key] = item

        if self._lose_response:
            self._lose_response = False
            raise ExternalServiceUnavailableError("Stripe", "response lost after item creation")
        return item

    async def find_invoice_item(self, *, customer_id: str, idempotency_key: str) -> Optional[Any]:
        """Look up an item by idempotency key."""
        self._record("find_invoice_item", customer_id=customer_id, idempotency_key=idempotency_key)
        item = self.invoice_items.get(idempotency_key)
        if item is not None and item.customer == customer_id:
            return item
        return None

    async def list_invoice_lines(self, invoice_id: str) -> List[Any]:
        """Return seeded invoice lines."""
        self._record("list_invoice_lines", invoice_id)
        return list(self.invoice_lines.get(invoice_id, []))

    # ---- Webhooks ----

    def verify_webhook_signature(self, payload: bytes, signature: str) -> Any:
        """Return the event seeded for this signature, else raise ValueError."""
        self._calls.append(("verify_webhook_signature", (payload, signature), {}))
        event = self.events.get(signature)
        if event is None:
            raise ValueError("Invalid signature")
        return event


class _obj:
    """Attribute bag shaped like a Stripe object."""

    def __init__(self, **kwargs: Any):
        for k, v in kwargs.items():
            setattr(self, k, v)

    def get(self, key: str, default: Any = None) -> Any:
        """Dict-style access, as Stripe objects allow."""
        return getattr(self, key, default)
