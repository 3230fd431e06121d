"""The container: one frozen record of every service the API can inject.

Fields are typed by protocol, so ``api.deps.Inject`` can look an
implementation up by the protocol an endpoint asks for. Building the
services is ``factory.create_container``'s job.
"""

from dataclasses import dataclass, replace
from typing import Any

from voicemeter.core.protocols import EventBus, PaymentGatewayProtocol
from voicemeter.domains.alerts.protocols import AlertDispatcherProtocol, AlertServiceProtocol
from voicemeter.domains.billing.protocols import BillingWebhookProtocol, OverageInvoicerProtocol
from voicemeter.domains.metering.protocols import (
    MeteringConfigServiceProtocol,
    MeteringGateProtocol,
    MeteringQueryServiceProtocol,
    PeriodSynchronizerProtocol,
    UsageRecorderProtocol,
)


@dataclass(frozen=True)
class Container:
    """Protocol-typed services shared by all requests.

    Tests build one directly over fakes and swap single services with
    ``replace``.
    """

    event_bus: EventBus
    payment_gateway: PaymentGatewayProtocol

    # metering
    metering_config: MeteringConfigServiceProtocol
    metering_gate: MeteringGateProtocol
    usage_recorder: UsageRecorderProtocol
    period_sync: PeriodSynchronizerProtocol
    metering_queries: MeteringQueryServiceProtocol

    # alerts
    alert_dispatcher: AlertDispatcherProtocol
    alert_service: AlertServiceProtocol

    # billing
    overage_invoicer: OverageInvoicerProtocol
    billing_webhook: BillingWebhookProtocol

    def replace(self, **changes: Any) -> "Container":
        """Copy with the named services swapped, e.g. ``replace(payment_gateway=fake)``."""
        return replace(self, **changes)
