"""Core protocols for dependency injection.

Domain-specific protocols (repositories, services) live in their
respective domains/ directories. This module keeps cross-cutting
infrastructure protocols only.
"""

from voicemeter.core.protocols.event_bus import DomainEvent, EventBus, EventHandler, EventSubscriber
from voicemeter.core.protocols.notifications import AlertChannel, AlertNotification
from voicemeter.core.protocols.payment import PaymentGatewayProtocol

__all__ = [
    "AlertChannel",
    "AlertNotification",
    "DomainEvent",
    "EventBus",
    "EventHandler",
    "EventSubscriber",
    "PaymentGatewayProtocol",
]
