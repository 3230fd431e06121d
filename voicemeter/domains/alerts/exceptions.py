"""Alert domain exceptions."""

from voicemeter.core.exceptions import ExternalServiceError, NotFoundException


class AlertNotFoundError(NotFoundException):
    """No alert with that id belongs to the tenant."""

    code = "alert_not_found"
    default_message = "Alert not found"


class AlertDeliveryError(ExternalServiceError):
    """A delivery channel failed to send an alert."""

    code = "alert_delivery_failed"

    def __init__(self, channel: str, message: str = "Alert delivery failed"):
        """Record the failing channel name."""
        self.channel = channel
        super().__init__(service_name=f"AlertChannel[{channel}]", message=message)
