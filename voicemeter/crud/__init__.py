"""CRUD singletons for the voicemeter service."""

from voicemeter.crud.crud_metering_config import metering_config
from voicemeter.crud.crud_usage_alert import usage_alert
from voicemeter.crud.crud_usage_period import usage_period
from voicemeter.crud.crud_usage_transaction import usage_transaction

__all__ = ["metering_config", "usage_alert", "usage_period", "usage_transaction"]
