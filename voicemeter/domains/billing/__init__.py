"""Overage billing: invoice sweep, retry policy and payment-provider webhooks."""
