"""Tests for billing helpers."""

from datetime import datetime, timezone
from uuid import UUID

import pytest

from voicemeter.adapters.payment.fake import _obj
from voicemeter.domains.billing.types import (
    SubscriptionAction,
    billing_idempotency_key,
    classify_subscription_update,
    from_unix,
    is_metered_subscription,
    overage_description,
)

TENANT = UUID("00000000-0000-0000-0000-000000000001")
PERIOD = UUID("00000000-0000-0000-0000-0000000000ff")


def test_idempotency_key_is_stable_per_period():
    assert billing_idempotency_key(TENANT, PERIOD) == f"overage-{TENANT}-{PERIOD}"
    assert billing_idempotency_key(TENANT, PERIOD) == billing_idempotency_key(TENANT, PERIOD)


def test_description_names_minutes_and_period():
    text = overage_description(
        20,
        datetime(2026, 1, 1, tzinfo=timezone.utc),
        datetime(2026, 2, 1, tzinfo=timezone.utc),
    )
    assert text == "Voice minutes overage: 20 min (2026-01-01 to 2026-02-01)"


def test_from_unix_is_utc_aware():
    assert from_unix(1767225600) == datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert from_unix(None) is None


class TestMeteredSubscription:
    @pytest.mark.parametrize(
        "plan,status,expected",
        [
            ("growth", "active", True),
            ("growth", "trialing", True),
            ("starter", "active", False),
            (None, "active", False),
            ("growth", "canceled", False),
            ("growth", "unpaid", False),
        ],
    )
    def test_plan_and_status(self, plan, status, expected):
        sub = _obj(status=status, metadata={"plan": plan} if plan else {})
        assert is_metered_subscription(sub, ["growth"]) is expected


class TestClassifyUpdate:
    @pytest.mark.parametrize(
        "is_metered,is_active,period_moved,expected",
        [
            (True, False, False, SubscriptionAction.ENABLE),
            (True, False, True, SubscriptionAction.ENABLE),
            (False, True, False, SubscriptionAction.DISABLE),
            (False, True, True, SubscriptionAction.DISABLE),
            (True, True, True, SubscriptionAction.ROLLOVER),
            (True, True, False, SubscriptionAction.NONE),
            (False, False, True, SubscriptionAction.NONE),
        ],
    )
    def test_actions(self, is_metered, is_active, period_moved, expected):
        assert (
            classify_subscription_update(
                is_metered=is_metered, is_active=is_active, period_moved=period_moved
            )
            == expected
        )
