"""Tests for CloudWatch business metrics emission."""

from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock, patch

import pytest

from storefront.metrics import cloudwatch

pytestmark = pytest.mark.unit


def test_put_business_event_builds_metric():
    client = MagicMock()
    with patch.object(cloudwatch, "_get_client", return_value=client):
        cloudwatch._put_business_event("purchase_recorded", user_id="buyer-1", count=2)

    kwargs = client.put_metric_data.call_args.kwargs
    assert kwargs["Namespace"] == "Storefront/Business"
    [datum] = kwargs["MetricData"]
    assert datum["MetricName"] == "EventCount"
    assert datum["Value"] == 2.0
    assert {"Name": "Event", "Value": "purchase_recorded"} in datum["Dimensions"]
    assert {"Name": "UserId", "Value": "buyer-1"} in datum["Dimensions"]


def test_put_business_event_swallows_client_errors():
    client = MagicMock()
    client.put_metric_data.side_effect = RuntimeError("throttled")
    with patch.object(cloudwatch, "_get_client", return_value=client):
        cloudwatch._put_business_event("checkout_created")


async def test_emit_is_noop_when_disabled():
    with (
        patch.object(cloudwatch, "get_settings", return_value=MagicMock(metrics_enabled=False)),
        patch.object(cloudwatch, "_put_business_event") as put,
    ):
        await cloudwatch.emit_business_event("checkout_created")

    put.assert_not_called()


async def test_emit_runs_off_the_event_loop_when_enabled():
    executor = ThreadPoolExecutor(max_workers=1)
    with (
        patch.object(cloudwatch, "get_settings", return_value=MagicMock(metrics_enabled=True)),
        patch.object(cloudwatch, "_executor", executor),
        patch.object(cloudwatch, "_put_business_event") as put,
    ):
        await cloudwatch.emit_business_event("checkout_created", user_id="buyer-1")
        executor.shutdown(wait=True)

    put.assert_called_once_with("checkout_created", "buyer-1", 1)
