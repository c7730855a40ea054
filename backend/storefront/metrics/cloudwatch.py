"""CloudWatch business metrics for checkouts and recorded purchases.

Emission is fire-and-forget: failures are logged via structlog and never
raised to the caller. boto3 is synchronous, so calls run on a small thread
pool instead of the event loop.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime

import boto3
import structlog

from storefront.core.config import get_settings

logger = structlog.get_logger(__name__)

NAMESPACE = "Storefront/Business"

_cw_client = None
_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="cw-metrics")


def _get_client():
    global _cw_client
    if _cw_client is None:
        _cw_client = boto3.client("cloudwatch", region_name=get_settings().metrics_region)
    return _cw_client


def _put_business_event(event_name: str, user_id: str | None = None, count: int = 1) -> None:
    """Synchronous put_metric_data for business events. Runs in thread pool."""
    dimensions = [{"Name": "Event", "Value": event_name}]
    if user_id:
        dimensions.append({"Name": "UserId", "Value": user_id})
    try:
        _get_client().put_metric_data(
            Namespace=NAMESPACE,
            MetricData=[{
                "MetricName": "EventCount",
                "Dimensions": dimensions,
                "Value": float(count),
                "Unit": "Count",
                "Timestamp": datetime.now(UTC),
            }],
        )
    except Exception as e:
        logger.warning("business_event_emit_failed", error=str(e), event=event_name)


async def emit_business_event(event_name: str, user_id: str | None = None, count: int = 1) -> None:
    """Emit a business event metric when metrics are enabled. Non-blocking."""
    if not get_settings().metrics_enabled:
        return
    loop = asyncio.get_running_loop()
    loop.run_in_executor(_executor, _put_business_event, event_name, user_id, count)
