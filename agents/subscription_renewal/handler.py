"""
AWS Lambda entrypoint for renewing Graph subscriptions on a schedule.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from functools import lru_cache
from typing import Any, Dict, Optional

from sms_assistant.core.config import get_settings
from sms_assistant.core.logging import configure_logging
from sms_assistant.dependencies import get_subscription_manager
from sms_assistant.services.subscriptions import RenewalReport, SubscriptionManager

logger = logging.getLogger(__name__)


@lru_cache()
def _bootstrap() -> SubscriptionManager:
    """Initialize shared singletons once per Lambda container."""
    settings = get_settings()
    configure_logging(settings.log_level)
    return get_subscription_manager()


async def run_renewal(
    manager: SubscriptionManager, window_minutes: Optional[int] = None
) -> RenewalReport:
    window = timedelta(minutes=window_minutes) if window_minutes else None
    return await manager.renew_all_due(window)


def _window_from_event(event: Dict[str, Any]) -> Optional[int]:
    detail = event.get("detail") or {}
    raw = event.get("window_minutes", detail.get("window_minutes"))
    if raw is None:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid window_minutes in event: %r", raw)
        return None


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    AWS Lambda handler invoked by an EventBridge schedule.

    An optional ``window_minutes`` (top level or under ``detail``) overrides
    the configured renewal window.
    """
    manager = _bootstrap()
    report = asyncio.run(run_renewal(manager, _window_from_event(event or {})))
    return {
        "statusCode": 200,
        "renewed": report.renewed_ids,
        "failed": report.failed,
    }


__all__ = ["lambda_handler", "run_renewal"]
