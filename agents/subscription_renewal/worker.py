"""Local worker that renews due Graph subscriptions on an interval."""

from __future__ import annotations

import asyncio
import logging

from sms_assistant.core.config import get_settings
from sms_assistant.core.logging import configure_logging
from sms_assistant.dependencies import get_subscription_manager
from sms_assistant.services.subscriptions import RenewalReport, SubscriptionManager

logger = logging.getLogger(__name__)


class SubscriptionRenewalWorker:
    """Run a renewal pass, sleep, repeat."""

    def __init__(
        self,
        manager: SubscriptionManager,
        poll_interval_seconds: float = 900.0,
    ) -> None:
        self._manager = manager
        self._poll_interval = poll_interval_seconds

    async def run_once(self) -> RenewalReport:
        return await self._manager.renew_all_due()

    async def run_forever(self) -> None:
        while True:
            try:
                await self.run_once()
            except Exception:  # pragma: no cover - keep polling after a bad pass
                logger.exception("Subscription renewal pass failed")
            await asyncio.sleep(self._poll_interval)


async def main(poll_interval_seconds: float = 900.0) -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    worker = SubscriptionRenewalWorker(
        get_subscription_manager(), poll_interval_seconds=poll_interval_seconds
    )
    await worker.run_forever()


if __name__ == "__main__":  # pragma: no cover - manual execution path
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Subscription renewal worker stopped")
