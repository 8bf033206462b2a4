"""HTTP utilities mapping upstream failures to typed errors, with retry/backoff."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

import httpx

from sms_assistant.core.errors import TransientUpstreamError, UpstreamRejectedError

logger = logging.getLogger(__name__)

_TRANSIENT_STATUSES = frozenset({408, 425, 429})


class RetryConfig:
    def __init__(self, *, attempts: int = 3, backoff_seconds: float = 1.0) -> None:
        self.attempts = attempts
        self.backoff_seconds = backoff_seconds


NO_RETRY = RetryConfig(attempts=1)


def is_transient_status(status_code: int) -> bool:
    return status_code >= 500 or status_code in _TRANSIENT_STATUSES


def raise_for_upstream(response: httpx.Response, operation: str) -> httpx.Response:
    """Return the response when 2xx, otherwise raise the matching typed error."""
    if response.is_success:
        return response
    error_cls = (
        TransientUpstreamError
        if is_transient_status(response.status_code)
        else UpstreamRejectedError
    )
    raise error_cls(operation, status_code=response.status_code, body=response.text)


async def send_with_retry(
    func: Callable[..., Awaitable[httpx.Response]],
    *args,
    operation: str,
    retry_config: RetryConfig | None = None,
    **kwargs,
) -> httpx.Response:
    """Issue a request, retrying only failures classified as transient.

    Only idempotent calls should pass a retry config with more than one
    attempt; side-effecting calls use ``NO_RETRY``.
    """
    config = retry_config or RetryConfig()
    attempt = 0
    last_exception: TransientUpstreamError | None = None

    while attempt < config.attempts:
        try:
            response = await func(*args, **kwargs)
        except httpx.HTTPError as exc:
            last_exception = TransientUpstreamError(operation, body=str(exc))
        else:
            try:
                return raise_for_upstream(response, operation)
            except TransientUpstreamError as exc:
                last_exception = exc
        attempt += 1
        if attempt >= config.attempts:
            break
        logger.warning(
            "%s failed transiently (attempt %d/%d); retrying.",
            operation,
            attempt,
            config.attempts,
        )
        await asyncio.sleep(config.backoff_seconds * attempt)

    if last_exception is not None:
        raise last_exception
    raise RuntimeError("Request failed without raising an exception")


__all__ = [
    "NO_RETRY",
    "RetryConfig",
    "is_transient_status",
    "raise_for_upstream",
    "send_with_retry",
]
