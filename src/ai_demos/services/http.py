from __future__ import annotations

import asyncio
import logging
import random
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_ATTEMPTS = 2
DEFAULT_RETRY_DELAY = 0.5

# Transport failures that are safe to retry.
_RETRYABLE_ERRORS: tuple[type[Exception], ...] = (
    httpx.TimeoutException,
    httpx.ConnectError,
    httpx.RemoteProtocolError,
)


def _is_retryable_status(status_code: int) -> bool:
    return status_code >= 500


async def request_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    retry_delay: float = DEFAULT_RETRY_DELAY,
    **kwargs: Any,
) -> httpx.Response:
    """Send a request, retrying timeouts, connection failures and 5xx.

    Returns the first successful response. Raises the last transport error,
    or ``httpx.HTTPStatusError`` for an error status that survived every
    attempt (4xx responses are never retried).
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
    kwargs.setdefault("timeout", DEFAULT_TIMEOUT)

    for attempt in range(max_attempts):
        last_attempt = attempt == max_attempts - 1
        try:
            response = await client.request(method, url, **kwargs)
        except _RETRYABLE_ERRORS as exc:
            if last_attempt:
                raise
            logger.warning(
                "%s %s failed (%s), retrying", method, url, type(exc).__name__
            )
        else:
            if not _is_retryable_status(response.status_code) or last_attempt:
                response.raise_for_status()
                return response
            logger.warning(
                "%s %s returned %d, retrying", method, url, response.status_code
            )

        # Exponential backoff with a little jitter
        await asyncio.sleep(retry_delay * (2**attempt) + random.uniform(0, 0.1))

    raise AssertionError("unreachable")
