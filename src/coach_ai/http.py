"""
POST with a hard timeout, a small retry budget and caller-driven cancellation.

Each attempt races the request against the timeout and the optional abort
event; whichever finishes first decides the outcome and the loser is
cancelled.
"""
import asyncio
from typing import Any, Optional

import httpx
from loguru import logger

from .config import DEFAULT_RETRY_STATUSES


class RequestAborted(Exception):
    """The caller's abort event fired before the response arrived."""


class FetchTimeout(Exception):
    """No response within the per-attempt timeout."""


async def _post_once(
    client: httpx.AsyncClient,
    url: str,
    json: Any,
    headers: Optional[dict],
    timeout: float,
    abort: Optional[asyncio.Event],
) -> httpx.Response:
    # httpx timeouts off: the asyncio.wait below is the only clock
    request = asyncio.ensure_future(client.post(url, json=json, headers=headers, timeout=None))
    waiters = {request}
    abort_waiter = None
    if abort is not None:
        abort_waiter = asyncio.ensure_future(abort.wait())
        waiters.add(abort_waiter)

    try:
        done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    finally:
        if abort_waiter is not None:
            abort_waiter.cancel()
        if not request.done():
            request.cancel()
            await asyncio.gather(request, return_exceptions=True)

    if request in done:
        return request.result()
    if abort_waiter is not None and abort_waiter in done:
        raise RequestAborted("Request aborted by caller")
    raise FetchTimeout(f"No response within {timeout}s")


async def fetch_with_timeout(
    client: httpx.AsyncClient,
    url: str,
    *,
    json: Any = None,
    headers: Optional[dict] = None,
    timeout: float = 12.0,
    retries: int = 1,
    retry_statuses: tuple = DEFAULT_RETRY_STATUSES,
    backoff: float = 0.0,
    abort: Optional[asyncio.Event] = None,
) -> httpx.Response:
    """
    POST `json` to `url` and return the response.

    A response with a status in `retry_statuses` is retried while attempts
    remain; after the last attempt it is returned as is. Transport errors and
    timeouts are retried the same way and re-raised on the last attempt.
    An abort is never retried.

    Raises:
        RequestAborted: abort was set before or during an attempt
        FetchTimeout: the last attempt timed out
        httpx.TransportError: the last attempt failed at the transport level
    """
    attempts = max(0, retries) + 1
    for attempt in range(attempts):
        if abort is not None and abort.is_set():
            raise RequestAborted("Request aborted by caller")
        if attempt and backoff:
            await asyncio.sleep(backoff * attempt)

        last = attempt == attempts - 1
        try:
            response = await _post_once(client, url, json, headers, timeout, abort)
        except (FetchTimeout, httpx.TransportError) as e:
            if last:
                raise
            logger.warning(f"Attempt {attempt + 1}/{attempts} failed ({type(e).__name__}), retrying")
            continue

        if response.status_code in retry_statuses and not last:
            logger.warning(f"Attempt {attempt + 1}/{attempts} got HTTP {response.status_code}, retrying")
            continue
        return response

    raise RuntimeError("unreachable")
