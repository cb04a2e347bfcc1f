from __future__ import annotations

import errno
import logging
import socket
from typing import Awaitable, Callable, TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ..errors import ParsingError

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_CODES = frozenset({"ECONNRESET", "ETIMEDOUT", "ENOTFOUND", "EAI_AGAIN"})
TRANSIENT_ERRNOS = frozenset({errno.ECONNRESET, errno.ETIMEDOUT})
TRANSIENT_PHRASES = ("rate limit", "timeout", "overloaded")


def _status_of(exc: BaseException) -> int | None:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    for attr in ("status_code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


def _is_transient_network_error(exc: BaseException) -> bool:
    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError, socket.gaierror, TimeoutError)):
        return True
    if isinstance(exc, OSError) and exc.errno in TRANSIENT_ERRNOS:
        return True
    code = getattr(exc, "code", None)
    return isinstance(code, str) and code.upper() in TRANSIENT_CODES


def is_retryable_error(exc: BaseException | None) -> bool:
    """Classify an error raised by a completion backend as transient or fatal."""

    seen: set[int] = set()
    current = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, ParsingError):
            return False
        status = _status_of(current)
        if status is not None:
            return status == 429 or status >= 500
        if _is_transient_network_error(current):
            return True
        message = str(current).lower()
        if any(phrase in message for phrase in TRANSIENT_PHRASES):
            return True
        current = current.__cause__
    return False


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    max_retries: int = 2,
    base_delay: float = 1.0,
) -> T:
    """Await ``fn`` with exponential backoff on transient errors.

    ``fn`` runs at most ``max_retries + 1`` times. The delay before retry ``n``
    (zero based) is ``base_delay * 2**n``. Fatal errors and the last transient
    error propagate unchanged.
    """

    retrying = AsyncRetrying(
        retry=retry_if_exception(is_retryable_error),
        stop=stop_after_attempt(max_retries + 1),
        wait=wait_exponential(multiplier=base_delay, exp_base=2, min=0),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            return await fn()
    raise AssertionError("unreachable: tenacity either returns or re-raises")  # pragma: no cover
