"""Retry helpers for idempotent requests."""

from __future__ import annotations

import asyncio
import functools
import logging
import random
from collections.abc import Awaitable, Callable

import httpx

logger = logging.getLogger(__name__)

RETRY_EXCEPTIONS = (OSError, asyncio.TimeoutError, httpx.TransportError)
ATTEMPTS = 3


def retry_async(func: Callable[..., Awaitable], *, attempts: int = ATTEMPTS, base_delay: float = 1.0):
    """Retry connection-level failures with jittered exponential backoff.

    Only wrap calls that are safe to repeat; HTTP error statuses are not retried.
    """

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        delay = base_delay
        for attempt in range(attempts):
            try:
                return await func(*args, **kwargs)
            except RETRY_EXCEPTIONS as exc:
                if attempt == attempts - 1:
                    raise
                logger.warning("Retrying %s after %r (attempt %s)", getattr(func, "__name__", func), exc, attempt + 1)
                await asyncio.sleep(delay + random.random())
                delay *= 2

    return wrapper
