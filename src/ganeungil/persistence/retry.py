"""Bounded retry for transient store failures."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from ..config import settings
from ..errors import StoreUnavailableError

T = TypeVar("T")

logger = logging.getLogger(__name__)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    description: str = "store operation",
    max_retries: int | None = None,
    backoff_seconds: float | None = None,
) -> T:
    """Run ``operation``, retrying only ``StoreUnavailableError`` with exponential backoff.

    Other errors propagate on the first failure. After ``max_retries`` extra
    attempts the last ``StoreUnavailableError`` is re-raised.
    """
    max_retries = max_retries if max_retries is not None else settings.store_max_retries
    backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.store_backoff_seconds

    attempt = 0
    while True:
        try:
            return await operation()
        except StoreUnavailableError as exc:
            attempt += 1
            if attempt > max_retries:
                logger.error(f"{description} failed after {max_retries} retries: {exc}")
                raise
            wait_time = backoff_seconds * (2 ** (attempt - 1))
            logger.debug(f"{description} unavailable, retrying in {wait_time:.1f}s (attempt {attempt}/{max_retries}): {exc}")
            await asyncio.sleep(wait_time)
