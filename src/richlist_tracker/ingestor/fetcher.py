"""Fetch-source contract and bounded retry wrapper."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

from richlist_tracker.ingestor.models import RankedHolder

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_DELAY = 5.0
DEFAULT_TIMEOUT = 15.0


class FetchError(Exception):
    """Base exception for ranked-list fetch failures."""


class TransientFetchError(FetchError):
    """Raised for retryable failures (timeouts, network errors, non-2xx status)."""


class MalformedResponseError(FetchError):
    """Raised when the payload does not have the ranked-list shape."""


class RetryError(FetchError):
    """Raised when all fetch attempts are exhausted."""

    def __init__(self, message: str, last_exception: Exception | None = None) -> None:
        super().__init__(message)
        self.last_exception = last_exception


class FetchSource(Protocol):
    """Returns the current ranked holder list for one chain."""

    async def fetch_ranked_list(self, chain: str) -> list[RankedHolder]: ...


class RetryingFetchSource:
    """Bounds another source with a per-attempt timeout and fixed-delay retries.

    Example:
        >>> source = RetryingFetchSource(HttpRichListSource(urls), max_attempts=3)
        >>> holders = await source.fetch_ranked_list("mainchain")
    """

    def __init__(
        self,
        source: FetchSource,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        timeout: float = DEFAULT_TIMEOUT,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the wrapper.

        Args:
            source: Underlying fetch source.
            max_attempts: Total attempts before giving up.
            retry_delay: Seconds to wait between attempts.
            timeout: Seconds allowed for a single attempt.
            sleep: Awaitable sleep, injectable for tests.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._source = source
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay
        self._timeout = timeout
        self._sleep = sleep

    async def fetch_ranked_list(self, chain: str) -> list[RankedHolder]:
        last_exception: Exception | None = None

        for attempt in range(1, self._max_attempts + 1):
            logger.debug("Fetching %s ranked list (attempt %d/%d)", chain, attempt, self._max_attempts)
            try:
                holders = await asyncio.wait_for(
                    self._source.fetch_ranked_list(chain),
                    timeout=self._timeout,
                )
            except TimeoutError:
                last_exception = TransientFetchError(
                    f"Fetch for {chain} timed out after {self._timeout:.1f}s"
                )
            except FetchError as e:
                last_exception = e
            else:
                logger.info("Fetched %d holders for %s", len(holders), chain)
                return holders

            if attempt == self._max_attempts:
                break
            logger.warning(
                "Attempt %d/%d for %s failed: %s. Retrying in %.1f seconds...",
                attempt,
                self._max_attempts,
                chain,
                last_exception,
                self._retry_delay,
            )
            await self._sleep(self._retry_delay)

        raise RetryError(
            f"All {self._max_attempts} attempts failed for {chain}",
            last_exception=last_exception,
        )
