from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Callable, Optional, Protocol

from newscrawl.domain.http_response import HttpResponse
from newscrawl.exceptions import FetchError
from newscrawl.services.rate_limiter import TokenBucket

logger = logging.getLogger(__name__)

TOO_MANY_REQUESTS = 429


class Fetcher(Protocol):
    """Fetch a URL and return the response body, raising `FetchError` on failure."""

    def fetch(self, url: str) -> str: ...


class Transport(Protocol):
    def get(self, url: str) -> HttpResponse: ...


def parse_retry_after(value: Optional[str], now: Optional[datetime] = None) -> Optional[float]:
    """Parse a Retry-After header (delta-seconds or HTTP-date) into seconds."""
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.debug("Unparseable Retry-After header: %r", value)
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max(0.0, (when - now).total_seconds())


class RateLimitedFetcher:
    """Fetches under a shared token bucket with bounded exponential-backoff retry.

    Each attempt acquires a token first. A 2xx returns the body. A 429 with a
    Retry-After hint sleeps for the hint and moves on to the next attempt
    without an extra backoff sleep; the attempt still counts. Any other
    failure sleeps `backoff_base * 2**attempt` before the next attempt.
    After `max_retries` additional attempts the last error is raised.
    """

    def __init__(
        self,
        transport: Transport,
        rate_limiter: TokenBucket,
        max_retries: int = 3,
        backoff_base: float = 1.0,
        max_retry_after: float = 300.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.transport = transport
        self.rate_limiter = rate_limiter
        self.max_retries = int(max_retries)
        self.backoff_base = float(backoff_base)
        self.max_retry_after = float(max_retry_after)
        self._sleep = sleep

    def backoff_delay(self, attempt: int) -> float:
        return self.backoff_base * (2 ** attempt)

    def _attempt(self, url: str) -> HttpResponse:
        self.rate_limiter.acquire()
        return self.transport.get(url)

    def fetch(self, url: str) -> str:
        last_error: Optional[FetchError] = None
        attempts = self.max_retries + 1

        for attempt in range(attempts):
            retry_after: Optional[float] = None
            try:
                response = self._attempt(url)
            except FetchError as e:
                last_error = e
            else:
                status = int(response.status_code)
                if 200 <= status < 300:
                    return response.text
                last_error = FetchError(url, status_code=status)
                if status == TOO_MANY_REQUESTS:
                    retry_after = parse_retry_after(response.header("Retry-After"))

            if attempt >= attempts - 1:
                break

            if retry_after is not None:
                wait = min(retry_after, self.max_retry_after)
                logger.warning("Rate limited on %s, waiting %.1f seconds", url, wait)
            else:
                wait = self.backoff_delay(attempt)
                logger.warning(
                    "Request failed (attempt %d/%d), retrying in %.1fs: %s (%s)",
                    attempt + 1,
                    attempts,
                    wait,
                    url,
                    last_error,
                )
            self._sleep(wait)

        assert last_error is not None
        raise last_error
