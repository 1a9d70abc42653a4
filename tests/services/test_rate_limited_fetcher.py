from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from newscrawl.domain import HttpResponse
from newscrawl.exceptions import FetchError
from newscrawl.services.fetcher import RateLimitedFetcher, parse_retry_after


def _fetcher(responses, max_retries=3, backoff_base=1.0, max_retry_after=300.0):
    transport = Mock()
    transport.get.side_effect = responses
    limiter = Mock()
    limiter.acquire.return_value = 0.0
    sleeps = []
    fetcher = RateLimitedFetcher(
        transport,
        limiter,
        max_retries=max_retries,
        backoff_base=backoff_base,
        max_retry_after=max_retry_after,
        sleep=sleeps.append,
    )
    return fetcher, transport, limiter, sleeps


def test_success_returns_body_without_sleeping():
    fetcher, transport, limiter, sleeps = _fetcher([HttpResponse(200, "<html>ok</html>")])

    assert fetcher.fetch("http://x/1") == "<html>ok</html>"
    assert sleeps == []
    assert limiter.acquire.call_count == 1


def test_two_failures_then_success_backs_off_at_least_three_seconds():
    fetcher, transport, limiter, sleeps = _fetcher([
        HttpResponse(500, "err"),
        HttpResponse(502, "err"),
        HttpResponse(200, "body"),
    ])

    assert fetcher.fetch("http://x/1") == "body"
    assert sleeps == [1.0, 2.0]
    assert sum(sleeps) >= 3.0
    # every attempt takes a token
    assert limiter.acquire.call_count == 3


def test_exhaustion_raises_last_error_with_status():
    fetcher, transport, _, sleeps = _fetcher([HttpResponse(503, "")] * 4)

    with pytest.raises(FetchError) as exc:
        fetcher.fetch("http://x/1")
    assert exc.value.status_code == 503
    assert transport.get.call_count == 4
    assert sleeps == [1.0, 2.0, 4.0]


def test_not_found_after_retries_is_classified():
    fetcher, _, _, _ = _fetcher([HttpResponse(404, "")] * 2, max_retries=1)

    with pytest.raises(FetchError) as exc:
        fetcher.fetch("http://x/missing")
    assert exc.value.is_not_found


def test_transport_errors_are_retried():
    fetcher, _, _, sleeps = _fetcher([
        FetchError("http://x/1", TimeoutError("timed out")),
        HttpResponse(200, "ok"),
    ])

    assert fetcher.fetch("http://x/1") == "ok"
    assert sleeps == [1.0]


def test_retry_after_replaces_backoff():
    fetcher, _, _, sleeps = _fetcher([
        HttpResponse(429, "", {"Retry-After": "7"}),
        HttpResponse(200, "ok"),
    ])

    assert fetcher.fetch("http://x/1") == "ok"
    assert sleeps == [7.0]


def test_retry_after_is_capped():
    fetcher, _, _, sleeps = _fetcher([
        HttpResponse(429, "", {"Retry-After": "3600"}),
        HttpResponse(200, "ok"),
    ], max_retry_after=60)

    fetcher.fetch("http://x/1")
    assert sleeps == [60.0]


def test_429_without_hint_uses_backoff():
    fetcher, _, _, sleeps = _fetcher([HttpResponse(429, ""), HttpResponse(200, "ok")])

    fetcher.fetch("http://x/1")
    assert sleeps == [1.0]


def test_429_counts_toward_retry_limit():
    fetcher, transport, _, _ = _fetcher([HttpResponse(429, "", {"Retry-After": "1"})] * 3, max_retries=2)

    with pytest.raises(FetchError) as exc:
        fetcher.fetch("http://x/1")
    assert exc.value.status_code == 429
    assert transport.get.call_count == 3


def test_parse_retry_after_http_date():
    now = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
    assert parse_retry_after("Wed, 01 Jan 2025 12:00:30 GMT", now=now) == pytest.approx(30.0)
    assert parse_retry_after("Wed, 01 Jan 2025 11:00:00 GMT", now=now) == 0.0


def test_parse_retry_after_invalid():
    assert parse_retry_after(None) is None
    assert parse_retry_after("") is None
    assert parse_retry_after("soon") is None
    assert parse_retry_after("12") == 12.0


def test_backoff_delay_doubles():
    fetcher, _, _, _ = _fetcher([], backoff_base=0.5)
    assert [fetcher.backoff_delay(i) for i in range(4)] == [0.5, 1.0, 2.0, 4.0]
