"""
Unit tests for ResilientFetcher: status classification, Retry-After
handling, transport failures and the post-fetch throttle.
"""

from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import httpx
import pytest

from scrapers.backoff import FetchError
from scrapers.fetcher import ResilientFetcher, parse_retry_after

URL = "https://www.reddit.com/r/test/new.json"


def sequence(*responses):
    """Handler that replays ``responses`` in order and records requests."""
    seen = []
    queue = list(responses)

    def handler(request):
        seen.append(request)
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    handler.seen = seen
    return handler


@pytest.mark.asyncio
async def test_success_returns_json_and_throttles(make_fetcher, sleeps):
    handler = sequence(httpx.Response(200, json={"data": {"children": []}}))
    fetcher = make_fetcher(handler, request_delay_ms=1200)

    data = await fetcher.fetch_json(URL, params={"limit": 5})

    assert data == {"data": {"children": []}}
    assert sleeps.calls == [1.2]
    request = handler.seen[0]
    assert request.url.params["limit"] == "5"
    assert request.headers["user-agent"] == "forum-ingest-tests/1.0"


@pytest.mark.asyncio
async def test_rate_limit_hint_is_used_verbatim(make_fetcher, sleeps):
    handler = sequence(
        httpx.Response(429, headers={"retry-after": "2"}),
        httpx.Response(200, json={"ok": True}),
    )
    fetcher = make_fetcher(handler, max_attempts=3, base_delay_ms=1000, request_delay_ms=1200)

    assert await fetcher.fetch_json(URL) == {"ok": True}
    # exactly the 2s hint, then the fixed inter-request delay
    assert sleeps.calls == [2.0, 1.2]


@pytest.mark.asyncio
async def test_server_errors_back_off_with_jitter(make_fetcher, sleeps):
    handler = sequence(
        httpx.Response(503),
        httpx.Response(500),
        httpx.Response(200, json=[1, 2]),
    )
    fetcher = make_fetcher(handler, max_attempts=3, base_delay_ms=1000, request_delay_ms=0)

    assert await fetcher.fetch_json(URL) == [1, 2]
    first, second, throttle = sleeps.calls
    assert 0.8 <= first <= 1.2
    assert 1.6 <= second <= 2.4
    assert throttle == 0


@pytest.mark.asyncio
async def test_client_error_fails_immediately(make_fetcher, sleeps):
    handler = sequence(httpx.Response(404))
    fetcher = make_fetcher(handler, max_attempts=5)

    with pytest.raises(FetchError) as exc_info:
        await fetcher.fetch_json(URL)

    assert exc_info.value.retryable is False
    assert exc_info.value.status_code == 404
    assert len(handler.seen) == 1
    assert sleeps.calls == []


@pytest.mark.asyncio
async def test_exhausted_retries_propagate_last_error(make_fetcher, sleeps):
    handler = sequence(httpx.Response(502), httpx.Response(502))
    fetcher = make_fetcher(handler, max_attempts=2)

    with pytest.raises(FetchError) as exc_info:
        await fetcher.fetch_json(URL)

    assert exc_info.value.retryable is True
    assert exc_info.value.status_code == 502
    assert len(handler.seen) == 2
    # one backoff sleep, no throttle after a failed fetch
    assert len(sleeps.calls) == 1


@pytest.mark.asyncio
async def test_transport_errors_are_retried(make_fetcher, sleeps):
    handler = sequence(
        httpx.ConnectError("connection refused"),
        httpx.Response(200, json={"ok": 1}),
    )
    fetcher = make_fetcher(handler, max_attempts=3, request_delay_ms=0)

    assert await fetcher.fetch_json(URL) == {"ok": 1}
    assert len(handler.seen) == 2


@pytest.mark.asyncio
async def test_transport_error_surfaces_after_last_attempt(make_fetcher):
    handler = sequence(httpx.ReadTimeout("slow"))
    fetcher = make_fetcher(handler, max_attempts=1)

    with pytest.raises(FetchError) as exc_info:
        await fetcher.fetch_json(URL)
    assert isinstance(exc_info.value.__cause__, httpx.ReadTimeout)


@pytest.mark.asyncio
async def test_invalid_json_is_fatal(make_fetcher):
    handler = sequence(httpx.Response(200, text="<html>nope</html>"))
    fetcher = make_fetcher(handler, max_attempts=3)

    with pytest.raises(FetchError) as exc_info:
        await fetcher.fetch_json(URL)
    assert exc_info.value.retryable is False
    assert len(handler.seen) == 1


@pytest.mark.parametrize("attempts", [0, 11])
def test_attempt_ceiling_is_validated(attempts):
    with pytest.raises(ValueError):
        ResilientFetcher(
            user_agent="x",
            request_delay_ms=0,
            max_attempts=attempts,
            base_delay_ms=100,
            client=httpx.AsyncClient(),
        )


def test_parse_retry_after_variants():
    assert parse_retry_after("2") == 2000
    assert parse_retry_after("0.5") == 500
    assert parse_retry_after(None) is None
    assert parse_retry_after("") is None
    assert parse_retry_after("0") is None
    assert parse_retry_after("soon") is None

    future = datetime.now(timezone.utc) + timedelta(seconds=30)
    parsed = parse_retry_after(format_datetime(future, usegmt=True))
    assert parsed is not None and 25_000 <= parsed <= 30_000

    past = datetime.now(timezone.utc) - timedelta(seconds=30)
    assert parse_retry_after(format_datetime(past, usegmt=True)) is None
