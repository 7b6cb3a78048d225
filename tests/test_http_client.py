import httpx
import pytest

from catalog_sync.logging_filters import summarize_body
from catalog_sync.result import HTTP, NOT_FOUND, RATE_LIMITED, TRANSPORT
from catalog_sync.woo.http_client import (
    RetryClient,
    TIMEOUT_MEDIA,
    TIMEOUT_METADATA,
    TIMEOUT_PRODUCT_CREATE,
    TIMEOUT_PRODUCT_UPDATE,
    TIMEOUT_VARIATIONS,
    backoff_delay,
    resolve_timeout,
)

from conftest import wc

URL = wc("products/5")


@pytest.fixture
async def client(router, ctx, sleeps):
    http = RetryClient(ctx.logger, sleep=sleeps)
    yield http
    await http.aclose()


async def test_succeeds_on_third_attempt_after_two_backoffs(router, client, sleeps):
    route = router.get(URL).mock(side_effect=[
        httpx.Response(500, json={"message": "boom"}),
        httpx.Response(500, json={"message": "boom"}),
        httpx.Response(200, json={"id": 5}),
    ])

    res = await client.request(URL)

    assert res.ok
    assert res.value == {"id": 5}
    assert route.call_count == 3
    assert sleeps.calls == [2.0, 4.0]


async def test_gives_up_after_three_attempts_with_last_error(router, client, sleeps):
    route = router.get(URL).mock(return_value=httpx.Response(500, json={"message": "still down"}))

    res = await client.request(URL)

    assert not res.ok
    assert route.call_count == 3
    assert res.failure.kind == HTTP
    assert res.status == 500
    assert "still down" in res.message
    assert "(Response Code: 500)" in res.message
    # no sleep after the final attempt
    assert sleeps.calls == [2.0, 4.0]


async def test_rate_limit_uses_fixed_cooldown(router, client, sleeps):
    router.get(URL).mock(side_effect=[
        httpx.Response(429),
        httpx.Response(503),
        httpx.Response(200, json={"id": 5}),
    ])

    res = await client.request(URL)

    assert res.ok
    assert sleeps.calls == [15.0, 15.0]


async def test_rate_limited_failure_kind_when_exhausted(router, client):
    router.get(URL).mock(return_value=httpx.Response(429, json={"message": "slow down"}))

    res = await client.request(URL)

    assert res.failure.kind == RATE_LIMITED


async def test_not_found_is_returned_without_retry(router, client, sleeps):
    route = router.get(URL).mock(return_value=httpx.Response(404, json={"message": "Invalid ID."}))

    res = await client.request(URL)

    assert res.failure.kind == NOT_FOUND
    assert res.failure.is_not_found
    assert route.call_count == 1
    assert sleeps.calls == []


async def test_transport_error_is_retried_and_reported(router, client, sleeps):
    route = router.get(URL).mock(side_effect=httpx.ConnectError("refused"))

    res = await client.request(URL)

    assert route.call_count == 3
    assert res.failure.kind == TRANSPORT
    assert "ConnectError" in res.message


async def test_attempts_override(router, client, sleeps):
    route = router.post(wc("products")).mock(return_value=httpx.Response(500))

    res = await client.request(wc("products"), "POST", body={"name": "x"}, attempts=1)

    assert not res.ok
    assert route.call_count == 1
    assert sleeps.calls == []


async def test_every_attempt_is_logged(router, client, log_store):
    router.get(URL).mock(side_effect=[httpx.Response(500), httpx.Response(200, json={})])

    await client.request(URL)

    messages = [e["message"] for e in reversed(log_store.entries(limit=100))]
    assert messages.count("API request") == 2
    assert "API request failed" in messages
    failed = next(e for e in log_store.entries(limit=100) if e["message"] == "API request failed")
    assert failed["context"]["attempt"] == 1
    assert failed["context"]["status"] == 500
    assert failed["context"]["method"] == "GET"


async def test_explicit_timeout_hint_is_used(router, client):
    route = router.get(URL).mock(return_value=httpx.Response(200, json={}))

    await client.request(URL, timeout_hint=7.0)

    assert route.calls.last.request.extensions["timeout"]["read"] == 7.0


def test_backoff_is_exponential_and_capped():
    assert backoff_delay(1) == 2.0
    assert backoff_delay(2) == 4.0
    assert backoff_delay(3) == 8.0
    assert backoff_delay(10) == 30.0


def test_timeouts_by_endpoint():
    assert resolve_timeout(wc("products/5"), "GET") == TIMEOUT_METADATA
    assert resolve_timeout(wc("products/5"), "PUT") == TIMEOUT_PRODUCT_UPDATE
    assert resolve_timeout(wc("products"), "POST") == TIMEOUT_PRODUCT_CREATE
    assert resolve_timeout(wc("products/5/variations/generate"), "POST") == TIMEOUT_VARIATIONS
    assert resolve_timeout("https://target.test/wp-json/wp/v2/media", "POST") == TIMEOUT_MEDIA
    assert TIMEOUT_MEDIA > TIMEOUT_METADATA
    assert TIMEOUT_PRODUCT_CREATE > TIMEOUT_PRODUCT_UPDATE
    assert TIMEOUT_VARIATIONS == max(
        TIMEOUT_MEDIA, TIMEOUT_METADATA, TIMEOUT_PRODUCT_CREATE, TIMEOUT_PRODUCT_UPDATE, TIMEOUT_VARIATIONS
    )


def test_error_bodies_are_summarized_for_logs():
    page = "<!DOCTYPE html><html><head><title>502 Bad Gateway</title></head><body>" + "x" * 500 + "</body></html>"
    assert summarize_body(page).startswith("502 Bad Gateway [HTML")
    assert summarize_body(b'{"message": "ok"}') == '{"message": "ok"}'
    assert summarize_body("y" * 300).endswith("[300 chars]")
    assert summarize_body(None) == ""
