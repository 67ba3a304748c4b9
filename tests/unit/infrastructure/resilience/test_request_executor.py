"""Behaviour of the RequestExecutor against a scripted transport.

Covers the fail-fast paths (credentials, local rate limit), cache-aside
reads, retry/backoff on transient failures, non-retryable failures,
signature rejection, the overall deadline and event emission.
"""

import time

import pytest

from sourcer.domain.events.api_events import (
    ApiCallFailed, ApiCallInitiated, ApiCallRejected, ApiCallSucceeded, CacheHit, RetryScheduled,
)
from sourcer.domain.models.api import Credentials, ErrorKind
from sourcer.domain.models.errors import TransportError
from sourcer.infrastructure.config.client_config import CacheConfig, ClientConfig, RetryConfig
from sourcer.infrastructure.resilience.rate_limiter import RateLimiter
from sourcer.infrastructure.resilience.request_executor import (
    MSG_CREDENTIALS_MISSING, MSG_RATE_LIMITED, MSG_UNKNOWN_ERROR, RequestExecutor,
)

from tests.fakes import TEST_BASE_URL, FakeTransport, make_response

pytestmark = pytest.mark.asyncio

SEARCH = "/v2/keywords/search"


# --- Fail-fast paths ---

async def test_missing_credentials_returns_401_without_network(make_executor, fake_transport):
    executor = make_executor(credentials=Credentials())
    response = await executor.request("GET", SEARCH, {"query": {"keyword": "a"}})
    assert not response.success
    assert response.code == "401"
    assert response.message == MSG_CREDENTIALS_MISSING
    assert response.error_kind is ErrorKind.CONFIGURATION
    assert fake_transport.calls == []


async def test_local_rate_limit_returns_429_without_network(make_executor, fake_transport):
    executor = make_executor(rate_limiter=RateLimiter(max_requests=1, time_window=60), cache=None)
    assert (await executor.request("GET", SEARCH)).success
    response = await executor.request("GET", SEARCH)
    assert response.code == "429"
    assert response.message == MSG_RATE_LIMITED
    assert response.error_kind is ErrorKind.RATE_LIMITED
    assert len(fake_transport.calls) == 1


async def test_cache_hit_still_counts_against_rate_limit(make_executor, fake_transport):
    executor = make_executor(rate_limiter=RateLimiter(max_requests=1, time_window=60))
    assert (await executor.request("GET", SEARCH)).success
    assert (await executor.request("GET", SEARCH)).code == "429"
    assert len(fake_transport.calls) == 1


# --- Cache-aside ---

async def test_second_identical_call_served_from_cache(make_executor, fake_transport):
    executor = make_executor()
    first = await executor.request("GET", SEARCH, {"query": {"keyword": "a"}})
    second = await executor.request("GET", SEARCH, {"query": {"keyword": "a"}})
    assert first.success and second.success
    assert second == first
    assert len(fake_transport.calls) == 1


async def test_different_params_are_not_shared(make_executor, fake_transport):
    executor = make_executor()
    await executor.request("GET", SEARCH, {"query": {"keyword": "a"}})
    await executor.request("GET", SEARCH, {"query": {"keyword": "b"}})
    assert len(fake_transport.calls) == 2


async def test_use_cache_false_bypasses_cache(make_executor, fake_transport):
    executor = make_executor()
    await executor.request("GET", SEARCH, use_cache=False)
    await executor.request("GET", SEARCH, use_cache=False)
    assert len(fake_transport.calls) == 2
    assert await executor.cache.store.size() == 0


async def test_cache_disabled(make_executor, fake_transport):
    executor = make_executor(cache_enabled=False)
    await executor.request("GET", SEARCH)
    await executor.request("GET", SEARCH)
    assert len(fake_transport.calls) == 2


async def test_failures_are_not_cached(make_executor, fake_transport):
    fake_transport.queue(make_response(400, {"message": "bad"}))
    executor = make_executor()
    assert not (await executor.request("GET", SEARCH)).success
    assert (await executor.request("GET", SEARCH)).success
    assert len(fake_transport.calls) == 2


async def test_clear_cache(make_executor, fake_transport):
    executor = make_executor()
    await executor.request("GET", SEARCH)
    await executor.clear_cache()
    await executor.request("GET", SEARCH)
    assert len(fake_transport.calls) == 2


async def test_mutating_a_cached_response_does_not_leak(make_executor, fake_transport):
    fake_transport.default = make_response(200, {"data": {"volume": 100}})
    executor = make_executor()
    first = await executor.request("GET", SEARCH)
    first.data["volume"] = -1

    second = await executor.request("GET", SEARCH)
    assert second.data == {"volume": 100}
    assert len(fake_transport.calls) == 1


async def test_mixed_key_types_in_options(make_executor, fake_transport):
    executor = make_executor()
    first = await executor.request("GET", SEARCH, {"query": {1: "a", "b": "c"}})
    second = await executor.request("GET", SEARCH, {"query": {1: "a", "b": "c"}})
    assert first.success and second.success
    assert fake_transport.calls[0]["params"] == [("1", "a"), ("b", "c")]
    assert len(fake_transport.calls) == 1


async def test_failing_cache_read_is_a_miss(make_executor, fake_transport, mocker):
    executor = make_executor()
    mocker.patch.object(executor.cache, "get", side_effect=OSError("disk unavailable"))
    response = await executor.request("GET", SEARCH)
    assert response.success
    assert len(fake_transport.calls) == 1


async def test_failing_cache_write_still_returns_response(make_executor, fake_transport, mocker):
    executor = make_executor()
    mocker.patch.object(executor.cache, "set", side_effect=OSError("disk full"))
    response = await executor.request("GET", SEARCH)
    assert response.success
    assert response.data == {"ok": True}


# --- Retry and backoff ---

async def test_server_errors_exhaust_all_attempts(make_executor):
    transport = FakeTransport(default=make_response(500, {"message": "boom"}))
    executor = make_executor(transport=transport)
    response = await executor.request("GET", SEARCH)
    assert len(transport.calls) == 3
    assert response.code == "500"
    assert response.message == "boom"
    assert response.error_kind is ErrorKind.SERVER
    assert response.retryable


async def test_transport_errors_are_retried_then_reported_as_500(make_executor):
    transport = FakeTransport(responses=[TransportError("connection refused")] * 3)
    executor = make_executor(transport=transport)
    response = await executor.request("GET", SEARCH)
    assert len(transport.calls) == 3
    assert response.code == "500"
    assert "network error" in response.message
    assert "connection refused" in response.message
    assert response.error_kind is ErrorKind.TRANSPORT


async def test_unexpected_transport_exception_does_not_escape(make_executor):
    transport = FakeTransport(responses=[RuntimeError("weird")] * 3)
    response = await make_executor(transport=transport).request("GET", SEARCH)
    assert response.code == "500"
    assert response.error_kind is ErrorKind.TRANSPORT


async def test_recovers_after_transient_failures(make_executor):
    transport = FakeTransport(responses=[
        make_response(503),
        TransportError("reset"),
        make_response(200, {"data": {"keyword": "a"}}),
    ])
    response = await make_executor(transport=transport).request("GET", SEARCH)
    assert response.success
    assert response.data == {"keyword": "a"}
    assert len(transport.calls) == 3


async def test_backoff_delays_grow_geometrically(make_executor, mocker):
    sleep = mocker.patch("sourcer.infrastructure.resilience.request_executor.asyncio.sleep", new=mocker.AsyncMock())
    transport = FakeTransport(default=make_response(502))
    executor = make_executor(transport=transport, retry=RetryConfig(max_attempts=4, delay_ms=100, multiplier=3))
    await executor.request("GET", SEARCH)
    assert [c.args[0] for c in sleep.await_args_list] == pytest.approx([0.1, 0.3, 0.9])
    assert len(transport.calls) == 4


async def test_backoff_waits_real_time(make_executor):
    transport = FakeTransport(responses=[make_response(500), make_response(500)])
    executor = make_executor(transport=transport, retry=RetryConfig(max_attempts=3, delay_ms=50, multiplier=2))
    started = time.monotonic()
    response = await executor.request("GET", SEARCH)
    elapsed = time.monotonic() - started
    assert response.success
    # 50ms + 100ms, with slack for timer resolution
    assert elapsed >= 0.14


async def test_single_attempt_policy_never_retries(make_executor):
    transport = FakeTransport(default=make_response(500))
    await make_executor(transport=transport, retry=RetryConfig(max_attempts=1)).request("GET", SEARCH)
    assert len(transport.calls) == 1


async def test_client_errors_are_not_retried(make_executor):
    transport = FakeTransport(responses=[make_response(400, {"code": "ERROR", "message": "Invalid keyword"})])
    response = await make_executor(transport=transport).request("GET", SEARCH)
    assert len(transport.calls) == 1
    assert response.code == "400"
    assert response.message == "Invalid keyword"
    assert response.error_kind is ErrorKind.CLIENT
    assert response.raw == {"code": "ERROR", "message": "Invalid keyword"}


async def test_error_without_message_uses_fallback(make_executor):
    transport = FakeTransport(responses=[make_response(404, body="Not Found")])
    response = await make_executor(transport=transport).request("GET", SEARCH)
    assert response.code == "404"
    assert response.message == MSG_UNKNOWN_ERROR
    assert response.raw == "Not Found"


async def test_server_429_is_a_client_error(make_executor):
    transport = FakeTransport(responses=[make_response(429, {"message": "slow down"})])
    response = await make_executor(transport=transport).request("GET", SEARCH)
    assert response.code == "429"
    assert response.error_kind is ErrorKind.CLIENT
    assert len(transport.calls) == 1


# --- Response handling ---

async def test_missing_response_signature_is_rejected(make_executor):
    transport = FakeTransport(default=make_response(200, {"data": {"x": 1}}, signed=False))
    executor = make_executor(transport=transport)
    response = await executor.request("GET", SEARCH)
    assert not response.success
    assert response.code == "502"
    assert response.error_kind is ErrorKind.SIGNATURE
    assert len(transport.calls) == 1
    assert await executor.cache.store.size() == 0


async def test_success_envelope_is_unwrapped(make_executor):
    payload = {"code": "SUCCESS", "message": "OK", "data": {"items": [1, 2]}}
    transport = FakeTransport(default=make_response(200, payload))
    response = await make_executor(transport=transport).request("GET", SEARCH)
    assert response.success
    assert response.code == "200"
    assert response.data == {"items": [1, 2]}
    assert response.message == "OK"
    assert response.raw == payload


async def test_success_without_envelope_returns_whole_body(make_executor):
    transport = FakeTransport(default=make_response(200, [{"id": 1}]))
    response = await make_executor(transport=transport).request("GET", SEARCH)
    assert response.data == [{"id": 1}]


async def test_non_json_success_body(make_executor):
    transport = FakeTransport(default=make_response(200, body="<html>ok</html>"))
    response = await make_executor(transport=transport).request("GET", SEARCH)
    assert response.success
    assert response.data is None
    assert response.raw == "<html>ok</html>"


async def test_empty_success_body(make_executor):
    transport = FakeTransport(default=make_response(204))
    response = await make_executor(transport=transport).request("DELETE", "/v2/items/1")
    assert response.success
    assert response.data is None


# --- Deadline ---

async def test_deadline_aborts_slow_call(make_executor):
    transport = FakeTransport(delay=0.5)
    response = await make_executor(transport=transport).request("GET", SEARCH, deadline=0.05)
    assert response.code == "408"
    assert response.error_kind is ErrorKind.TIMEOUT
    assert not response.retryable


async def test_deadline_covers_backoff_waits(make_executor):
    transport = FakeTransport(default=make_response(500))
    executor = make_executor(transport=transport, retry=RetryConfig(max_attempts=5, delay_ms=200, multiplier=2))
    response = await executor.request("GET", SEARCH, deadline=0.1)
    assert response.code == "408"
    assert len(transport.calls) == 1


# --- Request shaping ---

async def test_outbound_request_shape(make_executor, fake_transport):
    executor = make_executor()
    await executor.request(
        "get",
        "/v2/products/search",
        {"query": {"page": 1, "keyword": "shoe", "skip": None}, "headers": {"X-Trace": "abc"}, "limit": 5},
        timeout=4.0,
    )
    call = fake_transport.calls[0]
    assert call["method"] == "GET"
    assert call["url"] == f"{TEST_BASE_URL}/v2/products/search"
    assert call["params"] == [("keyword", "shoe"), ("limit", "5"), ("page", "1")]
    assert call["timeout"] == 4.0
    headers = call["headers"]
    assert headers["X-Trace"] == "abc"
    assert headers["Accept"] == "application/json"
    assert headers["Content-Type"] == "application/json"
    assert headers["Authorization"].startswith("CEA algorithm=HmacSHA256, access-key=test-access, signed-date=")
    assert headers["X-Timestamp"].endswith("Z")


async def test_caller_headers_cannot_replace_signing_headers(make_executor, fake_transport):
    await make_executor().request("GET", SEARCH, {"headers": {"Accept": "text/csv", "Authorization": "forged"}})
    headers = fake_transport.calls[0]["headers"]
    assert headers["Accept"] == "text/csv"
    assert headers["Authorization"].startswith("CEA ")


async def test_json_body_is_sent_and_signed(make_executor, fake_transport, mocker):
    executor = make_executor()
    sign = mocker.spy(executor.signer, "sign")
    await executor.request("POST", "/v2/keywords/analyze", {"json": {"keywords": ["a", "b"]}, "query": {"v": 2}})
    assert fake_transport.calls[0]["json"] == {"keywords": ["a", "b"]}
    assert fake_transport.calls[0]["params"] == [("v", "2")]
    sign.assert_called_once_with("POST", "/v2/keywords/analyze", {"v": 2, "keywords": ["a", "b"]})


async def test_each_attempt_is_signed(make_executor, mocker):
    transport = FakeTransport(responses=[make_response(500)])
    executor = make_executor(transport=transport)
    sign = mocker.spy(executor.signer, "sign")
    await executor.request("GET", SEARCH)
    assert sign.call_count == 2


# --- Events ---

async def test_events_for_retried_success(make_executor):
    events = []
    transport = FakeTransport(responses=[make_response(500), make_response(200, {"data": 1}, headers={"X-RateLimit-Remaining": "42"})])
    executor = make_executor(transport=transport, event_handler=events.append)
    await executor.request("GET", SEARCH)
    await executor.request("GET", SEARCH)

    assert [type(e) for e in events] == [
        ApiCallInitiated, RetryScheduled, ApiCallInitiated, ApiCallSucceeded, CacheHit,
    ]
    assert events[1].attempt_number == 1 and events[1].max_attempts == 3
    assert events[3].attempts == 2
    assert events[3].response_summary == {"remaining": "42", "reset": None}


async def test_rejection_event(make_executor):
    events = []
    executor = make_executor(credentials=Credentials(), event_handler=events.append)
    await executor.request("GET", SEARCH)
    assert len(events) == 1
    assert isinstance(events[0], ApiCallRejected)
    assert events[0].reason == "credentials_missing"


async def test_failure_event(make_executor):
    events = []
    transport = FakeTransport(responses=[make_response(403, {"message": "forbidden"})])
    await make_executor(transport=transport, event_handler=events.append).request("GET", SEARCH)
    failed = events[-1]
    assert isinstance(failed, ApiCallFailed)
    assert failed.code == "403"
    assert failed.error_type == "client"
    assert failed.error_message == "forbidden"


async def test_failing_event_handler_does_not_break_call(make_executor, mocker):
    handler = mocker.Mock(side_effect=RuntimeError("listener bug"))
    response = await make_executor(event_handler=handler).request("GET", SEARCH)
    assert response.success
    assert handler.called


# --- Wiring ---

async def test_from_config_wires_collaborators(client_config, fake_transport):
    executor = RequestExecutor.from_config(client_config, transport=fake_transport)
    assert executor.base_url == TEST_BASE_URL
    assert executor.rate_limiter.max_requests == 100
    assert executor.cache_enabled
    assert executor.cache.key_prefix == "coupang_api:"
    assert executor.retry.max_attempts == 3
    response = await executor.request("GET", SEARCH)
    assert response.success
    async with executor:
        pass
    assert fake_transport.closed


async def test_from_config_with_cache_disabled(credentials, fake_transport):
    config = ClientConfig(credentials=credentials, cache=CacheConfig(enabled=False))
    executor = RequestExecutor.from_config(config, transport=fake_transport)
    assert executor.cache is None
    assert not executor.cache_enabled
    await executor.request("GET", SEARCH)
    await executor.request("GET", SEARCH)
    assert len(fake_transport.calls) == 2
