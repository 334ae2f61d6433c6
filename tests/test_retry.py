"""Tests for retry policy and backoff through the ServiceClient."""

import asyncio
import time

import httpx
import pytest

from voiceops.services.errors import (
    ClientError,
    NetworkError,
    RateLimitError,
    RequestTimeoutError,
    ServerError,
    TransientFailure,
)
from voiceops.services.request import RequestDescriptor
from voiceops.services.retry import RetryPolicy


class TestRetryPolicy:
    def test_exponential_delays(self):
        policy = RetryPolicy()
        assert [policy.delay_for(k) for k in range(3)] == [1.0, 2.0, 4.0]

    def test_stops_after_max_retries(self):
        policy = RetryPolicy(max_retries=3)
        error = ServerError("HTTP 503", status_code=503)
        get = RequestDescriptor("get", "/call")
        assert policy.should_retry(error, get, 2)
        assert not policy.should_retry(error, get, 3)

    def test_client_errors_are_not_retried(self):
        policy = RetryPolicy()
        error = ClientError("HTTP 400", status_code=400)
        assert not policy.should_retry(error, RequestDescriptor("GET", "/call"), 0)

    def test_non_idempotent_skips_only_network_errors(self):
        policy = RetryPolicy()
        post = RequestDescriptor("POST", "/call")
        assert policy.should_retry(RateLimitError("vapi"), post, 0)
        assert policy.should_retry(ServerError("HTTP 502", status_code=502), post, 0)
        assert not policy.should_retry(NetworkError("reset"), post, 0)
        assert not policy.should_retry(RequestTimeoutError("vapi", 30.0), post, 0)

    def test_non_idempotent_opt_in(self):
        policy = RetryPolicy(retry_non_idempotent=True)
        post = RequestDescriptor("POST", "/call")
        assert policy.should_retry(NetworkError("reset"), post, 0)


class TestClientRetry:
    @pytest.mark.asyncio
    async def test_always_503_is_attempted_four_times(self, make_client, recording_sleep):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(503, json={"message": "unavailable"})

        client = make_client(handler)
        with pytest.raises(ServerError) as exc_info:
            await client.request(RequestDescriptor("GET", "/assistant"))

        assert len(calls) == 4
        assert recording_sleep.delays == [1.0, 2.0, 4.0]
        assert exc_info.value.status_code == 503
        assert exc_info.value.attempts == 4
        assert isinstance(exc_info.value, TransientFailure)

    @pytest.mark.asyncio
    async def test_rate_limit_then_success(self, make_client, recording_sleep):
        responses = iter(
            [
                httpx.Response(429, headers={"Retry-After": "2"}),
                httpx.Response(200, json=[{"id": "a1"}]),
            ]
        )

        client = make_client(lambda request: next(responses))
        result = await client.request(RequestDescriptor("GET", "/assistant"))

        assert result.data == [{"id": "a1"}]
        assert result.attempts == 2
        assert recording_sleep.delays == [1.0]

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self, make_client, recording_sleep):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(404, json={"message": "Assistant not found"})

        client = make_client(handler)
        with pytest.raises(ClientError) as exc_info:
            await client.request(RequestDescriptor("GET", "/assistant/missing"))

        assert len(calls) == 1
        assert recording_sleep.delays == []
        assert exc_info.value.status_code == 404
        assert "Assistant not found" in str(exc_info.value)
        assert exc_info.value.attempts == 1

    @pytest.mark.asyncio
    async def test_network_errors_are_retried(self, make_client, recording_sleep):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)
        with pytest.raises(NetworkError) as exc_info:
            await client.request(RequestDescriptor("GET", "/call"))

        assert len(calls) == 4
        assert exc_info.value.status_code is None
        assert exc_info.value.attempts == 4

    @pytest.mark.asyncio
    async def test_timeout_maps_to_timeout_error(self, make_client):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        client = make_client(handler, retry_policy=RetryPolicy(max_retries=1), timeout=30.0)
        with pytest.raises(RequestTimeoutError) as exc_info:
            await client.request(RequestDescriptor("GET", "/call"))

        assert exc_info.value.timeout == 30.0
        assert exc_info.value.attempts == 2
        assert isinstance(exc_info.value.__cause__, httpx.ReadTimeout)

    @pytest.mark.asyncio
    async def test_post_server_error_is_retried(self, make_client, recording_sleep):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(502)

        client = make_client(handler)
        with pytest.raises(ServerError) as exc_info:
            await client.request(RequestDescriptor("POST", "/call", json={"x": 1}))
        assert len(calls) == 4
        assert recording_sleep.delays == [1.0, 2.0, 4.0]
        assert exc_info.value.attempts == 4

    @pytest.mark.asyncio
    async def test_post_network_error_not_retried_by_default(self, make_client):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            raise httpx.ReadError("connection reset", request=request)

        client = make_client(handler)
        with pytest.raises(NetworkError):
            await client.request(RequestDescriptor("POST", "/call", json={"x": 1}))
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_post_network_error_retried_when_enabled(self, make_client):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            raise httpx.ReadError("connection reset", request=request)

        client = make_client(handler, retry_policy=RetryPolicy(retry_non_idempotent=True))
        with pytest.raises(NetworkError):
            await client.request(RequestDescriptor("POST", "/call", json={"x": 1}))
        assert len(calls) == 4

    @pytest.mark.asyncio
    async def test_retry_disabled_makes_single_attempt(self, make_client, recording_sleep):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(500)

        client = make_client(handler)
        with pytest.raises(ServerError):
            await client.request(RequestDescriptor("GET", "/assistant"), retry=False)
        assert len(calls) == 1
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_backoff_timing_between_attempts(self, make_client):
        stamps: list[float] = []

        def handler(request: httpx.Request) -> httpx.Response:
            stamps.append(time.monotonic())
            return httpx.Response(503)

        client = make_client(
            handler,
            retry_policy=RetryPolicy(base_delay=0.05),
            sleep=asyncio.sleep,
        )
        with pytest.raises(ServerError):
            await client.request(RequestDescriptor("GET", "/assistant"))

        gaps = [later - earlier for earlier, later in zip(stamps, stamps[1:])]
        assert len(gaps) == 3
        for k, gap in enumerate(gaps):
            expected = 0.05 * 2**k
            assert expected * 0.9 <= gap < expected + 0.5
