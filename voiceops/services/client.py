"""
ServiceClient - Async HTTP transport for the VAPI API with retry.

Combines:
- A pooled httpx.AsyncClient with bearer auth and JSON headers
- Response size limits and latency logging
- Exponential-backoff retry on 429, 5xx and network failures
"""

import asyncio
import json
import time
from typing import TYPE_CHECKING, Any

import httpx
from loguru import logger

from voiceops.services.errors import (
    ClientError,
    NetworkError,
    RateLimitError,
    RequestTimeoutError,
    ResponseTooLargeError,
    ServerError,
    ServiceError,
)
from voiceops.services.request import RequestDescriptor, RequestResult
from voiceops.services.retry import (
    NO_RETRY,
    RetryPolicy,
    SleepFn,
    execute_with_retry,
)

if TYPE_CHECKING:
    from voiceops.settings import Settings

DEFAULT_MAX_CONTENT_LENGTH = 50 * 1024 * 1024  # 50MB


class ServiceClient:
    """
    HTTP client for a single bearer-authenticated JSON API.

    Usage:
        async with ServiceClient("https://api.vapi.ai", api_key="sk-...") as client:
            # Simple request
            assistants = await client.get("/assistant", params={"limit": 10})

            # Full result with status and latency
            result = await client.request(RequestDescriptor("GET", "/call"))
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        service_id: str = "vapi",
        timeout: float = 30.0,
        max_content_length: int = DEFAULT_MAX_CONTENT_LENGTH,
        max_redirects: int = 3,
        max_connections: int = 20,
        max_keepalive: int = 10,
        retry_policy: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.base_url = base_url
        self.service_id = service_id
        self.timeout = timeout
        self.max_content_length = max_content_length
        self.retry_policy = retry_policy or RetryPolicy()

        self._api_key = api_key
        self._max_redirects = max_redirects
        self._limits = httpx.Limits(
            max_connections=max_connections,
            max_keepalive_connections=max_keepalive,
        )
        self._transport = transport
        self._sleep = sleep

        # HTTP client (lazy initialization)
        self._http_client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings: "Settings", **overrides: Any) -> "ServiceClient":
        """Build a client from application settings."""
        options: dict[str, Any] = {
            "base_url": settings.vapi_base_url,
            "api_key": settings.vapi_secret_key,
            "timeout": settings.vapi_request_timeout,
            "max_content_length": settings.vapi_max_content_length,
            "max_redirects": settings.vapi_max_redirects,
            "max_connections": settings.vapi_max_connections,
            "max_keepalive": settings.vapi_max_keepalive,
            "retry_policy": RetryPolicy(
                max_retries=settings.vapi_max_retries,
                base_delay=settings.vapi_retry_base_delay,
                retry_non_idempotent=settings.vapi_retry_non_idempotent,
            ),
        }
        options.update(overrides)
        return cls(**options)

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            if not self._api_key:
                logger.warning(f"No API key configured for {self.service_id}")
            self._http_client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                },
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                max_redirects=self._max_redirects,
                limits=self._limits,
                transport=self._transport,
            )
        return self._http_client

    async def request(
        self,
        descriptor: RequestDescriptor,
        retry: bool = True,
    ) -> RequestResult[Any]:
        """
        Perform one logical call, retrying transient failures.

        Args:
            descriptor: Method, path and payload of the call
            retry: Set to False for a single attempt

        Returns:
            RequestResult with the parsed JSON body

        Raises:
            ClientError: 4xx other than 429
            TransientFailure: 429, 5xx or network failure after retries
            ServiceError: For other service errors
        """
        policy = self.retry_policy if retry else NO_RETRY
        return await execute_with_retry(
            self._execute_request, descriptor, policy, sleep=self._sleep
        )

    async def _execute_request(
        self,
        descriptor: RequestDescriptor,
        attempt: int,
    ) -> RequestResult[Any]:
        """Execute a single HTTP attempt."""
        client = await self._get_http_client()
        logger.debug(f"VAPI Request: {descriptor} (attempt {attempt})")
        start = time.perf_counter()

        try:
            request = client.build_request(
                descriptor.method,
                descriptor.path,
                params=descriptor.params,
                json=descriptor.json,
            )
            response = await client.send(request, stream=True)
            try:
                body = await self._read_body(response)
            finally:
                await response.aclose()

        except ResponseTooLargeError as e:
            logger.error(
                f"VAPI Error: response too large in {_elapsed_ms(start):.0f}ms"
            )
            raise self._tag(e, descriptor)

        except httpx.TimeoutException as e:
            logger.error(f"VAPI Error: Network Error (timeout) in {_elapsed_ms(start):.0f}ms")
            raise self._tag(
                RequestTimeoutError(self.service_id, self.timeout), descriptor
            ) from e

        except httpx.TooManyRedirects as e:
            logger.error(f"VAPI Error: too many redirects in {_elapsed_ms(start):.0f}ms")
            raise self._tag(
                ServiceError(str(e), service_id=self.service_id), descriptor
            ) from e

        except httpx.RequestError as e:
            logger.error(f"VAPI Error: Network Error in {_elapsed_ms(start):.0f}ms")
            raise self._tag(
                NetworkError(
                    f"{type(e).__name__}: {e}" if str(e) else type(e).__name__,
                    service_id=self.service_id,
                ),
                descriptor,
            ) from e

        elapsed_ms = _elapsed_ms(start)
        status = response.status_code

        if not response.is_success:
            logger.error(f"VAPI Error: {status} in {elapsed_ms:.0f}ms")
            raise self._tag(self._error_for_status(response, body), descriptor)

        logger.debug(f"VAPI Response: {status} in {elapsed_ms:.0f}ms")
        try:
            data = json.loads(body) if body.strip() else None
        except ValueError as e:
            raise self._tag(
                ServiceError(
                    f"Invalid JSON in response: {body[:200]!r}",
                    service_id=self.service_id,
                    status_code=status,
                ),
                descriptor,
            ) from e

        return RequestResult(
            data=data,
            status_code=status,
            elapsed_ms=elapsed_ms,
            service_id=self.service_id,
        )

    async def _read_body(self, response: httpx.Response) -> bytes:
        """Read a streamed body, enforcing the maximum content length."""
        limit = self.max_content_length
        declared = response.headers.get("content-length", "")
        if declared.isdigit() and int(declared) > limit:
            raise ResponseTooLargeError(self.service_id, limit)

        body = bytearray()
        async for chunk in response.aiter_bytes():
            body.extend(chunk)
            if len(body) > limit:
                raise ResponseTooLargeError(self.service_id, limit)
        return bytes(body)

    def _error_for_status(self, response: httpx.Response, body: bytes) -> ServiceError:
        """Map a non-2xx response onto the error taxonomy."""
        status = response.status_code
        detail = _error_detail(body)

        if status == 429:
            return RateLimitError(
                self.service_id,
                retry_after=_parse_retry_after(response.headers.get("retry-after")),
                detail=detail,
            )
        if status >= 500:
            return ServerError(
                f"HTTP {status}: {detail}", status_code=status, service_id=self.service_id
            )
        return ClientError(
            f"HTTP {status}: {detail}", status_code=status, service_id=self.service_id
        )

    @staticmethod
    def _tag(error: ServiceError, descriptor: RequestDescriptor) -> ServiceError:
        error.method = descriptor.method
        error.path = descriptor.path
        return error

    # Convenience methods

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        result = await self.request(RequestDescriptor("GET", path, params=params))
        return result.data

    async def post(self, path: str, json_data: Any = None) -> Any:
        result = await self.request(RequestDescriptor("POST", path, json=json_data))
        return result.data

    async def patch(self, path: str, json_data: Any = None) -> Any:
        result = await self.request(RequestDescriptor("PATCH", path, json=json_data))
        return result.data

    async def delete(self, path: str) -> Any:
        result = await self.request(RequestDescriptor("DELETE", path))
        return result.data

    async def close(self) -> None:
        """Close the HTTP client and release pooled connections."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
        logger.debug("ServiceClient closed")

    async def __aenter__(self) -> "ServiceClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


def _error_detail(body: bytes) -> str:
    """Pull a readable message out of an error body."""
    text = body.decode("utf-8", errors="replace")
    try:
        payload = json.loads(text)
    except ValueError:
        return text[:200]

    if isinstance(payload, dict):
        message = payload.get("message") or payload.get("error")
        if isinstance(message, list):
            return "; ".join(str(m) for m in message)
        if message:
            return str(message)
    return text[:200]


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None
