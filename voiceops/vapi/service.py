"""
VAPI service facade.

Typed operations over the raw transport: resource listing and CRUD, a
fan-out fetch that reports per-kind outcomes, a health probe and a batched
submission path for call sites that want burst smoothing.

API Documentation: https://docs.vapi.ai/api-reference
"""

import asyncio
import time
from functools import partial
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterable, Literal

from loguru import logger
from pydantic import BaseModel

from voiceops.services.batch import BatchProcessor
from voiceops.services.client import ServiceClient
from voiceops.services.errors import ServiceError
from voiceops.services.request import RequestDescriptor
from voiceops.vapi.resources import ResourceKind

if TYPE_CHECKING:
    from voiceops.settings import Settings


class ResourceOutcome(BaseModel):
    """Outcome of fetching one resource kind."""

    success: bool
    data: Any = None
    error: str | None = None
    status_code: int | None = None


class HealthStatus(BaseModel):
    """Reachability of the VAPI API."""

    status: Literal["healthy", "unhealthy"]
    response_time_ms: float | None = None
    status_code: int = 0
    error: str | None = None

    @property
    def is_healthy(self) -> bool:
        return self.status == "healthy"


class VapiService:
    """
    Convenience API over a ServiceClient.

    Usage:
        async with VapiService.from_settings(get_settings()) as vapi:
            assistants = await vapi.list_resource(ResourceKind.ASSISTANTS, limit=10)
            results = await vapi.fan_out_fetch(["assistants", "calls"])
            call = await vapi.enqueue(RequestDescriptor("GET", "/call/abc"))
    """

    DEFAULT_LIMIT = 100

    def __init__(
        self,
        client: ServiceClient,
        batch_processor: BatchProcessor[Any] | None = None,
        batch_size: int = 5,
        batch_delay: float = 0.1,
    ):
        self.client = client
        self.batch_processor = batch_processor or BatchProcessor(
            self._dispatch_queued,
            batch_size=batch_size,
            batch_delay=batch_delay,
            name=client.service_id,
        )
        self._fetchers: dict[ResourceKind, Callable[[], Awaitable[Any]]] = {
            kind: partial(self.list_resource, kind) for kind in ResourceKind
        }

    @classmethod
    def from_settings(cls, settings: "Settings", **client_overrides: Any) -> "VapiService":
        """Build the service and its client from application settings."""
        return cls(
            ServiceClient.from_settings(settings, **client_overrides),
            batch_size=settings.vapi_batch_size,
            batch_delay=settings.vapi_batch_delay,
        )

    async def _dispatch_queued(self, descriptor: RequestDescriptor) -> Any:
        result = await self.client.request(descriptor)
        return result.data

    # Resources

    async def list_resource(
        self,
        kind: ResourceKind | str,
        limit: int | None = DEFAULT_LIMIT,
        offset: int | None = None,
    ) -> Any:
        """
        List resources of one kind.

        Args:
            kind: Resource kind (or its name)
            limit: Page size, omitted from the query when None
            offset: Page offset, omitted from the query when None

        Returns:
            Raw provider payload

        Raises:
            UnknownResourceError: If kind is not a ResourceKind
            ServiceError: Transport errors, unchanged
        """
        kind = ResourceKind.parse(kind)
        params: dict[str, Any] = {}
        if limit is not None:
            params["limit"] = limit
        if offset is not None:
            params["offset"] = offset

        try:
            result = await self.client.request(
                RequestDescriptor("GET", kind.path, params=params or None)
            )
        except ServiceError as e:
            logger.error(f"Error fetching {kind.value} from VAPI: {e}")
            raise
        return result.data

    async def get_resource(self, kind: ResourceKind | str, resource_id: str) -> Any:
        """Fetch a single resource by id."""
        kind = ResourceKind.parse(kind)
        return await self.client.get(kind.item_path(resource_id))

    async def create_resource(
        self, kind: ResourceKind | str, payload: dict[str, Any]
    ) -> Any:
        """Create a resource and return the provider's representation."""
        kind = ResourceKind.parse(kind)
        data = await self.client.post(kind.path, json_data=payload)
        logger.info(f"Created VAPI {kind.value} resource: {_resource_id(data)}")
        return data

    async def update_resource(
        self, kind: ResourceKind | str, resource_id: str, payload: dict[str, Any]
    ) -> Any:
        kind = ResourceKind.parse(kind)
        return await self.client.patch(kind.item_path(resource_id), json_data=payload)

    async def delete_resource(self, kind: ResourceKind | str, resource_id: str) -> Any:
        kind = ResourceKind.parse(kind)
        data = await self.client.delete(kind.item_path(resource_id))
        logger.info(f"Deleted VAPI {kind.value} resource: {resource_id}")
        return data

    async def list_assistants(self, limit: int = DEFAULT_LIMIT) -> Any:
        return await self.list_resource(ResourceKind.ASSISTANTS, limit=limit)

    async def list_calls(self, limit: int = DEFAULT_LIMIT) -> Any:
        return await self.list_resource(ResourceKind.CALLS, limit=limit)

    async def list_phone_numbers(self) -> Any:
        return await self.list_resource(ResourceKind.PHONE_NUMBERS, limit=None)

    async def create_call(self, call_data: dict[str, Any]) -> Any:
        """Start an outbound call."""
        return await self.create_resource(ResourceKind.CALLS, call_data)

    # Aggregates

    async def fan_out_fetch(
        self, kinds: Iterable[ResourceKind | str]
    ) -> dict[str, ResourceOutcome]:
        """
        Fetch several resource kinds concurrently.

        Never raises for per-kind failures: each requested name maps to its
        own ResourceOutcome, so one failing kind does not hide the others.
        """
        names = [k.value if isinstance(k, ResourceKind) else str(k) for k in kinds]
        outcomes = await asyncio.gather(*(self._fetch_outcome(name) for name in names))
        return dict(zip(names, outcomes))

    async def _fetch_outcome(self, name: str) -> ResourceOutcome:
        try:
            fetch = self._fetchers[ResourceKind.parse(name)]
            data = await fetch()
        except ServiceError as e:
            return ResourceOutcome(success=False, error=str(e), status_code=e.status_code)
        return ResourceOutcome(success=True, data=data)

    async def health_check(self) -> HealthStatus:
        """Probe the API with the cheapest possible request."""
        start = time.perf_counter()
        try:
            result = await self.client.request(
                RequestDescriptor("GET", ResourceKind.ASSISTANTS.path, params={"limit": 1}),
                retry=False,
            )
        except ServiceError as e:
            logger.warning(f"VAPI health check failed: {e}")
            return HealthStatus(
                status="unhealthy",
                error=str(e),
                status_code=e.status_code or 0,
            )

        return HealthStatus(
            status="healthy",
            response_time_ms=(time.perf_counter() - start) * 1000,
            status_code=result.status_code,
        )

    # Batching

    def enqueue(self, descriptor: RequestDescriptor) -> "asyncio.Future[Any]":
        """Queue a request for batched dispatch; await the returned future."""
        return self.batch_processor.submit(descriptor)

    def get_status(self) -> dict[str, Any]:
        """Get batch processing status."""
        return {
            "service_id": self.client.service_id,
            "batch": self.batch_processor.get_stats().to_dict(),
            "processing": self.batch_processor.is_processing,
        }

    async def close(self) -> None:
        await self.batch_processor.close()
        await self.client.close()

    async def __aenter__(self) -> "VapiService":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


def _resource_id(data: Any) -> str:
    if isinstance(data, dict):
        return str(data.get("id", "?"))
    return "?"
