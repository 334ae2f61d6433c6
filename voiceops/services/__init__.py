"""
Service layer infrastructure - resilience patterns for external API calls.

Provides:
- ServiceClient: Pooled HTTP transport with latency logging
- RetryPolicy: Exponential backoff for transient failures
- BatchProcessor: Queue that drains requests in spaced-out batches
"""

from voiceops.services.errors import (
    ServiceError,
    ClientError,
    ResponseTooLargeError,
    TransientFailure,
    RateLimitError,
    ServerError,
    NetworkError,
    RequestTimeoutError,
    UnknownResourceError,
    BatchDispatchError,
    ProcessorClosedError,
)
from voiceops.services.request import RequestDescriptor, RequestResult
from voiceops.services.retry import RetryPolicy, execute_with_retry
from voiceops.services.batch import BatchProcessor, BatchStats, QueueEntry
from voiceops.services.client import ServiceClient

__all__ = [
    # Errors
    "ServiceError",
    "ClientError",
    "ResponseTooLargeError",
    "TransientFailure",
    "RateLimitError",
    "ServerError",
    "NetworkError",
    "RequestTimeoutError",
    "UnknownResourceError",
    "BatchDispatchError",
    "ProcessorClosedError",
    # Requests
    "RequestDescriptor",
    "RequestResult",
    # Retry
    "RetryPolicy",
    "execute_with_retry",
    # Batching
    "BatchProcessor",
    "BatchStats",
    "QueueEntry",
    # Client
    "ServiceClient",
]
