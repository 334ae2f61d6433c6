"""
Service layer exceptions.

Hierarchy:
- ServiceError
  - ClientError (4xx except 429, never retried)
  - ResponseTooLargeError
  - TransientFailure (retried with backoff)
    - RateLimitError (429)
    - ServerError (5xx)
    - NetworkError (no response)
      - RequestTimeoutError
  - UnknownResourceError
  - BatchDispatchError
  - ProcessorClosedError
"""


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(
        self,
        message: str,
        service_id: str | None = None,
        status_code: int | None = None,
    ):
        self.message = message
        self.service_id = service_id
        self.status_code = status_code
        self.method: str | None = None
        self.path: str | None = None
        # Set by the retry layer once the error leaves it
        self.attempts = 0
        super().__init__(message)


class ClientError(ServiceError):
    """Request rejected by the provider (4xx other than 429)."""

    def __init__(self, message: str, status_code: int, service_id: str | None = None):
        super().__init__(message, service_id=service_id, status_code=status_code)


class ResponseTooLargeError(ServiceError):
    """Response body exceeded the configured maximum size. Never retried."""

    def __init__(self, service_id: str | None, limit: int):
        self.limit = limit
        super().__init__(
            f"Response from service '{service_id}' exceeded {limit} bytes",
            service_id=service_id,
        )


class TransientFailure(ServiceError):
    """Failure expected to go away on its own (429, 5xx, network)."""

    pass


class RateLimitError(TransientFailure):
    """Rate limit exceeded."""

    def __init__(
        self,
        service_id: str | None,
        retry_after: float | None = None,
        detail: str = "",
    ):
        self.retry_after = retry_after
        msg = f"Rate limit exceeded for service '{service_id}'"
        if retry_after:
            msg += f", retry after {retry_after}s"
        if detail:
            msg += f": {detail}"
        super().__init__(msg, service_id=service_id, status_code=429)


class ServerError(TransientFailure):
    """Provider answered with a 5xx status."""

    def __init__(self, message: str, status_code: int, service_id: str | None = None):
        super().__init__(message, service_id=service_id, status_code=status_code)


class NetworkError(TransientFailure):
    """No response received (DNS failure, refused or reset connection)."""

    pass


class RequestTimeoutError(NetworkError):
    """Request timed out."""

    def __init__(self, service_id: str | None, timeout: float):
        self.timeout = timeout
        super().__init__(
            f"Request to service '{service_id}' timed out after {timeout}s",
            service_id=service_id,
        )


class UnknownResourceError(ServiceError):
    """Resource kind is not one the facade knows how to fetch."""

    def __init__(self, resource: str):
        self.resource = resource
        super().__init__(f"Unknown resource: {resource}")


class BatchDispatchError(ServiceError):
    """Building the concurrent dispatch of a batch failed."""

    pass


class ProcessorClosedError(ServiceError):
    """Entry was still queued when its batch processor shut down."""

    pass
