"""
Request and result records shared by the transport, retry and batch layers.
"""

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

T = TypeVar("T")

# Methods safe to replay after a failure of unknown outcome
IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "PUT", "DELETE"})


@dataclass(frozen=True)
class RequestDescriptor:
    """One outbound call: method, path and payload."""

    method: str
    path: str
    params: dict[str, Any] | None = None
    json: Any = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", self.method.upper())

    @property
    def is_idempotent(self) -> bool:
        return self.method in IDEMPOTENT_METHODS

    def __str__(self) -> str:
        return f"{self.method} {self.path}"


@dataclass
class RequestResult(Generic[T]):
    """Result from a service request."""

    data: T
    status_code: int
    elapsed_ms: float
    attempts: int = 1
    service_id: str | None = None
