"""
Retry middleware with exponential backoff.

Wraps a single-attempt send function. Retry state lives in the loop, not on
the descriptor, so a descriptor can be replayed or shared freely.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from loguru import logger

from voiceops.services.errors import NetworkError, ServiceError, TransientFailure
from voiceops.services.request import RequestDescriptor, RequestResult

SendFn = Callable[[RequestDescriptor, int], Awaitable[RequestResult[Any]]]
SleepFn = Callable[[float], Awaitable[Any]]


@dataclass
class RetryPolicy:
    """Configuration for retrying transient failures."""

    max_retries: int = 3
    base_delay: float = 1.0  # seconds before the first retry
    retry_non_idempotent: bool = False

    def delay_for(self, retry_index: int) -> float:
        """Seconds to wait before retry ``retry_index`` (0-based): 1s, 2s, 4s..."""
        return self.base_delay * (2**retry_index)

    def should_retry(
        self,
        error: BaseException,
        descriptor: RequestDescriptor,
        retries_done: int,
    ) -> bool:
        if retries_done >= self.max_retries:
            return False
        if not isinstance(error, TransientFailure):
            return False
        # Without a response a POST may already have taken effect upstream
        if isinstance(error, NetworkError):
            return descriptor.is_idempotent or self.retry_non_idempotent
        return True


NO_RETRY = RetryPolicy(max_retries=0)


async def execute_with_retry(
    send: SendFn,
    descriptor: RequestDescriptor,
    policy: RetryPolicy,
    sleep: SleepFn = asyncio.sleep,
) -> RequestResult[Any]:
    """
    Call ``send`` until it succeeds or the policy gives up.

    Args:
        send: Single-attempt send, called as ``send(descriptor, attempt)``
        descriptor: The request to perform
        policy: Retry policy
        sleep: Awaitable used for backoff delays

    Returns:
        RequestResult of the successful attempt, with ``attempts`` set

    Raises:
        ServiceError: The last error, with ``attempts`` set
    """
    retries = 0
    while True:
        try:
            result = await send(descriptor, retries + 1)
        except ServiceError as e:
            e.attempts = retries + 1
            if not policy.should_retry(e, descriptor, retries):
                if retries:
                    logger.error(
                        f"Giving up on {descriptor} after {e.attempts} attempts: {e}"
                    )
                raise

            delay = policy.delay_for(retries)
            logger.warning(
                f"Retrying {descriptor} in {delay * 1000:.0f}ms "
                f"(attempt {retries + 1}/{policy.max_retries}): {e}"
            )
            await sleep(delay)
            retries += 1
        else:
            result.attempts = retries + 1
            return result
