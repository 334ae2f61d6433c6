"""Shared fixtures: ServiceClient wired to an in-process httpx.MockTransport."""

from typing import Callable

import httpx
import pytest
from loguru import logger

from voiceops.services.client import ServiceClient
from voiceops.services.retry import RetryPolicy

BASE_URL = "https://api.vapi.test"

Handler = Callable[[httpx.Request], httpx.Response]


class RecordingSleep:
    """Stand-in for asyncio.sleep that records delays without waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture(autouse=True)
def _quiet_logs():
    """Keep loguru output out of the test report."""
    logger.disable("voiceops")
    yield
    logger.enable("voiceops")


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_client(recording_sleep: RecordingSleep):
    """Factory building a ServiceClient around a request handler."""

    def factory(handler: Handler, **overrides) -> ServiceClient:
        options = {
            "base_url": BASE_URL,
            "api_key": "test-key",
            "transport": httpx.MockTransport(handler),
            "retry_policy": RetryPolicy(),
            "sleep": recording_sleep,
        }
        options.update(overrides)
        return ServiceClient(**options)

    return factory
