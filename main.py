"""
voiceops entry point.
Checks VAPI reachability and fetches a summary of the requested resources.

Usage: python main.py [kind ...]
"""

import asyncio
import sys

from loguru import logger

from voiceops.settings import get_settings
from voiceops.vapi import VapiService

DEFAULT_KINDS = ["assistants", "calls", "phoneNumbers"]


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


async def main(kinds: list[str]) -> int:
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info("Starting voiceops...")

    async with VapiService.from_settings(settings) as vapi:
        health = await vapi.health_check()
        if not health.is_healthy:
            logger.error(
                f"VAPI unreachable (status {health.status_code}): {health.error}"
            )
            return 1
        logger.info(f"VAPI healthy in {health.response_time_ms:.0f}ms")

        results = await vapi.fan_out_fetch(kinds)
        for name, outcome in results.items():
            if outcome.success:
                count = len(outcome.data) if isinstance(outcome.data, list) else 1
                logger.info(f"{name}: {count} item(s)")
            else:
                logger.warning(f"{name}: {outcome.error}")

    logger.info("voiceops stopped")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main(sys.argv[1:] or DEFAULT_KINDS)))
