"""Background task: evict rate-limit entries of clients that went quiet."""

import asyncio
import logging

from search_proxy.rate_limit.limiter import SlidingWindowRateLimiter

logger = logging.getLogger("uvicorn.error")


async def sweep_idle_clients(
    limiter: SlidingWindowRateLimiter, interval_sec: float
) -> None:
    while True:
        await asyncio.sleep(interval_sec)
        removed = limiter.sweep()
        if removed:
            logger.debug(
                f"[RateLimit] Evicted {removed} idle clients, {len(limiter)} still tracked"
            )
