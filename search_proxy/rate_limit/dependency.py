import logging

from fastapi import Request
from prometheus_client import Counter

from search_proxy.errors import RateLimited
from search_proxy.rate_limit.limiter import SlidingWindowRateLimiter

logger = logging.getLogger("uvicorn.error")

RATE_LIMITED_REQUESTS = Counter(
    "proxy_rate_limited_requests_total",
    "Requests rejected by the per-client rate limiter",
)


def client_identifier(request: Request) -> str:
    """First hop of X-Forwarded-For when present, otherwise the socket peer."""
    forwarded_for = request.headers.get("x-forwarded-for", "")
    first_hop = forwarded_for.split(",")[0].strip()
    if first_hop:
        return first_hop
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def get_rate_limiter(request: Request) -> SlidingWindowRateLimiter:
    return request.app.state.rate_limiter


async def enforce_rate_limit(request: Request) -> str:
    """
    Dependency that admits the request or short-circuits with 429.

    Runs ahead of every endpoint so throttled clients never reach URL
    validation or upstream I/O.
    """
    identifier = client_identifier(request)
    if not get_rate_limiter(request).admit(identifier):
        RATE_LIMITED_REQUESTS.inc()
        logger.warning(f"[RateLimit] Rejecting {request.method} {request.url.path} from {identifier}")
        raise RateLimited()
    return identifier
