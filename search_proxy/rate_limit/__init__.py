from search_proxy.rate_limit.limiter import SlidingWindowRateLimiter
from search_proxy.rate_limit.dependency import (
    client_identifier,
    enforce_rate_limit,
)

__all__ = ["SlidingWindowRateLimiter", "client_identifier", "enforce_rate_limit"]
