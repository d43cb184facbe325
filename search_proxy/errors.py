"""
Client-facing error conditions.

Each error carries its own status code and a short plain-text message; the
exception handler registered in ``search_proxy.server`` renders them as
``text/plain`` bodies. Anything that is not one of these is treated as an
unexpected internal failure.
"""

from typing import Dict, Optional

from fastapi import HTTPException


class ProxyError(HTTPException):
    status_code = 500
    default_detail = "Internal server error"

    def __init__(
        self, detail: Optional[str] = None, headers: Optional[Dict[str, str]] = None
    ):
        super().__init__(
            status_code=type(self).status_code,
            detail=detail or self.default_detail,
            headers=headers,
        )


class RateLimited(ProxyError):
    status_code = 429
    default_detail = "Too many requests"


class InvalidTarget(ProxyError):
    """Missing, unparsable or non-http(s) target. Raised before any network I/O."""

    status_code = 400
    default_detail = "Missing or invalid url parameter"


class UpstreamFailure(ProxyError):
    """Transport-level failure (DNS, connect, TLS, read) talking to the origin."""

    status_code = 502
    default_detail = "Bad gateway"


class UpstreamTimeout(UpstreamFailure):
    status_code = 504
    default_detail = "Gateway timeout"


class MethodNotAllowed(ProxyError):
    status_code = 405
    default_detail = "Method not allowed"

    def __init__(self, allowed=("GET", "POST")):
        super().__init__(headers={"Allow": ", ".join(allowed)})
