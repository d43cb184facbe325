from search_proxy.proxy.forwarder import (
    HtmlPayload,
    OpaquePayload,
    ProxyRequest,
    forward,
)
from search_proxy.proxy.headers import (
    sanitize_inbound_headers,
    sanitize_outbound_headers,
)

__all__ = [
    "HtmlPayload",
    "OpaquePayload",
    "ProxyRequest",
    "forward",
    "sanitize_inbound_headers",
    "sanitize_outbound_headers",
]
