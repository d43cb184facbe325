"""
Header filtering across the proxy boundary.

Both directions use fixed denylists. The browsing client's cookies and address
never reach the origin, and the origin never sets cookies on the proxy's domain.
"""

from typing import Dict, Iterable, Mapping, Tuple, Union

from search_proxy.vars import DEFAULT_ACCEPT, USER_AGENT

# Hop-by-hop headers that should NOT be forwarded (RFC 2616)
HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "proxy-connection",
        "te",
        "trailer",
        "trailers",
        "transfer-encoding",
        "upgrade",
    }
)

# Headers that identify the original client to the origin
FORWARDED_HEADERS = frozenset(
    {
        "forwarded",
        "x-forwarded-for",
        "x-forwarded-host",
        "x-forwarded-proto",
        "x-forwarded-prefix",
        "x-real-ip",
    }
)

OUTBOUND_DENYLIST = (
    frozenset({"cookie", "cookie2", "host", "content-length", "accept-encoding"})
    | FORWARDED_HEADERS
    | HOP_BY_HOP_HEADERS
)

INBOUND_DENYLIST = frozenset({"set-cookie", "set-cookie2"}) | HOP_BY_HOP_HEADERS

HeaderSource = Union[Mapping[str, str], Iterable[Tuple[str, str]]]


def _items(headers: HeaderSource):
    if headers is None:
        return []
    if hasattr(headers, "items"):
        return headers.items()
    return headers


def _filter(headers: HeaderSource, denylist: frozenset) -> Dict[str, str]:
    filtered: Dict[str, str] = {}
    for name, value in _items(headers):
        name_lower = name.lower()
        if name_lower in denylist:
            continue
        filtered[name_lower] = value
    return filtered


def sanitize_outbound_headers(headers: HeaderSource) -> Dict[str, str]:
    """
    Client headers to send upstream.

    Drops cookies, forwarded-for style headers, hop-by-hop headers and the
    framing headers the HTTP client recomputes itself. Fills in the proxy's
    User-Agent and a default Accept when the client sent none.
    """
    outbound = _filter(headers, OUTBOUND_DENYLIST)
    outbound.setdefault("user-agent", USER_AGENT)
    outbound.setdefault("accept", DEFAULT_ACCEPT)
    return outbound


def sanitize_inbound_headers(headers: HeaderSource) -> Dict[str, str]:
    """Upstream response headers that may be relayed to the client."""
    return _filter(headers, INBOUND_DENYLIST)
