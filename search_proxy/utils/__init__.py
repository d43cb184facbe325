from urllib.parse import urlsplit


def is_http_url(value: str) -> bool:
    """True for absolute ``http``/``https`` URLs that name a host."""
    if not value:
        return False
    try:
        parsed = urlsplit(value)
        host = parsed.hostname
    except ValueError:
        return False
    return parsed.scheme.lower() in ("http", "https") and bool(host)


def shorten_url(url: str, limit: int = 200) -> str:
    """Keep log lines bounded when upstream URLs carry huge query strings."""
    if not url or len(url) <= limit:
        return url
    return f"{url[:limit]}...(+{len(url) - limit} chars)"
