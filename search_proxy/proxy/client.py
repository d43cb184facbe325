from http.cookiejar import CookieJar, DefaultCookiePolicy

import httpx
from fastapi import Request

from search_proxy.vars import PROXY_TIMEOUT


def create_http_client(**kwargs) -> httpx.AsyncClient:
    """
    Shared upstream client.

    The client is shared by all visitors, so its cookie jar refuses every
    domain and nothing received for one visitor is sent for another.
    """
    kwargs.setdefault("timeout", httpx.Timeout(PROXY_TIMEOUT))
    return httpx.AsyncClient(
        cookies=CookieJar(policy=DefaultCookiePolicy(allowed_domains=[])),
        # Redirects are relayed to the browser with a rewritten Location
        follow_redirects=False,
        **kwargs,
    )


def get_http_client(request: Request) -> httpx.AsyncClient:
    """Dependency returning the client owned by the application lifespan."""
    return request.app.state.http_client
