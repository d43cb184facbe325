import logging
from typing import Optional
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from search_proxy.errors import InvalidTarget, MethodNotAllowed
from search_proxy.proxy.client import get_http_client
from search_proxy.proxy.forwarder import ProxyRequest, forward
from search_proxy.rate_limit import enforce_rate_limit
from search_proxy.utils import is_http_url
from search_proxy.vars import FORM_PROXY_PATH, PROXY_PATH, SEARCH_ENDPOINT

router = APIRouter(dependencies=[Depends(enforce_rate_limit)])
logger = logging.getLogger("uvicorn.error")

# Registered on every endpoint so unsupported methods still pass the rate limiter
ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "DELETE", "CONNECT", "OPTIONS", "TRACE", "PATCH"]
FORM_METHODS = ("GET", "POST")
DEFAULT_FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def build_search_url(query: str) -> str:
    separator = "&" if "?" in SEARCH_ENDPOINT else "?"
    return f"{SEARCH_ENDPOINT}{separator}{urlencode({'q': query})}"


def append_form_fields(target: str, request: Request) -> str:
    """Re-serialize every query parameter except ``url`` onto the target."""
    fields = [(k, v) for k, v in request.query_params.multi_items() if k != "url"]
    if not fields:
        return target
    separator = "&" if "?" in target else "?"
    return f"{target}{separator}{urlencode(fields)}"


def require_target(url: Optional[str]) -> str:
    if not url or not is_http_url(url):
        raise InvalidTarget()
    return url


@router.api_route("/search", methods=ALL_METHODS)
async def search(
    request: Request,
    q: Optional[str] = None,
    client: httpx.AsyncClient = Depends(get_http_client),
) -> Response:
    """Run a query against the configured search engine and proxy the results page."""
    if request.method != "GET":
        raise MethodNotAllowed(("GET",))
    if not q:
        raise InvalidTarget("Missing query parameter q")
    return await forward(
        ProxyRequest(target_url=build_search_url(q), headers=dict(request.headers)),
        client,
    )


@router.api_route(PROXY_PATH, methods=ALL_METHODS)
async def proxy(
    request: Request,
    url: Optional[str] = None,
    client: httpx.AsyncClient = Depends(get_http_client),
) -> Response:
    """Fetch an absolute http(s) URL through the proxy (targets of rewritten links)."""
    if request.method != "GET":
        raise MethodNotAllowed(("GET",))
    target = require_target(url)
    return await forward(
        ProxyRequest(target_url=target, headers=dict(request.headers)), client
    )


@router.api_route(FORM_PROXY_PATH, methods=ALL_METHODS)
async def form_proxy(
    request: Request,
    url: Optional[str] = None,
    client: httpx.AsyncClient = Depends(get_http_client),
) -> Response:
    """Submit a rewritten form: GET fields travel in the query, POST bodies verbatim."""
    if request.method not in FORM_METHODS:
        raise MethodNotAllowed(FORM_METHODS)
    target = require_target(url)
    headers = dict(request.headers)

    if request.method == "GET":
        return await forward(
            ProxyRequest(target_url=append_form_fields(target, request), headers=headers),
            client,
        )

    body = await request.body()
    headers["content-type"] = request.headers.get("content-type", DEFAULT_FORM_CONTENT_TYPE)
    logger.debug(f"[Proxy] Form POST with {len(body)} bytes")
    return await forward(
        ProxyRequest(target_url=target, method="POST", headers=headers, body=body),
        client,
    )
