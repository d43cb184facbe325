import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, Optional, Union
from urllib.parse import urljoin

import httpx
from fastapi.responses import Response, StreamingResponse
from opentelemetry import trace
from starlette.background import BackgroundTask

from search_proxy.errors import InvalidTarget, UpstreamFailure, UpstreamTimeout
from search_proxy.proxy.headers import (
    sanitize_inbound_headers,
    sanitize_outbound_headers,
)
from search_proxy.rewriter import Rewriter, rewrite_html
from search_proxy.rewriter.html import proxied_url
from search_proxy.utils import is_http_url, shorten_url
from search_proxy.utils.exception_logging import format_exception_message
from search_proxy.utils.traced_requests import traced_request
from search_proxy.vars import PROXY_PATH

tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

HTML_MEDIA_TYPE = "text/html; charset=utf-8"
NO_STORE = "no-store"


@dataclass
class ProxyRequest:
    target_url: str
    method: str = "GET"
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None


@dataclass
class HtmlPayload:
    """Complete HTML document, buffered so it can be rewritten."""

    body: bytes
    encoding: str

    def text(self) -> str:
        return self.body.decode(self.encoding, errors="replace")


@dataclass
class OpaquePayload:
    """Anything else; relayed from the still-open upstream response."""

    upstream: httpx.Response


UpstreamPayload = Union[HtmlPayload, OpaquePayload]


def parse_target(target_url: str) -> httpx.URL:
    """Validate the target before any I/O; only absolute http(s) URLs pass."""
    if not target_url or not is_http_url(target_url):
        raise InvalidTarget()
    try:
        return httpx.URL(target_url)
    except httpx.InvalidURL:
        raise InvalidTarget()


def is_html(content_type: str) -> bool:
    return "text/html" in (content_type or "").lower()


def rewrite_location_header(location: str, target_url: str) -> str:
    """
    Point a redirect back at the proxy.

    Relative locations are resolved against the URL that was fetched; anything
    that does not end up as an absolute http(s) URL is returned untouched.
    """
    if not location:
        return location
    absolute = urljoin(target_url, location)
    if not is_http_url(absolute):
        return location
    return proxied_url(PROXY_PATH, absolute)


async def read_payload(upstream: httpx.Response) -> UpstreamPayload:
    """Decide once per response between buffer-and-rewrite and pass-through."""
    if not is_html(upstream.headers.get("content-type", "")):
        return OpaquePayload(upstream)
    try:
        body = await upstream.aread()
    finally:
        await upstream.aclose()
    return HtmlPayload(body=body, encoding=upstream.encoding or "utf-8")


async def relay_body(upstream: httpx.Response, target_url: str) -> AsyncIterator[bytes]:
    """
    Stream the upstream body to the client chunk by chunk.

    The status line is already on the wire by the time this runs, so an
    upstream failure can only cut the body short. Closing in ``finally`` also
    covers the client going away mid-stream.
    """
    try:
        async for chunk in upstream.aiter_bytes():
            yield chunk
    except httpx.HTTPError as e:
        logger.warning(
            f"[Proxy] Upstream body interrupted for {shorten_url(target_url)}: {format_exception_message(e)}"
        )
    finally:
        await upstream.aclose()


def _html_response(
    payload: HtmlPayload, upstream: httpx.Response, target_url: str, rewriter: Rewriter
) -> Response:
    headers = {"cache-control": NO_STORE}
    location = upstream.headers.get("location")
    if location:
        headers["location"] = rewrite_location_header(location, target_url)
    return Response(
        content=rewriter(payload.text()),
        status_code=upstream.status_code,
        headers=headers,
        media_type=HTML_MEDIA_TYPE,
    )


def _streaming_response(payload: OpaquePayload, target_url: str) -> StreamingResponse:
    upstream = payload.upstream
    headers = sanitize_inbound_headers(upstream.headers)
    if "content-encoding" in headers:
        # httpx hands out decoded bytes; the upstream framing no longer applies
        headers.pop("content-encoding")
        headers.pop("content-length", None)
    if "location" in headers:
        headers["location"] = rewrite_location_header(headers["location"], target_url)
    headers["cache-control"] = NO_STORE
    return StreamingResponse(
        relay_body(upstream, target_url),
        status_code=upstream.status_code,
        headers=headers,
        background=BackgroundTask(upstream.aclose),
    )


async def forward(
    proxy_request: ProxyRequest,
    client: httpx.AsyncClient,
    rewriter: Rewriter = rewrite_html,
) -> Response:
    """
    Fetch ``proxy_request`` from its origin and build the response for the client.

    HTML is buffered, passed through ``rewriter`` and sent with a forced HTML
    content type. Everything else is streamed through unmodified. Cookies and
    client-identifying headers are filtered in both directions.
    """
    target = parse_target(proxy_request.target_url)
    target_url = str(target)
    method = proxy_request.method.upper()

    with traced_request(
        tracer,
        operation="proxy_request",
        target_url=target_url,
        method=method,
        start_message=f"[Proxy] {method} {target_url}",
    ) as span:
        outbound = client.build_request(
            method,
            target,
            headers=sanitize_outbound_headers(proxy_request.headers),
            content=proxy_request.body or None,
        )
        try:
            upstream = await client.send(outbound, stream=True)
        except httpx.TimeoutException as e:
            logger.error(f"[Proxy] Timeout for {shorten_url(target_url)}: {e}")
            span.set_attribute("proxy.error", "timeout")
            raise UpstreamTimeout()
        except httpx.TransportError as e:
            logger.error(
                f"[Proxy] Failed to reach {shorten_url(target_url)}: {format_exception_message(e)}"
            )
            span.set_attribute("proxy.error", "connection_failed")
            raise UpstreamFailure()

        span.set_attribute("proxy.status_code", upstream.status_code)

        try:
            payload = await read_payload(upstream)
        except httpx.TimeoutException as e:
            logger.error(f"[Proxy] Timeout reading {shorten_url(target_url)}: {e}")
            span.set_attribute("proxy.error", "timeout")
            raise UpstreamTimeout()
        except httpx.HTTPError as e:
            logger.error(
                f"[Proxy] Failed to read {shorten_url(target_url)}: {format_exception_message(e)}"
            )
            span.set_attribute("proxy.error", "read_failed")
            raise UpstreamFailure()

        if isinstance(payload, HtmlPayload):
            span.set_attribute("proxy.payload", "html")
            return _html_response(payload, upstream, target_url, rewriter)

        span.set_attribute("proxy.payload", "opaque")
        return _streaming_response(payload, target_url)
