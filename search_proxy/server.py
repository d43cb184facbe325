import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import Sequence

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)
from prometheus_client import Info
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.exceptions import HTTPException as StarletteHTTPException

from search_proxy.proxy.client import create_http_client
from search_proxy.proxy.routes import router as proxy_router
from search_proxy.rate_limit import SlidingWindowRateLimiter
from search_proxy.rate_limit.sweeper import sweep_idle_clients
from search_proxy.site.route import router as site_router
from search_proxy.utils.exception_logging import (
    find_exception_in_exception_groups,
    log_exception_with_details,
)
from search_proxy.vars import (
    OTLP_ENDPOINT,
    OTLP_HEADERS,
    RATE_LIMIT_MAX,
    RATE_LIMIT_SWEEP_INTERVAL,
    RATE_LIMIT_WINDOW_MS,
    SERVICE_NAME,
)

logger = logging.getLogger("uvicorn.error")


def _is_body_span(span: ReadableSpan) -> bool:
    return bool(
        span.attributes
        and span.attributes.get("asgi.event.type") == "http.response.body"
    )


class FilteringSpanExporter(SpanExporter):
    """
    Drops the per-chunk ASGI body spans before export.

    Every relayed chunk of a streamed image or stylesheet would otherwise show
    up as its own span.
    """

    def __init__(self, exporter: SpanExporter):
        self.exporter = exporter

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        kept = [span for span in spans if not _is_body_span(span)]
        if not kept:
            return SpanExportResult.SUCCESS
        return self.exporter.export(kept)

    def shutdown(self):
        return self.exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000):
        return self.exporter.force_flush(timeout_millis)


def configure_tracing() -> None:
    trace.set_tracer_provider(
        TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
    )
    if not OTLP_ENDPOINT:
        return
    otlp_exporter = OTLPSpanExporter(
        endpoint=OTLP_ENDPOINT,
        headers=(OTLP_HEADERS.split(",") if OTLP_HEADERS else None),
    )
    trace.get_tracer_provider().add_span_processor(
        BatchSpanProcessor(FilteringSpanExporter(otlp_exporter))
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.http_client = create_http_client()
    sweeper = asyncio.create_task(
        sweep_idle_clients(app.state.rate_limiter, RATE_LIMIT_SWEEP_INTERVAL)
    )
    logger.info(
        f"[Server] {SERVICE_NAME} ready, rate limit {RATE_LIMIT_MAX} requests per {RATE_LIMIT_WINDOW_MS} ms"
    )
    try:
        yield
    finally:
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper
        await app.state.http_client.aclose()
        logger.info("[Server] Shutdown complete")


app = FastAPI(title=SERVICE_NAME, lifespan=lifespan)
app.state.rate_limiter = SlidingWindowRateLimiter(
    max_requests=RATE_LIMIT_MAX, window_ms=RATE_LIMIT_WINDOW_MS
)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    """Expected client-facing errors: status code plus a short plain-text body."""
    return PlainTextResponse(
        str(exc.detail), status_code=exc.status_code, headers=exc.headers
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    # Errors raised inside task groups arrive wrapped in exception groups
    http_exc = find_exception_in_exception_groups(exc, StarletteHTTPException)
    if http_exc is not None:
        return await http_error_handler(request, http_exc)
    log_exception_with_details(
        logger, f"[Server] Unhandled error on {request.method} {request.url.path}", exc
    )
    return PlainTextResponse("Internal server error", status_code=500)


instrumentator = Instrumentator()
instrumentator.instrument(app).expose(app)

configure_tracing()
FastAPIInstrumentor.instrument_app(app, excluded_urls="/metrics,/healthz")

app_info = Info("fastapi_app_info", "Application Info")
app_info.info({"app_name": SERVICE_NAME})

app.include_router(proxy_router)
# Last: its catch-all route serves the public directory
app.include_router(site_router)
