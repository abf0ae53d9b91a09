import logging
from contextlib import asynccontextmanager
from typing import Optional, Sequence

import httpx
from fastapi import FastAPI
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
from prometheus_client import Info, start_http_server
from prometheus_fastapi_instrumentator import Instrumentator

from site_mirror.models import ProxyProfile
from site_mirror.proxy import router
from site_mirror.proxy.upstream import create_upstream_client
from site_mirror.vars import (
    METRICS_PORT,
    OTLP_ENDPOINT,
    OTLP_HEADERS,
    PORT,
    SERVICE_NAME,
    TARGET_DOMAIN,
)

logger = logging.getLogger("uvicorn.error")


class FilteringSpanExporter(SpanExporter):
    """
    Exporter wrapper that drops the per-chunk ASGI body spans.
    Passthrough streaming would otherwise emit one span per relayed chunk.
    """

    def __init__(self, exporter: SpanExporter):
        self.exporter = exporter

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        filtered_spans = [
            span
            for span in spans
            if not (
                span.attributes
                and span.attributes.get("asgi.event.type") == "http.response.body"
            )
        ]
        if filtered_spans:
            return self.exporter.export(filtered_spans)
        return SpanExportResult.SUCCESS

    def shutdown(self):
        return self.exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000):
        return self.exporter.force_flush(timeout_millis)


def configure_tracing() -> None:
    trace.set_tracer_provider(
        TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
    )
    if OTLP_ENDPOINT:
        otlp_exporter = OTLPSpanExporter(
            endpoint=OTLP_ENDPOINT,
            headers=((OTLP_HEADERS).split(",") if OTLP_HEADERS else None),
        )
        trace.get_tracer_provider().add_span_processor(
            BatchSpanProcessor(FilteringSpanExporter(otlp_exporter))
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Proxy server started on http://localhost:{PORT}")
    logger.info(f"Target domain: {TARGET_DOMAIN}")
    if METRICS_PORT and app.state.instrumented:
        start_http_server(METRICS_PORT)
        logger.info(f"Prometheus metrics on port {METRICS_PORT}")
    try:
        yield
    finally:
        await app.state.upstream_client.aclose()
        logger.info("Upstream connection pool closed")


def create_app(
    upstream_client: Optional[httpx.AsyncClient] = None,
    profile: Optional[ProxyProfile] = None,
    instrument: bool = True,
) -> FastAPI:
    """
    Build the proxy application.

    The upstream client is the single shared connection pool; it is created
    here, before serving starts, and closed when the app shuts down.
    """
    # No docs/openapi routes: every path belongs to the upstream site
    app = FastAPI(lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)
    app.state.upstream_client = upstream_client or create_upstream_client()
    app.state.proxy_profile = profile or ProxyProfile()
    app.state.instrumented = instrument

    if instrument:
        Instrumentator().instrument(app)
        FastAPIInstrumentor.instrument_app(app, excluded_urls="")

    app.include_router(router)
    return app


configure_tracing()

# Add app_name to the metrics
app_info = Info("fastapi_app_info", "Application Info")
app_info.info({"app_name": SERVICE_NAME})

app = create_app()
