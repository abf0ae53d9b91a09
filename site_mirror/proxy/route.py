import logging
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Optional

import httpx
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse
from opentelemetry import trace

from site_mirror.models import ProxyErrorBody, ProxyProfile
from site_mirror.utils import iso_timestamp
from site_mirror.utils.exception_logging import (
    find_exception_in_exception_groups,
    format_exception_message,
    log_exception_with_details,
)
from site_mirror.utils.traced_requests import traced_request

from .classifier import RewriteStrategy, build_rewrite_context
from .errors import UpstreamStreamError, UpstreamUnreachable
from .headers import filter_response_headers
from .metrics import responses_by_strategy, upstream_failures
from .rewriters import rewrite_body
from .upstream import get_path_and_query, send_upstream, upstream_request_from

router = APIRouter()
tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

PROXY_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]


class ProxyState(str, Enum):
    BUILDING = "building"
    AWAITING_UPSTREAM = "awaiting_upstream"
    CLASSIFYING = "classifying"
    REWRITING = "rewriting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    # client went away before the body was delivered
    CANCELLED = "cancelled"
    ERRORED = "errored"


TERMINAL_STATES = {ProxyState.COMPLETED, ProxyState.CANCELLED, ProxyState.ERRORED}


@dataclass
class ProxyExchange:
    """Per-request bookkeeping for one trip through the proxy."""

    method: str
    path: str
    state: ProxyState = ProxyState.BUILDING
    strategy: Optional[RewriteStrategy] = None
    bytes_sent: int = 0

    def transition(self, state: ProxyState) -> None:
        # terminal states are final
        if self.state in TERMINAL_STATES:
            return
        logger.debug(
            f"[Proxy] {self.method} {self.path}: {self.state.value} -> {state.value}"
        )
        self.state = state

    def finish(self, completed: bool) -> None:
        if completed:
            self.transition(ProxyState.COMPLETED)
        elif self.state not in TERMINAL_STATES:
            logger.info(
                f"[Proxy] Client disconnected during {self.method} {self.path}, "
                f"upstream read cancelled"
            )
            self.transition(ProxyState.CANCELLED)


class UpstreamStreamingResponse(StreamingResponse):
    """
    StreamingResponse that owns the upstream response.

    The upstream body is closed once the ASGI cycle ends, however it ends:
    normal completion, client disconnect, or a failing body iterator.
    """

    def __init__(self, content, *, upstream: httpx.Response, **kwargs):
        super().__init__(content, **kwargs)
        self.upstream = upstream

    async def __call__(self, scope, receive, send) -> None:
        try:
            await super().__call__(scope, receive, send)
        except Exception as e:
            # upstream body failures were already logged by the body iterator
            if find_exception_in_exception_groups(e, UpstreamStreamError) is None:
                log_exception_with_details(logger, "[Proxy] Response aborted:", e)
            raise
        finally:
            await self.upstream.aclose()


def _stream_error(
    e: Exception, exchange: ProxyExchange
) -> UpstreamStreamError:
    exchange.transition(ProxyState.ERRORED)
    upstream_failures.labels(phase="stream").inc()
    logger.error(
        f"[Proxy] Upstream body failed for {exchange.path} "
        f"after {exchange.bytes_sent} bytes: {e}"
    )
    return UpstreamStreamError(
        str(e) or type(e).__name__, url=exchange.path, bytes_sent=exchange.bytes_sent
    )


async def stream_passthrough(
    upstream: httpx.Response, exchange: ProxyExchange
) -> AsyncIterator[bytes]:
    """Relay upstream chunks as they arrive without holding the whole body."""
    exchange.transition(ProxyState.STREAMING)
    completed = False
    try:
        async for chunk in upstream.aiter_bytes():
            exchange.bytes_sent += len(chunk)
            yield chunk
        completed = True
    except httpx.HTTPError as e:
        raise _stream_error(e, exchange) from e
    finally:
        await upstream.aclose()
        exchange.finish(completed)


async def stream_rewritten(
    upstream: httpx.Response, exchange: ProxyExchange, strategy: RewriteStrategy
) -> AsyncIterator[bytes]:
    """Buffer the whole upstream body, rewrite it once, and send it as one chunk."""
    exchange.transition(ProxyState.REWRITING)
    buffer = bytearray()
    completed = False
    try:
        try:
            async for chunk in upstream.aiter_bytes():
                buffer.extend(chunk)
        except httpx.HTTPError as e:
            raise _stream_error(e, exchange) from e
        finally:
            await upstream.aclose()

        body = rewrite_body(bytes(buffer), strategy)
        exchange.bytes_sent = len(body)
        yield body
        completed = True
    finally:
        exchange.finish(completed)


def proxy_error_response(error: Exception, path: str) -> JSONResponse:
    body = ProxyErrorBody(
        message=format_exception_message(error),
        url=path,
        timestamp=iso_timestamp(),
    )
    return JSONResponse(status_code=500, content=body.model_dump())


def get_profile(request: Request) -> ProxyProfile:
    return getattr(request.app.state, "proxy_profile", None) or ProxyProfile()


async def forward_to_target(request: Request) -> Response:
    """
    Forward one inbound request to the upstream origin.

    - Builds a safelisted upstream request
    - Picks passthrough, HTML rewrite or widget script rewrite
    - Filters response headers before any body byte is written
    - Answers 500 with a JSON body when the upstream is unreachable
    """
    client: httpx.AsyncClient = request.app.state.upstream_client
    profile = get_profile(request)
    exchange = ProxyExchange(method=request.method, path=get_path_and_query(request))

    with traced_request(
        tracer,
        "proxy_request",
        f"Proxying: {exchange.method} {exchange.path}",
        {"proxy.method": exchange.method, "proxy.path": exchange.path},
    ) as span:
        try:
            upstream_request = await upstream_request_from(request)
            span.set_attribute("proxy.target_url", upstream_request.url)
            exchange.transition(ProxyState.AWAITING_UPSTREAM)
            upstream = await send_upstream(client, upstream_request)
        except UpstreamUnreachable as e:
            exchange.transition(ProxyState.ERRORED)
            upstream_failures.labels(phase="connect").inc()
            span.set_attribute("proxy.error", type(e.cause or e).__name__)
            return proxy_error_response(e, exchange.path)
        except Exception as e:
            exchange.transition(ProxyState.ERRORED)
            span.set_attribute("proxy.error", str(e))
            log_exception_with_details(logger, f"[Proxy] {exchange.path}:", e)
            return proxy_error_response(e, exchange.path)

        try:
            exchange.transition(ProxyState.CLASSIFYING)
            span.set_attribute("proxy.status_code", upstream.status_code)

            context = build_rewrite_context(
                exchange.path,
                upstream.headers.get("content-type", ""),
                widget_script_rewrite=profile.widget_script_rewrite,
            )
            exchange.strategy = context.strategy
            span.set_attribute("proxy.strategy", context.strategy.value)
            responses_by_strategy.labels(strategy=context.strategy.value).inc()

            headers = filter_response_headers(
                upstream.headers,
                context,
                static_asset_optimization=profile.static_asset_optimization,
            )

            if context.strategy.buffered:
                if context.strategy is RewriteStrategy.REWRITE_WIDGET_SCRIPT:
                    logger.info(
                        f"Widget script found at {exchange.path}, replacing iframe address"
                    )
                body = stream_rewritten(upstream, exchange, context.strategy)
            else:
                body = stream_passthrough(upstream, exchange)

            return UpstreamStreamingResponse(
                body,
                upstream=upstream,
                status_code=upstream.status_code,
                headers=headers,
            )
        except Exception:
            exchange.transition(ProxyState.ERRORED)
            await upstream.aclose()
            raise


@router.api_route("/{path:path}", methods=PROXY_METHODS)
async def proxy_all(request: Request, path: str):
    """Catch-all route that proxies every request to the upstream origin."""
    return await forward_to_target(request)
