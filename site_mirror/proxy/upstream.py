import logging
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

import httpx
from fastapi import Request

from site_mirror.vars import (
    DEFAULT_ACCEPT,
    DEFAULT_ACCEPT_LANGUAGE,
    DEFAULT_USER_AGENT,
    TARGET_DOMAIN,
    UPSTREAM_MAX_CONNECTIONS,
    UPSTREAM_MAX_KEEPALIVE_CONNECTIONS,
    UPSTREAM_MAX_REDIRECTS,
    UPSTREAM_TIMEOUT,
)

from .errors import UpstreamUnreachable

logger = logging.getLogger("uvicorn.error")

# Only these methods forward the inbound body
BODY_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

# Copied verbatim only when the client sent them
OPTIONAL_FORWARDED_HEADERS = (
    ("cookie", "Cookie"),
    ("referer", "Referer"),
    ("content-type", "Content-Type"),
    ("if-none-match", "If-None-Match"),
    ("if-modified-since", "If-Modified-Since"),
)


@dataclass
class UpstreamRequest:
    """Outbound request descriptor derived from one inbound request."""

    method: str
    url: str
    path: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None


def create_upstream_client(
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """
    Create the process-wide upstream client.

    The connection pool is bounded and shared by every request. Upstream
    certificates are not verified, redirects are followed, and no status is
    treated as an error so 4xx/5xx reach the client unchanged.
    """
    return httpx.AsyncClient(
        verify=False,
        timeout=httpx.Timeout(UPSTREAM_TIMEOUT),
        follow_redirects=True,
        max_redirects=UPSTREAM_MAX_REDIRECTS,
        limits=httpx.Limits(
            max_connections=UPSTREAM_MAX_CONNECTIONS,
            max_keepalive_connections=UPSTREAM_MAX_KEEPALIVE_CONNECTIONS,
        ),
        transport=transport,
    )


def prepare_headers(inbound: Mapping[str, str]) -> Dict[str, str]:
    """
    Build the safelisted header set sent upstream.
    Anything not named here (Host, Connection, X-Forwarded-*, ...) is dropped.
    """
    headers = {
        "User-Agent": inbound.get("user-agent") or DEFAULT_USER_AGENT,
        "Accept": inbound.get("accept") or DEFAULT_ACCEPT,
        "Accept-Language": inbound.get("accept-language") or DEFAULT_ACCEPT_LANGUAGE,
    }
    for name_lower, name in OPTIONAL_FORWARDED_HEADERS:
        value = inbound.get(name_lower)
        if value:
            headers[name] = value
    return headers


def build_upstream_request(
    method: str,
    path_and_query: str,
    headers: Mapping[str, str],
    body: Optional[bytes] = None,
    origin: str = TARGET_DOMAIN,
) -> UpstreamRequest:
    method = method.upper()
    return UpstreamRequest(
        method=method,
        url=origin + path_and_query,
        path=path_and_query,
        headers=prepare_headers(headers),
        body=body if method in BODY_METHODS else None,
    )


def get_path_and_query(request: Request) -> str:
    """Return the inbound path and query exactly as the client sent them."""
    raw_path = request.scope.get("raw_path")
    if raw_path:
        path = raw_path.split(b"?", 1)[0].decode("latin-1")
    else:
        path = request.scope.get("path", "/")
    query_string = request.scope.get("query_string", b"")
    if query_string:
        path = f"{path}?{query_string.decode('latin-1')}"
    return path


async def upstream_request_from(request: Request) -> UpstreamRequest:
    """Derive the forwarding request from an inbound Starlette request."""
    method = request.method.upper()
    body = await request.body() if method in BODY_METHODS else None
    return build_upstream_request(
        method,
        get_path_and_query(request),
        request.headers,
        body,
    )


async def send_upstream(
    client: httpx.AsyncClient, upstream_request: UpstreamRequest
) -> httpx.Response:
    """
    Issue the upstream request with a streamed body.
    Any transport-level failure is raised as UpstreamUnreachable.
    """
    outbound = client.build_request(
        method=upstream_request.method,
        url=upstream_request.url,
        headers=upstream_request.headers,
        content=upstream_request.body,
    )
    try:
        return await client.send(outbound, stream=True)
    except httpx.HTTPError as e:
        logger.error(
            f"Upstream request failed for {upstream_request.method} {upstream_request.url}: {e}"
        )
        raise UpstreamUnreachable(
            str(e) or type(e).__name__, url=upstream_request.path, cause=e
        ) from e
