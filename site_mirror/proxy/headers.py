from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple, Union

import httpx

from site_mirror.utils import http_date, iso_timestamp, utc_now
from site_mirror.vars import PROXY_SERVER_ID, STATIC_ASSET_MAX_AGE

from .classifier import RewriteContext

# Hop-by-hop headers (RFC 9110) plus headers invalidated by decompression or rewriting
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "trailers",
    "transfer-encoding",
    "upgrade",
}
BODY_FRAMING_HEADERS = {"content-encoding", "content-length"}
# The proxied site is embedded in ways its own policy forbids
SECURITY_HEADERS = {"x-frame-options", "content-security-policy"}

DENIED_RESPONSE_HEADERS = HOP_BY_HOP_HEADERS | BODY_FRAMING_HEADERS | SECURITY_HEADERS

STATIC_ASSET_CACHE_CONTROL = f"public, max-age={STATIC_ASSET_MAX_AGE}, immutable"

HeaderSource = Union[
    httpx.Headers,
    Dict[str, Union[str, List[str]]],
    Iterable[Tuple[str, str]],
]


def _header_items(headers: HeaderSource) -> Iterable[Tuple[str, str]]:
    if isinstance(headers, httpx.Headers):
        return headers.multi_items()
    if isinstance(headers, dict):
        items = []
        for name, value in headers.items():
            if isinstance(value, (list, tuple)):
                items.extend((name, v) for v in value)
            else:
                items.append((name, value))
        return items
    return headers


def filter_response_headers(
    upstream_headers: HeaderSource,
    context: RewriteContext,
    static_asset_optimization: bool = True,
    now: Optional[datetime] = None,
) -> Dict[str, str]:
    """
    Compute the headers written to the client.

    Runs before any body byte is sent, so nothing here may depend on the
    final body length.
    """
    collected: Dict[str, List[str]] = {}
    for name, value in _header_items(upstream_headers):
        name_lower = name.lower()
        if name_lower in DENIED_RESPONSE_HEADERS or value is None or value == "":
            continue
        collected.setdefault(name_lower, []).append(value)

    response_headers = {name: ", ".join(values) for name, values in collected.items()}

    now = now or utc_now()
    # the server adds no Date of its own; keep upstream's when present
    response_headers.setdefault("date", http_date(now))
    if static_asset_optimization and context.is_static_asset and context.is_image:
        response_headers["cache-control"] = STATIC_ASSET_CACHE_CONTROL
        response_headers["expires"] = http_date(now, STATIC_ASSET_MAX_AGE)

    response_headers["x-proxy-server"] = PROXY_SERVER_ID
    response_headers["x-proxy-timestamp"] = iso_timestamp(now)
    return response_headers
