from .classifier import RewriteStrategy, RewriteContext, classify, is_static_asset
from .errors import ProxyError, RewriteError, UpstreamStreamError, UpstreamUnreachable
from .route import router

__all__ = [
    "RewriteStrategy",
    "RewriteContext",
    "classify",
    "is_static_asset",
    "ProxyError",
    "RewriteError",
    "UpstreamStreamError",
    "UpstreamUnreachable",
    "router",
]
