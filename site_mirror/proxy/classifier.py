import re
from dataclasses import dataclass
from enum import Enum

from site_mirror.vars import STATIC_ASSET_EXTENSIONS, WIDGET_MARKER

HTML_TOKENS = ("text/html",)
SCRIPT_TOKENS = ("javascript", "ecmascript")

STATIC_ASSET_PATTERN = re.compile(
    r"\.(?:" + "|".join(STATIC_ASSET_EXTENSIONS) + r")(?=$|[?#/;&])",
    re.IGNORECASE,
)


class RewriteStrategy(str, Enum):
    """How a response body travels from upstream to the client."""

    PASSTHROUGH = "passthrough"
    REWRITE_HTML = "rewrite_html"
    REWRITE_WIDGET_SCRIPT = "rewrite_widget_script"

    @property
    def buffered(self) -> bool:
        return self is not RewriteStrategy.PASSTHROUGH


@dataclass(frozen=True)
class RewriteContext:
    path: str
    content_type: str
    is_static_asset: bool
    is_widget_script: bool
    is_html: bool
    strategy: RewriteStrategy

    @property
    def is_image(self) -> bool:
        return "image/" in self.content_type


def _contains_any(value: str, tokens) -> bool:
    return any(token in value for token in tokens)


def is_static_asset(path: str) -> bool:
    return STATIC_ASSET_PATTERN.search(path or "") is not None


def is_widget_script(path: str, content_type: str) -> bool:
    return WIDGET_MARKER in (path or "") and _contains_any(
        (content_type or "").lower(), SCRIPT_TOKENS
    )


def is_html(content_type: str) -> bool:
    return _contains_any((content_type or "").lower(), HTML_TOKENS)


def classify(
    path: str, content_type: str, widget_script_rewrite: bool = True
) -> RewriteStrategy:
    if widget_script_rewrite and is_widget_script(path, content_type):
        return RewriteStrategy.REWRITE_WIDGET_SCRIPT
    if is_html(content_type):
        return RewriteStrategy.REWRITE_HTML
    return RewriteStrategy.PASSTHROUGH


def build_rewrite_context(
    path: str, content_type: str, widget_script_rewrite: bool = True
) -> RewriteContext:
    """Compute every per-response flag in one place."""
    content_type = content_type or ""
    return RewriteContext(
        path=path,
        content_type=content_type.lower(),
        is_static_asset=is_static_asset(path),
        is_widget_script=is_widget_script(path, content_type),
        is_html=is_html(content_type),
        strategy=classify(path, content_type, widget_script_rewrite),
    )
