"""
Body rewriting for buffered responses.

Every transformation is a PatchRule: a compiled pattern plus a replacement
(a literal string or a callable receiving the match). Rule sets run in order
over the decoded body. If decoding or any rule fails, the original bytes
are returned unchanged, so a page is never lost to a rewrite bug.

HTML pages:
    1. strip the upstream origin so same-origin links become root-relative
    2. make remaining absolute URLs protocol-relative
    3. keep root-relative href/src/action attributes as they are
    4. keep root-relative CSS url() references as they are
    5. add <base href="/"> after the first <head>
    6. point the chatbot widget endpoint at the replacement address

Widget script (the weinbot plugin bundle):
    1. swap the minified iframe construction for a pinned one
    2. swap the IFRAME_SRC assignment
    3. prepend a runtime guard that fixes iframes the first two rules missed
"""

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from string import Template
from typing import Callable, Optional, Sequence, Tuple, Union
from urllib.parse import urlsplit

from site_mirror.utils.exception_logging import log_exception_with_details
from site_mirror.vars import (
    TARGET_DOMAIN,
    WIDGET_HOST,
    WIDGET_REPLACEMENT_URL,
    WIDGET_URL,
)

from .classifier import RewriteStrategy
from .errors import RewriteError
from .metrics import rewrite_fallbacks

logger = logging.getLogger("uvicorn.error")

Replacement = Union[str, Callable[[re.Match], str]]

BASE_TAG = '<base href="/">'

IFRAME_SANDBOX = (
    "allow-scripts allow-same-origin allow-forms allow-popups "
    "allow-popups-to-escape-sandbox"
)

IFRAME_TEMPLATE = """{decl} {var} = {fn}("iframe", {{
  id: `widget-iframe-${{this.UUID}}`,
  className: "iframe-style",
  src: "{src}",
  frameborder: "0",
  sandbox: "{sandbox}",
  allow: "clipboard-write"
}})"""

IFRAME_GUARD_TEMPLATE = Template(
    """(function() {
  var originalCreateElement = document.createElement;
  document.createElement = function(tagName) {
    var element = originalCreateElement.apply(document, arguments);
    if (String(tagName).toLowerCase() === 'iframe') {
      setTimeout(function() {
        if (!element.src || element.src.indexOf('$widget_host') !== -1) {
          element.src = '$replacement_url';
        }
      }, 0);
    }
    return element;
  };
})();
"""
)


@dataclass(frozen=True)
class PatchRule:
    name: str
    pattern: re.Pattern
    replacement: Replacement
    count: int = 0

    def apply(self, text: str) -> str:
        replacement = self.replacement
        if not callable(replacement):
            literal = replacement

            def replacement(_match: re.Match) -> str:
                return literal

        return self.pattern.sub(replacement, text, count=self.count)


def apply_rules(text: str, rules: Sequence[PatchRule]) -> str:
    """Run rules in order. Any failure is raised as RewriteError naming the rule."""
    for rule in rules:
        try:
            text = rule.apply(text)
        except Exception as e:
            raise RewriteError(f"Rule '{rule.name}' failed: {e}", rule=rule.name) from e
    return text


def _any_scheme(url: str) -> str:
    """Pattern matching url with http:, https: or no scheme."""
    parsed = urlsplit(url)
    return r"(?:https?:)?//" + re.escape(parsed.netloc + parsed.path)


def _keep_match(match: re.Match) -> str:
    return match.group(0)


def _insert_base_tag(match: re.Match) -> str:
    if match.group("base"):
        return match.group(0)
    return match.group(0) + BASE_TAG


@lru_cache(maxsize=8)
def html_rules(
    origin: str = TARGET_DOMAIN,
    widget_url: str = WIDGET_URL,
    replacement_url: str = WIDGET_REPLACEMENT_URL,
) -> Tuple[PatchRule, ...]:
    pinned = urlsplit(replacement_url)
    return (
        PatchRule(
            "strip-origin",
            re.compile(_any_scheme(origin) + r"(?![\w.-])", re.IGNORECASE),
            "",
        ),
        PatchRule(
            "protocol-relative",
            re.compile(
                r"https?://(?!"
                + re.escape(pinned.netloc + pinned.path)
                + r"(?![\w.-]))",
                re.IGNORECASE,
            ),
            "//",
        ),
        PatchRule(
            "root-relative-attributes",
            re.compile(r"""(href|src|action)=(["'])/(?!/)"""),
            _keep_match,
        ),
        PatchRule(
            "root-relative-css-urls",
            re.compile(r"""url\(\s*["']?/(?!/)"""),
            _keep_match,
        ),
        PatchRule(
            "base-href",
            re.compile(
                r'<head(?:\s[^>]*)?>(?P<base>\s*<base href="/">)?', re.IGNORECASE
            ),
            _insert_base_tag,
            count=1,
        ),
        PatchRule(
            "widget-endpoint",
            re.compile(_any_scheme(widget_url) + r"(?![\w.-])", re.IGNORECASE),
            replacement_url,
        ),
    )


@lru_cache(maxsize=8)
def widget_script_rules(
    widget_url: str = WIDGET_URL,
    widget_host: str = WIDGET_HOST,
    replacement_url: str = WIDGET_REPLACEMENT_URL,
) -> Tuple[PatchRule, ...]:
    def pinned_iframe(match: re.Match) -> str:
        return IFRAME_TEMPLATE.format(
            decl=match.group("decl"),
            var=match.group("var"),
            fn=match.group("fn"),
            src=replacement_url,
            sandbox=IFRAME_SANDBOX,
        )

    guard = IFRAME_GUARD_TEMPLATE.substitute(
        widget_host=widget_host, replacement_url=replacement_url
    )
    return (
        PatchRule(
            "iframe-construction",
            re.compile(
                r"\b(?P<decl>const|let|var)\s+(?P<var>[\w$]+)\s*=\s*(?P<fn>[\w$]+)"
                r"\(\s*(?P<q>[\"'])iframe(?P=q)\s*,\s*\{[\s\S]*?"
                r"\bsrc\s*:\s*this\.IFRAME_SRC\b[\s\S]*?\}\s*\)"
            ),
            pinned_iframe,
            count=1,
        ),
        PatchRule(
            "iframe-src-assignment",
            re.compile(
                r"this\.IFRAME_SRC\s*=\s*(?P<q>[\"'])" + re.escape(widget_url) + r"(?P=q)"
            ),
            f'this.IFRAME_SRC = "{replacement_url}"',
        ),
        PatchRule(
            "create-element-guard",
            re.compile(r"\A"),
            guard,
            count=1,
        ),
    )


def rewrite_html(html: str, origin: str = TARGET_DOMAIN) -> str:
    return apply_rules(html, html_rules(origin))


def rewrite_widget_script(script: str) -> str:
    return apply_rules(script, widget_script_rules())


def rewrite_body(
    content: bytes, strategy: RewriteStrategy, origin: Optional[str] = None
) -> bytes:
    """
    Transform a fully buffered body for the given strategy.
    Falls back to the original bytes on any decoding or rewrite failure.
    """
    if strategy is RewriteStrategy.PASSTHROUGH or not content:
        return content

    try:
        text = content.decode("utf-8")
        if strategy is RewriteStrategy.REWRITE_HTML:
            text = rewrite_html(text, origin or TARGET_DOMAIN)
        elif strategy is RewriteStrategy.REWRITE_WIDGET_SCRIPT:
            text = rewrite_widget_script(text)
            logger.info("Widget script iframe address replaced")
        return text.encode("utf-8")
    except (UnicodeError, RewriteError) as e:
        rewrite_fallbacks.labels(strategy=strategy.value).inc()
        log_exception_with_details(
            logger, f"[Rewrite:{strategy.value}]", e, level=logging.WARNING
        )
        return content
