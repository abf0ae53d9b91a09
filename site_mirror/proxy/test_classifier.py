import pytest

from site_mirror.proxy.classifier import (
    RewriteStrategy,
    build_rewrite_context,
    classify,
    is_static_asset,
)

WIDGET_PATH = "/static/weinbot-plugin/dist/widget.min.js"


class TestClassify:
    @pytest.mark.parametrize(
        "content_type",
        ["application/javascript", "text/javascript; charset=utf-8", "application/ecmascript"],
    )
    def test_widget_script_needs_marker_and_script_type(self, content_type):
        assert classify(WIDGET_PATH, content_type) == RewriteStrategy.REWRITE_WIDGET_SCRIPT

    def test_marker_without_script_type_is_not_widget(self):
        assert classify("/weinbot-plugin/readme", "text/plain") == RewriteStrategy.PASSTHROUGH
        assert (
            classify("/weinbot-plugin/index.html", "text/html")
            == RewriteStrategy.REWRITE_HTML
        )

    def test_script_without_marker_passes_through(self):
        assert classify("/js/app.js", "application/javascript") == RewriteStrategy.PASSTHROUGH

    def test_html_is_rewritten(self):
        assert classify("/ru/", "text/html; charset=UTF-8") == RewriteStrategy.REWRITE_HTML

    def test_content_type_tokens_are_case_insensitive(self):
        assert classify("/", "Text/HTML") == RewriteStrategy.REWRITE_HTML

    @pytest.mark.parametrize(
        "content_type", ["image/png", "application/json", "text/css", "", None]
    )
    def test_everything_else_passes_through(self, content_type):
        assert classify("/anything", content_type) == RewriteStrategy.PASSTHROUGH

    def test_widget_rewrite_can_be_switched_off(self):
        result = classify(WIDGET_PATH, "application/javascript", widget_script_rewrite=False)

        assert result == RewriteStrategy.PASSTHROUGH


class TestIsStaticAsset:
    @pytest.mark.parametrize(
        "path",
        [
            "/images/logo.png",
            "/images/PHOTO.JPG",
            "/img/a.jpeg?v=3",
            "/fonts/icons.woff2",
            "/css/site.css",
            "/js/app.js#hash",
            "/favicon.ico",
        ],
    )
    def test_known_extensions(self, path):
        assert is_static_asset(path)

    @pytest.mark.parametrize(
        "path", ["/", "/ru/products", "/api/data.json", "/js/app.jsx", "/page.html"]
    )
    def test_other_paths(self, path):
        assert not is_static_asset(path)


class TestRewriteContext:
    def test_flags_are_computed_together(self):
        context = build_rewrite_context("/images/logo.png", "Image/PNG")

        assert context.is_static_asset
        assert context.is_image
        assert not context.is_html
        assert not context.is_widget_script
        assert context.strategy == RewriteStrategy.PASSTHROUGH
        assert not context.strategy.buffered

    def test_widget_context(self):
        context = build_rewrite_context(WIDGET_PATH, "application/javascript")

        assert context.is_widget_script
        assert context.is_static_asset
        assert not context.is_image
        assert context.strategy.buffered
