import importlib

import pytest

import site_mirror.vars as vars_module


@pytest.fixture
def reload_vars(monkeypatch):
    yield lambda: importlib.reload(vars_module)
    monkeypatch.undo()
    importlib.reload(vars_module)


def test_defaults(monkeypatch, reload_vars):
    for name in ("PORT", "METRICS_PORT", "STATIC_ASSET_OPTIMIZATION", "WIDGET_SCRIPT_REWRITE"):
        monkeypatch.delenv(name, raising=False)

    module = reload_vars()

    assert module.PORT == 3000
    assert module.METRICS_PORT is None
    assert module.STATIC_ASSET_OPTIMIZATION is True
    assert module.WIDGET_SCRIPT_REWRITE is True


def test_port_and_profile_from_environment(monkeypatch, reload_vars):
    monkeypatch.setenv("PORT", "8081")
    monkeypatch.setenv("METRICS_PORT", "9100")
    monkeypatch.setenv("STATIC_ASSET_OPTIMIZATION", "false")
    monkeypatch.setenv("WIDGET_SCRIPT_REWRITE", "FALSE")

    module = reload_vars()

    assert module.PORT == 8081
    assert module.METRICS_PORT == 9100
    assert module.STATIC_ASSET_OPTIMIZATION is False
    assert module.WIDGET_SCRIPT_REWRITE is False


def test_fixed_constants():
    assert vars_module.TARGET_DOMAIN == "https://www.weintek.com"
    assert vars_module.STATIC_ASSET_MAX_AGE == 604800
    assert vars_module.UPSTREAM_TIMEOUT == 30.0
    assert vars_module.UPSTREAM_MAX_REDIRECTS == 5
    assert vars_module.UPSTREAM_MAX_CONNECTIONS == 100
    assert vars_module.UPSTREAM_MAX_KEEPALIVE_CONNECTIONS == 10
