import httpx
from fastapi.testclient import TestClient

from site_mirror.models import ProxyProfile
from site_mirror.server import create_app


def _upstream(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_lifespan_closes_the_shared_pool():
    upstream = _upstream(lambda request: httpx.Response(200, text="hello"))
    app = create_app(upstream_client=upstream, instrument=False)

    with TestClient(app) as client:
        assert client.get("/").text == "hello"
        assert not upstream.is_closed

    assert upstream.is_closed


def test_one_pool_is_shared_by_all_requests():
    seen = []
    upstream = _upstream(lambda request: seen.append(request) or httpx.Response(200))
    app = create_app(upstream_client=upstream, instrument=False)
    client = TestClient(app)

    for i in range(5):
        client.get(f"/page/{i}")

    assert app.state.upstream_client is upstream
    assert [r.url.path for r in seen] == [f"/page/{i}" for i in range(5)]


def test_default_profile_and_pool_are_created():
    app = create_app(instrument=False)

    assert isinstance(app.state.upstream_client, httpx.AsyncClient)
    assert app.state.proxy_profile == ProxyProfile()
    assert app.openapi_url is None
    assert app.docs_url is None


def test_main_leaves_date_and_server_to_the_upstream(monkeypatch):
    from site_mirror import __main__ as entrypoint

    calls = []
    monkeypatch.setattr(
        entrypoint.uvicorn, "run", lambda *args, **kwargs: calls.append((args, kwargs))
    )

    entrypoint.main()

    args, kwargs = calls[0]
    assert args == ("site_mirror.server:app",)
    assert kwargs["server_header"] is False
    assert kwargs["date_header"] is False
