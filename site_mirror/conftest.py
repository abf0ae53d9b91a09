import inspect

import httpx
import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def upstream_calls():
    """Requests received by the mocked upstream, in order."""
    return []


@pytest.fixture
def make_proxy_client(upstream_calls):
    """Build a TestClient for a proxy whose upstream is served by a handler."""
    from site_mirror.server import create_app

    def _make(handler, profile=None):
        async def recording_handler(request: httpx.Request):
            upstream_calls.append(request)
            result = handler(request)
            if inspect.isawaitable(result):
                result = await result
            return result

        upstream = httpx.AsyncClient(
            transport=httpx.MockTransport(recording_handler),
            follow_redirects=True,
        )
        app = create_app(upstream_client=upstream, profile=profile, instrument=False)
        return TestClient(app)

    return _make
