import httpx
import pytest


@pytest.fixture
def mock_client():
    """Build an AsyncClient whose transport is a handler function. Returns (client, calls)."""

    def _make(handler):
        calls: list[httpx.Request] = []

        def record(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return handler(request)

        return httpx.AsyncClient(transport=httpx.MockTransport(record)), calls

    return _make
