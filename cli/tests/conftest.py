"""Shared fixtures for CLI tests."""

from __future__ import annotations

from collections.abc import Callable

import httpx
import pytest


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's shell configuration out of the tests."""
    for name in ("PTRS_API_URL", "PTRS_API_TOKEN", "PTRS_TENANT_ID", "PTRS_ACTOR_ID"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def mock_http(monkeypatch: pytest.MonkeyPatch) -> Callable[[Callable[[httpx.Request], httpx.Response]], list]:
    """Route ``httpx.Client`` through a :class:`httpx.MockTransport`.

    Returns an installer taking a request handler; the list it returns
    collects every request sent.
    """
    real_client = httpx.Client

    def _install(handler: Callable[[httpx.Request], httpx.Response]) -> list[httpx.Request]:
        seen: list[httpx.Request] = []

        def _recording(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return handler(request)

        def _client(**kwargs):
            return real_client(transport=httpx.MockTransport(_recording), **kwargs)

        monkeypatch.setattr(httpx, "Client", _client)
        return seen

    return _install
