from __future__ import annotations

import os
import random
from collections.abc import Callable

import httpx
import pytest
from starlette.applications import Starlette

from knowledge_hub import config
from knowledge_hub.audit import AuditLog
from knowledge_hub.backends.generation import create_generation_app
from knowledge_hub.backends.graph import create_graph_app
from knowledge_hub.backends.search import create_search_app
from knowledge_hub.backends.storage import create_storage_app
from knowledge_hub.clients import ServiceClients
from knowledge_hub.config import BackendSettings
from knowledge_hub.extraction import PatternExtractor
from knowledge_hub.orchestrator import Orchestrator, create_orchestrator_app
from knowledge_hub.providers.text import MockTextModel
from knowledge_hub.providers.web import SimulatedSearchProvider
from knowledge_hub.storage import SqliteStore


def pytest_sessionstart(session: pytest.Session) -> None:
    # Never reach real providers from unit tests.
    os.environ["KB_PROVIDER_MODE"] = "mock"


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> None:
    config._load_settings_cached.cache_clear()
    yield
    config._load_settings_cached.cache_clear()


@pytest.fixture
def store(tmp_path) -> SqliteStore:
    sqlite_store = SqliteStore(str(tmp_path / "knowledge.sqlite"))
    yield sqlite_store
    sqlite_store.close()


@pytest.fixture
def audit(store: SqliteStore) -> AuditLog:
    return AuditLog(store)


@pytest.fixture
def backend_apps(store: SqliteStore) -> dict[str, Starlette]:
    return {
        "storage": create_storage_app(store),
        "graph": create_graph_app(store, PatternExtractor(random.Random(7))),
        "generation": create_generation_app(MockTextModel(random.Random(7))),
        "search": create_search_app(store, SimulatedSearchProvider()),
    }


def unreachable_transport() -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    return httpx.MockTransport(handler)


def timeout_transport() -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("read timed out", request=request)

    return httpx.MockTransport(handler)


@pytest.fixture
def unreachable() -> Callable[[], httpx.MockTransport]:
    return unreachable_transport


@pytest.fixture
def timed_out() -> Callable[[], httpx.MockTransport]:
    return timeout_transport


class RecordingTransport(httpx.AsyncBaseTransport):
    """Forwards to an ASGI app and remembers every request path."""

    def __init__(self, app: Starlette) -> None:
        self._inner = httpx.ASGITransport(app=app)
        self.paths: list[str] = []

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        self.paths.append(request.url.path)
        return await self._inner.handle_async_request(request)


@pytest.fixture
def recording() -> Callable[[Starlette], RecordingTransport]:
    return RecordingTransport


@pytest.fixture
def make_transports(
    backend_apps: dict[str, Starlette],
) -> Callable[..., dict[str, httpx.AsyncBaseTransport]]:
    """Transports to the in-process backends, with per-backend overrides."""

    def factory(**overrides: httpx.AsyncBaseTransport) -> dict[str, httpx.AsyncBaseTransport]:
        transports: dict[str, httpx.AsyncBaseTransport] = {
            name: httpx.ASGITransport(app=app) for name, app in backend_apps.items()
        }
        transports.update(overrides)
        return transports

    return factory


@pytest.fixture
def make_orchestrator(
    store: SqliteStore,
    audit: AuditLog,
    make_transports: Callable[..., dict[str, httpx.AsyncBaseTransport]],
) -> Callable[..., Orchestrator]:
    def factory(**overrides: httpx.AsyncBaseTransport) -> Orchestrator:
        clients = ServiceClients.from_settings(BackendSettings(), make_transports(**overrides))
        return Orchestrator(clients, audit, store)

    return factory


@pytest.fixture
def make_orchestrator_app(
    make_orchestrator: Callable[..., Orchestrator],
) -> Callable[..., Starlette]:
    def factory(**overrides: httpx.AsyncBaseTransport) -> Starlette:
        return create_orchestrator_app(make_orchestrator(**overrides))

    return factory
