"""Application context assembly."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from functools import lru_cache

import httpx
from starlette.applications import Starlette

from knowledge_hub.audit import AuditLog
from knowledge_hub.backends import build_backend_app
from knowledge_hub.clients import ServiceClients
from knowledge_hub.config import Settings, load_settings
from knowledge_hub.orchestrator import Orchestrator, create_orchestrator_app
from knowledge_hub.storage import SqliteStore
from knowledge_hub.storage.seed import seed_sample_documents, seed_sample_graph


@dataclass
class AppContext:
    """Process-wide dependencies.

    The store handle is opened once here and passed explicitly to whatever
    needs it; nothing reaches it through a module global.
    """

    settings: Settings
    store: SqliteStore
    audit: AuditLog


def build_app_context(settings: Settings) -> AppContext:
    store = SqliteStore(settings.storage.sqlite_path, wal=settings.storage.sqlite_wal)
    if settings.storage.seed_sample_data:
        seed_sample_documents(store)
        seed_sample_graph(store)
    return AppContext(settings=settings, store=store, audit=AuditLog(store))


@lru_cache(maxsize=1)
def get_app_context() -> AppContext:
    """Get or create the cached application context."""
    return build_app_context(load_settings())


def create_app(
    service: str | None = None,
    context: AppContext | None = None,
    transports: Mapping[str, httpx.AsyncBaseTransport] | None = None,
) -> Starlette:
    """Build the Starlette app for ``service`` (default: ``KB_SERVICE``).

    ``transports`` only applies to the orchestrator and routes its backend
    clients through the given httpx transports.
    """
    context = context or get_app_context()
    service = service or context.settings.server.service

    if service == "orchestrator":
        clients = ServiceClients.from_settings(context.settings.backends, transports)
        orchestrator = Orchestrator(clients, context.audit, context.store)
        return create_orchestrator_app(orchestrator, on_shutdown=[context.store.close])

    return build_backend_app(service, context.settings, context.store)
