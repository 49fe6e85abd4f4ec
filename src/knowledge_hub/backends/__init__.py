"""Backend services, each a Starlette app built from a list of ``ToolSpec``."""

from __future__ import annotations

from starlette.applications import Starlette

from knowledge_hub.backends.base import ToolSpec, create_backend_app
from knowledge_hub.backends.generation import create_generation_app
from knowledge_hub.backends.graph import create_graph_app
from knowledge_hub.backends.search import create_search_app
from knowledge_hub.backends.storage import create_storage_app
from knowledge_hub.config import Settings
from knowledge_hub.providers import build_search_provider, build_text_model
from knowledge_hub.storage.db import SqliteStore

__all__ = ["ToolSpec", "build_backend_app", "create_backend_app"]


def build_backend_app(service: str, settings: Settings, store: SqliteStore) -> Starlette:
    """Build the app for one backend from settings and a shared store handle."""
    if service == "storage":
        return create_storage_app(store)
    if service == "graph":
        return create_graph_app(store)
    if service == "generation":
        return create_generation_app(build_text_model(settings.providers))
    if service == "search":
        return create_search_app(
            store,
            build_search_provider(settings.providers),
            fetch_timeout=settings.providers.fetch_timeout_seconds,
        )
    raise ValueError(f"Unknown backend service: {service}")
