"""Async HTTP clients for the backend services."""

from knowledge_hub.clients.base import BackendClient, HealthState
from knowledge_hub.clients.services import (
    GenerationClient,
    GraphClient,
    SearchClient,
    ServiceClients,
    StorageClient,
)

__all__ = [
    "BackendClient",
    "GenerationClient",
    "GraphClient",
    "HealthState",
    "SearchClient",
    "ServiceClients",
    "StorageClient",
]
