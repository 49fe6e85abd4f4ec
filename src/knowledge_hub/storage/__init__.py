"""Persistence for documents, the knowledge graph and usage logs."""

from knowledge_hub.storage.db import SqliteStore

__all__ = ["SqliteStore"]
