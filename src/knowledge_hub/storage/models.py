"""Data models for stored documents and graph elements."""

from __future__ import annotations

from dataclasses import dataclass, field

_PREVIEW_CHARS = 500


@dataclass
class DocumentRecord:
    id: int
    title: str
    content: str
    category: str | None
    tags: list[str]
    file_name: str | None
    classification: dict[str, object] | None
    entities: list[object]
    metadata: dict[str, object]
    is_active: bool
    created_at: str
    updated_at: str

    def to_dict(self, *, preview: bool = False) -> dict[str, object]:
        data: dict[str, object] = {
            "id": self.id,
            "title": self.title,
            "category": self.category,
            "tags": list(self.tags),
            "file_name": self.file_name,
            "classification": self.classification,
            "entities": list(self.entities),
            "metadata": dict(self.metadata),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        if preview:
            data["content_preview"] = self.content[:_PREVIEW_CHARS]
        else:
            data["content"] = self.content
        return data


@dataclass
class GraphNode:
    node_id: str
    type: str
    name: str
    properties: dict[str, object] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.node_id,
            "type": self.type,
            "name": self.name,
            "properties": dict(self.properties),
        }


@dataclass
class GraphEdge:
    edge_id: str
    source_id: str
    target_id: str
    type: str
    confidence: float
    document_id: str | None
    created_at: str
