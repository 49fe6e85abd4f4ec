"""Knowledge graph backend: extraction, persistence and traversal."""

from __future__ import annotations

import logging
import uuid

from starlette.applications import Starlette

from knowledge_hub.backends.base import ToolSpec, create_backend_app
from knowledge_hub.errors import NotFoundError
from knowledge_hub.extraction import Extractor, PatternExtractor
from knowledge_hub.storage.db import SqliteStore
from knowledge_hub.storage.models import GraphEdge, GraphNode
from knowledge_hub.utils.blocking import run_blocking
from knowledge_hub.utils.jsonschema import object_schema
from knowledge_hub.utils.time import utc_now_iso

logger = logging.getLogger(__name__)

SERVICE_NAME = "graph"

_ENTITY_SCHEMA = object_schema(
    {
        "id": {"type": "string"},
        "type": {"type": "string", "minLength": 1},
        "name": {"type": "string", "minLength": 1},
        "properties": {"type": "object"},
    },
    required=("type", "name"),
)
_RELATIONSHIP_SCHEMA = object_schema(
    {
        "id": {"type": "string"},
        "source_id": {"type": "string"},
        "target_id": {"type": "string"},
        "type": {"type": "string", "minLength": 1},
        "properties": {"type": "object"},
    },
    required=("source_id", "target_id", "type"),
)


def node_id_for(entity_type: str, name: str) -> str:
    """Stable graph key for an entity: the same name and type always map to one node."""
    return f"{entity_type.strip().lower()}:{name.strip().lower()}"


def _relationship_view(edge: GraphEdge, target: GraphNode) -> dict[str, object]:
    return {
        "type": edge.type,
        "target": {"id": target.node_id, "type": target.type, "name": target.name},
        "confidence": edge.confidence,
    }


def graph_tools(store: SqliteStore, extractor: Extractor) -> list[ToolSpec]:
    async def extract_graph(params: dict[str, object]) -> dict[str, object]:
        text = str(params["text"])
        document_id = params.get("document_id")
        doc_ref = str(document_id) if document_id is not None else None
        result = extractor.extract(text)
        return {
            "graph": {
                "entities": [entity.to_dict(doc_ref) for entity in result.entities],
                "relationships": [rel.to_dict(doc_ref) for rel in result.relationships],
                "document_id": document_id,
            },
            "entities_count": len(result.entities),
            "relationships_count": len(result.relationships),
            "processing_info": {"text_length": len(text)},
        }

    def persist_graph(
        entities: list[dict[str, object]],
        relationships: list[dict[str, object]],
        doc_ref: str | None,
    ) -> tuple[int, int]:
        now = utc_now_iso()
        # Extraction ids (person_1, ...) are local to one response; map them
        # onto persistent node keys before writing edges.
        local_to_node: dict[str, str] = {}
        stored_entities = 0
        for entity in entities:
            node = GraphNode(
                node_id=node_id_for(str(entity["type"]), str(entity["name"])),
                type=str(entity["type"]).upper(),
                name=str(entity["name"]).strip(),
                properties=dict(entity.get("properties") or {}),  # type: ignore[call-overload]
            )
            store.upsert_node(node, now)
            if entity.get("id"):
                local_to_node[str(entity["id"])] = node.node_id
            stored_entities += 1

        stored_relationships = 0
        for rel in relationships:
            source = local_to_node.get(str(rel["source_id"]), str(rel["source_id"]))
            target = local_to_node.get(str(rel["target_id"]), str(rel["target_id"]))
            if store.get_node(source) is None or store.get_node(target) is None:
                logger.warning(
                    "Skipping relationship %s: unknown endpoint %s -> %s",
                    rel.get("id"),
                    rel["source_id"],
                    rel["target_id"],
                )
                continue
            properties = rel.get("properties") or {}
            store.insert_edge(
                GraphEdge(
                    edge_id=uuid.uuid4().hex,
                    source_id=source,
                    target_id=target,
                    type=str(rel["type"]).upper(),
                    confidence=float(properties.get("confidence", 0.5)),  # type: ignore[union-attr]
                    document_id=doc_ref,
                    created_at=now,
                )
            )
            stored_relationships += 1
        return stored_entities, stored_relationships

    async def store_graph(params: dict[str, object]) -> dict[str, object]:
        document_id = params.get("document_id")
        doc_ref = str(document_id) if document_id is not None else None
        stored_entities, stored_relationships = await run_blocking(
            persist_graph,
            params["entities"],  # type: ignore[arg-type]
            params["relationships"],  # type: ignore[arg-type]
            doc_ref,
        )
        logger.info(
            "Stored graph for document %s: %d entities, %d relationships",
            doc_ref,
            stored_entities,
            stored_relationships,
        )
        return {
            "stored_entities": stored_entities,
            "stored_relationships": stored_relationships,
            "document_id": document_id,
        }

    def matching_nodes(
        query: str | None, entity_type: str | None, relationship_type: str | None
    ) -> list[dict[str, object]]:
        results = []
        for node in store.find_nodes(name_contains=query, node_type=entity_type):
            edges = store.edges_from(node.node_id)
            if relationship_type and not any(
                edge.type == relationship_type.upper() for edge, _ in edges
            ):
                continue
            results.append(
                {
                    "entity": node.to_dict(),
                    "relationships": [_relationship_view(edge, target) for edge, target in edges],
                }
            )
        return results

    async def query_graph(params: dict[str, object]) -> dict[str, object]:
        query = params.get("query")
        entity_type = params.get("entity_type")
        relationship_type = params.get("relationship_type")
        limit = int(params.get("limit", 10))  # type: ignore[call-overload]

        results = await run_blocking(matching_nodes, query, entity_type, relationship_type)  # type: ignore[arg-type]
        return {
            "results": results[:limit],
            "count": len(results[:limit]),
            "total_found": len(results),
            "query_info": {
                "original_query": query,
                "entity_type_filter": entity_type,
                "relationship_type_filter": relationship_type,
                "limit": limit,
            },
        }

    def walk_relationships(entity_id: str, depth: int) -> list[dict[str, object]]:
        if store.get_node(entity_id) is None:
            raise NotFoundError(f"Entity {entity_id} not found")

        relationships: list[dict[str, object]] = []
        first_hop = store.edges_from(entity_id)
        for edge, target in first_hop:
            relationships.append(
                {
                    "relationship_type": edge.type,
                    "target_entity": {"id": target.node_id, "type": target.type, "name": target.name},
                    "confidence": edge.confidence,
                    "depth": 1,
                }
            )
        if depth > 1:
            for _, middle in first_hop:
                for edge, target in store.edges_from(middle.node_id):
                    if target.node_id == entity_id:
                        continue
                    relationships.append(
                        {
                            "relationship_type": edge.type,
                            "target_entity": {
                                "id": target.node_id,
                                "type": target.type,
                                "name": target.name,
                            },
                            "confidence": edge.confidence,
                            "depth": 2,
                            "path": [middle.node_id, target.node_id],
                        }
                    )
        return relationships

    async def entity_relationships(params: dict[str, object]) -> dict[str, object]:
        entity_id = str(params["entity_id"])
        depth = int(params.get("depth", 1))  # type: ignore[call-overload]
        relationships = await run_blocking(walk_relationships, entity_id, depth)
        return {
            "entity_id": entity_id,
            "relationships": relationships,
            "relationship_count": len(relationships),
            "max_depth": depth,
        }

    async def graph_stats(params: dict[str, object]) -> dict[str, object]:
        return {"stats": await run_blocking(store.graph_stats)}

    return [
        ToolSpec(
            name="extract-graph",
            description="Extract entities and relationships from text",
            method="POST",
            path="/tools/extract-graph",
            input_schema=object_schema(
                {
                    "text": {"type": "string", "minLength": 1},
                    "document_id": {"type": ["string", "integer", "null"]},
                },
                required=("text",),
            ),
            handler=extract_graph,
        ),
        ToolSpec(
            name="store-graph",
            description="Persist entities and relationships for a document",
            method="POST",
            path="/tools/store-graph",
            input_schema=object_schema(
                {
                    "entities": {"type": "array", "items": _ENTITY_SCHEMA},
                    "relationships": {"type": "array", "items": _RELATIONSHIP_SCHEMA},
                    "document_id": {"type": ["string", "integer", "null"]},
                },
                required=("entities", "relationships"),
            ),
            handler=store_graph,
        ),
        ToolSpec(
            name="query-graph",
            description="Find entities by name, type or relationship",
            method="POST",
            path="/tools/query-graph",
            input_schema=object_schema(
                {
                    "query": {"type": ["string", "null"]},
                    "entity_type": {"type": ["string", "null"]},
                    "relationship_type": {"type": ["string", "null"]},
                    "limit": {"type": "integer", "minimum": 1, "maximum": 100},
                }
            ),
            handler=query_graph,
        ),
        ToolSpec(
            name="entity-relationships",
            description="Outgoing relationships of an entity, up to two hops",
            method="GET",
            path="/tools/entity-relationships/{entity_id}",
            input_schema=object_schema(
                {
                    "entity_id": {"type": "string", "minLength": 1},
                    "depth": {"type": "integer", "minimum": 1, "maximum": 2},
                },
                required=("entity_id",),
            ),
            handler=entity_relationships,
        ),
        ToolSpec(
            name="graph-stats",
            description="Node and edge counts per type",
            method="GET",
            path="/tools/graph-stats",
            input_schema=object_schema({}),
            handler=graph_stats,
        ),
    ]


def create_graph_app(store: SqliteStore, extractor: Extractor | None = None) -> Starlette:
    extractor = extractor or PatternExtractor()

    def health_details() -> dict[str, object]:
        return {"mode": type(extractor).__name__}

    return create_backend_app(
        SERVICE_NAME, graph_tools(store, extractor), health_details=health_details
    )
