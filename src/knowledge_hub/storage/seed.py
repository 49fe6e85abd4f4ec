"""Sample content for demo deployments (``KB_SEED_SAMPLE_DATA=true``)."""

from __future__ import annotations

import logging

from knowledge_hub.storage.db import SqliteStore
from knowledge_hub.storage.models import GraphEdge, GraphNode
from knowledge_hub.utils.time import utc_now_iso

logger = logging.getLogger(__name__)

SAMPLE_DOCUMENTS: tuple[dict[str, object], ...] = (
    {
        "title": "Introduction to Machine Learning",
        "content": (
            "Machine learning is a subset of artificial intelligence that enables "
            "computers to learn without explicit programming. This guide covers "
            "supervised, unsupervised and reinforcement learning."
        ),
        "category": "Technical Documentation",
        "tags": ["ML", "AI", "Education"],
    },
    {
        "title": "Business Intelligence Q4 Report",
        "content": (
            "Quarterly analysis of market trends, revenue growth and the competitive "
            "landscape. AI adoption across enterprise clients grew 25 percent."
        ),
        "category": "Business Report",
        "tags": ["Business", "Analytics", "Q4"],
    },
    {
        "title": "Neural Network Research",
        "content": (
            "Research notes on convolutional, recurrent and transformer architectures, "
            "with training methodology for deep learning in vision and language."
        ),
        "category": "Research Paper",
        "tags": ["Deep Learning", "Neural Networks", "Research"],
    },
)

SAMPLE_NODES: tuple[GraphNode, ...] = (
    GraphNode("person:john smith", "PERSON", "John Smith", {"department": "Engineering"}),
    GraphNode("organization:tech corp", "ORGANIZATION", "Tech Corp", {"industry": "Technology"}),
    GraphNode("location:silicon valley", "LOCATION", "Silicon Valley"),
    GraphNode("technology:machine learning", "TECHNOLOGY", "Machine Learning"),
    GraphNode("technology:deep learning", "TECHNOLOGY", "Deep Learning"),
)

SAMPLE_EDGES: tuple[tuple[str, str, str, float], ...] = (
    ("person:john smith", "organization:tech corp", "WORKS_AT", 0.88),
    ("person:john smith", "technology:machine learning", "SPECIALIZES_IN", 0.85),
    ("organization:tech corp", "location:silicon valley", "HEADQUARTERS_IN", 0.91),
    ("organization:tech corp", "technology:deep learning", "USES_TECHNOLOGY", 0.87),
    ("technology:machine learning", "technology:deep learning", "RELATED_TO", 0.93),
)


def seed_sample_documents(store: SqliteStore) -> int:
    """Insert the sample documents when the document table is empty."""
    row = store.fetch_one("SELECT COUNT(*) AS count FROM documents", ())
    if row is not None and row["count"]:
        return 0
    now = utc_now_iso()
    for doc in SAMPLE_DOCUMENTS:
        store.insert_document(
            title=str(doc["title"]),
            content=str(doc["content"]),
            category=str(doc["category"]),
            tags=list(doc["tags"]),  # type: ignore[arg-type]
            file_name=None,
            classification=None,
            entities=[],
            metadata={"source": "sample"},
            created_at=now,
        )
    logger.info("Seeded %d sample documents", len(SAMPLE_DOCUMENTS))
    return len(SAMPLE_DOCUMENTS)


def seed_sample_graph(store: SqliteStore) -> int:
    """Insert the sample graph when no nodes exist yet."""
    row = store.fetch_one("SELECT COUNT(*) AS count FROM graph_nodes", ())
    if row is not None and row["count"]:
        return 0
    now = utc_now_iso()
    for node in SAMPLE_NODES:
        store.upsert_node(node, now)
    for index, (source, target, rel_type, confidence) in enumerate(SAMPLE_EDGES, start=1):
        store.insert_edge(
            GraphEdge(
                edge_id=f"sample-{index}",
                source_id=source,
                target_id=target,
                type=rel_type,
                confidence=confidence,
                document_id=None,
                created_at=now,
            )
        )
    logger.info("Seeded sample graph with %d nodes", len(SAMPLE_NODES))
    return len(SAMPLE_NODES)
