"""SQLite access layer for documents, the knowledge graph, search logs and interactions."""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path
from typing import Mapping, Sequence

from knowledge_hub.errors import StoreError
from knowledge_hub.storage.models import DocumentRecord, GraphEdge, GraphNode
from knowledge_hub.utils.serialization import dumps, loads_or

_SqlValue = str | bytes | int | float | None
_SqlParams = Sequence[_SqlValue] | Mapping[str, _SqlValue]

_UPDATABLE_DOCUMENT_FIELDS = ("title", "content", "category", "tags", "metadata")
_JSON_DOCUMENT_FIELDS = frozenset({"tags", "metadata"})


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqliteStore:
    """Store handle shared by the backends and the audit log.

    One connection per process, guarded by a lock; WAL lets several service
    processes open the same file.
    """

    def __init__(self, path: str, wal: bool = True) -> None:
        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self.path = path
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._closed = False
        if wal and path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA busy_timeout=5000")
        self._init_schema()

    def _init_schema(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS documents (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                content TEXT NOT NULL,
                category TEXT,
                tags TEXT NOT NULL DEFAULT '[]',
                file_name TEXT,
                classification TEXT,
                entities TEXT NOT NULL DEFAULT '[]',
                metadata TEXT NOT NULL DEFAULT '{}',
                is_active INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS graph_nodes (
                node_id TEXT PRIMARY KEY,
                type TEXT NOT NULL,
                name TEXT NOT NULL,
                properties TEXT NOT NULL DEFAULT '{}',
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS graph_edges (
                edge_id TEXT PRIMARY KEY,
                source_id TEXT NOT NULL,
                target_id TEXT NOT NULL,
                type TEXT NOT NULL,
                confidence REAL NOT NULL,
                document_id TEXT,
                created_at TEXT NOT NULL,
                FOREIGN KEY(source_id) REFERENCES graph_nodes(node_id),
                FOREIGN KEY(target_id) REFERENCES graph_nodes(node_id)
            );

            CREATE TABLE IF NOT EXISTS search_queries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                query_text TEXT NOT NULL,
                results_count INTEGER NOT NULL,
                execution_time_ms INTEGER NOT NULL,
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS user_interactions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                action_type TEXT NOT NULL,
                target_type TEXT NOT NULL,
                target_id TEXT NOT NULL,
                metadata TEXT NOT NULL DEFAULT '{}',
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_documents_active_created
                ON documents(is_active, created_at);
            CREATE INDEX IF NOT EXISTS idx_graph_nodes_type ON graph_nodes(type);
            CREATE INDEX IF NOT EXISTS idx_graph_edges_source ON graph_edges(source_id);
            CREATE INDEX IF NOT EXISTS idx_search_queries_created ON search_queries(created_at);
            CREATE INDEX IF NOT EXISTS idx_interactions_user_created
                ON user_interactions(user_id, created_at);
            """
        )
        self._conn.commit()

    # -- generic access -------------------------------------------------

    def execute(self, query: str, params: _SqlParams) -> int:
        """Run a write statement and return the affected row count."""
        with self._lock:
            try:
                cursor = self._conn.execute(query, params)
                self._conn.commit()
            except sqlite3.Error as exc:
                self._conn.rollback()
                raise StoreError(str(exc)) from exc
            return cursor.rowcount

    def insert(self, query: str, params: _SqlParams) -> int:
        """Run an INSERT and return the new row id."""
        with self._lock:
            try:
                cursor = self._conn.execute(query, params)
                self._conn.commit()
            except sqlite3.Error as exc:
                self._conn.rollback()
                raise StoreError(str(exc)) from exc
            return int(cursor.lastrowid or 0)

    def fetch_one(self, query: str, params: _SqlParams) -> sqlite3.Row | None:
        with self._lock:
            try:
                return self._conn.execute(query, params).fetchone()
            except sqlite3.Error as exc:
                raise StoreError(str(exc)) from exc

    def fetch_all(self, query: str, params: _SqlParams) -> list[sqlite3.Row]:
        with self._lock:
            try:
                return self._conn.execute(query, params).fetchall()
            except sqlite3.Error as exc:
                raise StoreError(str(exc)) from exc

    def ping(self) -> bool:
        try:
            self.fetch_one("SELECT 1", ())
        except StoreError:
            return False
        return True

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._conn.close()
            self._closed = True

    # -- documents ------------------------------------------------------

    def insert_document(
        self,
        *,
        title: str,
        content: str,
        category: str | None,
        tags: list[str],
        file_name: str | None,
        classification: dict[str, object] | None,
        entities: list[object],
        metadata: dict[str, object],
        created_at: str,
    ) -> int:
        return self.insert(
            """
            INSERT INTO documents (
                title, content, category, tags, file_name, classification,
                entities, metadata, is_active, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, 1, ?, ?)
            """,
            (
                title,
                content,
                category,
                dumps(tags),
                file_name,
                dumps(classification) if classification is not None else None,
                dumps(entities),
                dumps(metadata),
                created_at,
                created_at,
            ),
        )

    def get_document(self, document_id: int) -> DocumentRecord | None:
        row = self.fetch_one(
            "SELECT * FROM documents WHERE id = ? AND is_active = 1",
            (document_id,),
        )
        if row is None:
            return None
        return _document_from_row(row)

    def list_documents(self, category: str | None = None) -> list[DocumentRecord]:
        query = "SELECT * FROM documents WHERE is_active = 1"
        params: list[_SqlValue] = []
        if category:
            query += " AND category = ?"
            params.append(category)
        query += " ORDER BY created_at DESC, id DESC"
        return [_document_from_row(row) for row in self.fetch_all(query, params)]

    def update_document(
        self,
        document_id: int,
        changes: Mapping[str, object],
        updated_at: str,
    ) -> bool:
        assignments: list[str] = []
        params: list[_SqlValue] = []
        for field_name in _UPDATABLE_DOCUMENT_FIELDS:
            if field_name not in changes or changes[field_name] is None:
                continue
            value = changes[field_name]
            assignments.append(f"{field_name} = ?")
            params.append(dumps(value) if field_name in _JSON_DOCUMENT_FIELDS else str(value))
        assignments.append("updated_at = ?")
        params.extend([updated_at, document_id])
        rowcount = self.execute(
            f"UPDATE documents SET {', '.join(assignments)} WHERE id = ? AND is_active = 1",
            params,
        )
        return rowcount == 1

    def deactivate_document(self, document_id: int, updated_at: str) -> bool:
        rowcount = self.execute(
            "UPDATE documents SET is_active = 0, updated_at = ? WHERE id = ? AND is_active = 1",
            (updated_at, document_id),
        )
        return rowcount == 1

    def document_stats(self) -> dict[str, object]:
        row = self.fetch_one(
            """
            SELECT
                COUNT(*) AS total_documents,
                COALESCE(SUM(CASE WHEN is_active = 1 THEN 1 ELSE 0 END), 0) AS active_documents,
                COUNT(DISTINCT CASE WHEN is_active = 1 THEN category END) AS unique_categories,
                MAX(created_at) AS latest_document,
                MIN(created_at) AS oldest_document
            FROM documents
            """,
            (),
        )
        stats = dict(row) if row is not None else {}
        breakdown = self.fetch_all(
            """
            SELECT category, COUNT(*) AS count
            FROM documents
            WHERE is_active = 1 AND category IS NOT NULL
            GROUP BY category
            ORDER BY count DESC, category ASC
            """,
            (),
        )
        stats["category_breakdown"] = [dict(item) for item in breakdown]
        return stats

    # -- knowledge graph ------------------------------------------------

    def upsert_node(self, node: GraphNode, created_at: str) -> None:
        self.execute(
            """
            INSERT INTO graph_nodes (node_id, type, name, properties, created_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(node_id) DO UPDATE SET properties = excluded.properties
            """,
            (node.node_id, node.type, node.name, dumps(node.properties), created_at),
        )

    def insert_edge(self, edge: GraphEdge) -> None:
        self.execute(
            """
            INSERT INTO graph_edges (
                edge_id, source_id, target_id, type, confidence, document_id, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                edge.edge_id,
                edge.source_id,
                edge.target_id,
                edge.type,
                edge.confidence,
                edge.document_id,
                edge.created_at,
            ),
        )

    def get_node(self, node_id: str) -> GraphNode | None:
        row = self.fetch_one("SELECT * FROM graph_nodes WHERE node_id = ?", (node_id,))
        if row is None:
            return None
        return _node_from_row(row)

    def find_nodes(
        self,
        name_contains: str | None = None,
        node_type: str | None = None,
    ) -> list[GraphNode]:
        query = "SELECT * FROM graph_nodes WHERE 1 = 1"
        params: list[_SqlValue] = []
        if name_contains:
            query += " AND LOWER(name) LIKE ? ESCAPE '\\'"
            params.append(f"%{_escape_like(name_contains.lower())}%")
        if node_type:
            query += " AND type = ?"
            params.append(node_type.upper())
        query += " ORDER BY created_at DESC, node_id ASC"
        return [_node_from_row(row) for row in self.fetch_all(query, params)]

    def edges_from(self, node_id: str) -> list[tuple[GraphEdge, GraphNode]]:
        rows = self.fetch_all(
            """
            SELECT e.*, n.type AS target_type, n.name AS target_name,
                   n.properties AS target_properties
            FROM graph_edges e
            JOIN graph_nodes n ON n.node_id = e.target_id
            WHERE e.source_id = ?
            ORDER BY e.confidence DESC, e.edge_id ASC
            """,
            (node_id,),
        )
        result: list[tuple[GraphEdge, GraphNode]] = []
        for row in rows:
            edge = GraphEdge(
                edge_id=row["edge_id"],
                source_id=row["source_id"],
                target_id=row["target_id"],
                type=row["type"],
                confidence=row["confidence"],
                document_id=row["document_id"],
                created_at=row["created_at"],
            )
            target = GraphNode(
                node_id=row["target_id"],
                type=row["target_type"],
                name=row["target_name"],
                properties=loads_or(row["target_properties"], {}),
            )
            result.append((edge, target))
        return result

    def graph_stats(self) -> dict[str, object]:
        node_rows = self.fetch_all(
            "SELECT type, COUNT(*) AS count FROM graph_nodes GROUP BY type ORDER BY type",
            (),
        )
        edge_rows = self.fetch_all(
            "SELECT type, COUNT(*) AS count FROM graph_edges GROUP BY type ORDER BY type",
            (),
        )
        nodes_by_type = {row["type"]: row["count"] for row in node_rows}
        edges_by_type = {row["type"]: row["count"] for row in edge_rows}
        return {
            "total_nodes": sum(nodes_by_type.values()),
            "total_edges": sum(edges_by_type.values()),
            "nodes_by_type": nodes_by_type,
            "edges_by_type": edges_by_type,
        }

    # -- search query log -----------------------------------------------

    def log_search_query(
        self,
        query_text: str,
        results_count: int,
        execution_time_ms: int,
        created_at: str,
    ) -> None:
        self.insert(
            """
            INSERT INTO search_queries (query_text, results_count, execution_time_ms, created_at)
            VALUES (?, ?, ?, ?)
            """,
            (query_text, results_count, execution_time_ms, created_at),
        )

    def search_analytics(self, since: str, top: int = 5) -> dict[str, object]:
        row = self.fetch_one(
            """
            SELECT
                COUNT(*) AS total_searches,
                AVG(CAST(results_count AS REAL)) AS avg_results_per_search,
                AVG(CAST(execution_time_ms AS REAL)) AS avg_execution_time_ms,
                MAX(created_at) AS latest_search
            FROM search_queries
            WHERE created_at >= ?
            """,
            (since,),
        )
        analytics = dict(row) if row is not None else {}
        top_rows = self.fetch_all(
            """
            SELECT query_text, COUNT(*) AS frequency
            FROM search_queries
            WHERE created_at >= ?
            GROUP BY query_text
            ORDER BY frequency DESC, query_text ASC
            LIMIT ?
            """,
            (since, top),
        )
        analytics["top_queries"] = [dict(item) for item in top_rows]
        return analytics


def _document_from_row(row: sqlite3.Row) -> DocumentRecord:
    return DocumentRecord(
        id=row["id"],
        title=row["title"],
        content=row["content"],
        category=row["category"],
        tags=loads_or(row["tags"], []),
        file_name=row["file_name"],
        classification=loads_or(row["classification"], None),
        entities=loads_or(row["entities"], []),
        metadata=loads_or(row["metadata"], {}),
        is_active=bool(row["is_active"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _node_from_row(row: sqlite3.Row) -> GraphNode:
    return GraphNode(
        node_id=row["node_id"],
        type=row["type"],
        name=row["name"],
        properties=loads_or(row["properties"], {}),
    )
