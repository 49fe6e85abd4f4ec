"""Audit log over the ``user_interactions`` table.

Records are appended once per user-facing action. There is no update or
delete operation.
"""

from __future__ import annotations

import dataclasses
import sqlite3

from knowledge_hub.audit.models import AuditRecord
from knowledge_hub.storage.db import SqliteStore
from knowledge_hub.utils.serialization import dumps, loads_or
from knowledge_hub.utils.time import utc_now_iso


class AuditLog:
    def __init__(self, store: SqliteStore) -> None:
        self._store = store

    def append(self, record: AuditRecord) -> AuditRecord:
        """Persist ``record`` and return it with its id and creation time."""
        created_at = record.created_at or utc_now_iso()
        record_id = self._store.insert(
            """
            INSERT INTO user_interactions (
                user_id, action_type, target_type, target_id, metadata, created_at
            ) VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                record.user_id,
                record.action_type,
                record.target_type,
                record.target_id,
                dumps(record.metadata),
                created_at,
            ),
        )
        return dataclasses.replace(record, id=record_id, created_at=created_at)

    def recent(self, limit: int = 10) -> list[AuditRecord]:
        rows = self._store.fetch_all(
            "SELECT * FROM user_interactions ORDER BY created_at DESC, id DESC LIMIT ?",
            (limit,),
        )
        return [_record_from_row(row) for row in rows]

    def for_user(self, user_id: str, limit: int = 10) -> list[AuditRecord]:
        rows = self._store.fetch_all(
            (
                "SELECT * FROM user_interactions WHERE user_id = ? "
                "ORDER BY created_at DESC, id DESC LIMIT ?"
            ),
            (user_id, limit),
        )
        return [_record_from_row(row) for row in rows]

    def count_since(self, since: str) -> int:
        row = self._store.fetch_one(
            "SELECT COUNT(*) AS count FROM user_interactions WHERE created_at >= ?",
            (since,),
        )
        return int(row["count"]) if row is not None else 0


def _record_from_row(row: sqlite3.Row) -> AuditRecord:
    return AuditRecord(
        id=row["id"],
        user_id=row["user_id"],
        action_type=row["action_type"],
        target_type=row["target_type"],
        target_id=row["target_id"],
        metadata=loads_or(row["metadata"], {}),
        created_at=row["created_at"],
    )
