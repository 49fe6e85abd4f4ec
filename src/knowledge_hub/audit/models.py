"""Data models for audit records."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class AuditRecord:
    user_id: str
    action_type: str
    target_type: str
    target_id: str
    metadata: dict[str, object] = field(default_factory=dict)
    created_at: str | None = None
    id: int | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "action_type": self.action_type,
            "target_type": self.target_type,
            "target_id": self.target_id,
            "metadata": dict(self.metadata),
            "created_at": self.created_at,
        }
