"""Append-only record of user-facing actions."""

from knowledge_hub.audit.log import AuditLog
from knowledge_hub.audit.models import AuditRecord

__all__ = ["AuditLog", "AuditRecord"]
