"""Time helpers."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def utc_now_iso() -> str:
    return utc_now().isoformat()


def utc_iso_ago(seconds: int) -> str:
    """ISO timestamp ``seconds`` in the past, comparable with stored values."""
    return (utc_now() - timedelta(seconds=seconds)).isoformat()
