"""JSON serialization utilities."""

from __future__ import annotations

import base64
import datetime
import decimal
import json


def json_default(obj: object) -> object:
    """JSON serializer for objects not serializable by default json code."""
    if isinstance(obj, (datetime.date, datetime.datetime)):
        return obj.isoformat()
    if isinstance(obj, decimal.Decimal):
        if obj == obj.to_integral_value():
            return int(obj)
        return float(obj)
    if isinstance(obj, bytes):
        try:
            return obj.decode("utf-8")
        except UnicodeDecodeError:
            return base64.b64encode(obj).decode("utf-8")
    if isinstance(obj, (set, frozenset, tuple)):
        return list(obj)
    return str(obj)


def dumps(payload: object) -> str:
    """Compact, deterministic JSON used for stored columns."""
    return json.dumps(payload, ensure_ascii=False, sort_keys=True, default=json_default)


def loads_or(value: str | None, default: object) -> object:
    """Decode a stored JSON column, falling back to ``default`` when empty or corrupt."""
    if not value:
        return default
    try:
        return json.loads(value)
    except (json.JSONDecodeError, TypeError):
        return default
