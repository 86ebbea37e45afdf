from __future__ import annotations
import enum
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict

from sqlalchemy import inspect


def _plain(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_plain(v) for v in value]
    return value


def snapshot(entity: Any) -> Dict[str, Any]:
    """
    Structural clone of every mapped column of *entity*, as JSON-safe values.
    The result shares nothing with the live object.
    """
    mapper = inspect(entity).mapper
    return {attr.key: _plain(getattr(entity, attr.key)) for attr in mapper.column_attrs}
