from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, List
from uuid import UUID


def serialize_item(item: Any) -> Any:
    """
    Serializes a single cell value to a JSON-compatible value.
    """
    if item is None:
        return None
    if isinstance(item, (date, datetime, time)):
        return item.isoformat()
    if isinstance(item, timedelta):
        return item.total_seconds()
    if isinstance(item, Decimal):
        # str() preserves precision
        return str(item)
    if isinstance(item, UUID):
        return str(item)
    if isinstance(item, bytes):
        return item.hex()
    if isinstance(item, dict):
        return {str(key): serialize_item(value) for key, value in item.items()}
    if isinstance(item, (list, tuple)):
        return [serialize_item(value) for value in item]
    return item


def serialize_rowset(rows: List[List[Any]]) -> List[List[Any]]:
    """
    Converts normalized result rows into JSON-compatible lists.
    """
    return [[serialize_item(cell) for cell in row] for row in rows]
