"""
Row serialization helpers.

psycopg2 returns datetimes and Decimals, which Flask's JSON provider does
not render the way the API promises, so rows go through here first.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional


def serialize_value(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


def serialize_row(row: Optional[Any]) -> Optional[Dict[str, Any]]:
    """Convert a DictRow (or dict) to a JSON-ready dict."""
    if row is None:
        return None
    return {key: serialize_value(value) for key, value in dict(row).items()}


def serialize_rows(rows: Iterable[Any]) -> List[Dict[str, Any]]:
    return [serialize_row(row) for row in rows]


def nest_prefixed(row: Dict[str, Any], prefix: str, key: str) -> Dict[str, Any]:
    """
    Move `prefix*` columns of a joined row into a nested object.

    Example:
        {"region__name": "Hà Nội", "region__code": "HN"} with prefix
        "region__" becomes {"region": {"name": "Hà Nội", "code": "HN"}}.
        The nested object is None when every prefixed value is None.
    """
    nested = {}
    for column in [c for c in row if c.startswith(prefix)]:
        nested[column[len(prefix):]] = row.pop(column)
    row[key] = nested if any(v is not None for v in nested.values()) else None
    return row
