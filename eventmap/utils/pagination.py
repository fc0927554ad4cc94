"""
page/limit query parameter handling shared by list endpoints.
"""

import math
from typing import Any, Dict, List, Tuple

from flask import request

MAX_LIMIT = 100


def _positive_int(raw: Any, default: int) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


def get_pagination_args(default_limit: int = 10) -> Tuple[int, int, int]:
    """
    Read `page` and `limit` from the current request's query string.

    Invalid or non-positive values fall back to the defaults; limit is
    capped at MAX_LIMIT.

    Returns:
        tuple: (page, limit, offset)
    """
    page = _positive_int(request.args.get("page"), 1)
    limit = min(_positive_int(request.args.get("limit"), default_limit), MAX_LIMIT)
    return page, limit, (page - 1) * limit


def build_pagination(page: int, limit: int, total: int) -> Dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": math.ceil(total / limit) if limit else 0,
    }


def paginated(data: List[Any], page: int, limit: int, total: int) -> Dict[str, Any]:
    """Standard list envelope: {"data": [...], "pagination": {...}}."""
    return {"data": data, "pagination": build_pagination(page, limit, total)}
