"""
Request body helpers shared by the write endpoints.
"""

from typing import Any, Dict, Optional

from flask import request

NOT_AN_OBJECT_ERROR = "Request body must be a JSON object"


def json_object() -> Optional[Dict[str, Any]]:
    """
    The request's JSON body as a dict.

    A missing or malformed body reads as {} so field validation reports
    what is missing. Valid JSON that is not an object returns None.
    """
    data = request.get_json(silent=True)
    if data is None:
        return {}
    return data if isinstance(data, dict) else None
