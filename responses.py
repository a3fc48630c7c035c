"""
Response envelope helpers.

Every endpoint answers with `{success, message, data, timestamp}`; errors use
`{success: false, message, errors, timestamp}`.
"""
import math
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import HTTPException


class ApiError(HTTPException):
    """HTTPException that also carries field errors or a data payload."""

    def __init__(self, status_code: int, message: str, errors: Optional[List[Dict[str, Any]]] = None,
                 data: Any = None):
        super().__init__(status_code=status_code, detail=message)
        self.errors = errors
        self.data = data


def timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def serialize(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: serialize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize(v) for v in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def success(data: Any = None, message: str = "Success") -> Dict[str, Any]:
    return {"success": True, "message": message, "data": serialize(data), "timestamp": timestamp()}


def error_body(message: str, errors: Any = None, data: Any = None) -> Dict[str, Any]:
    body = {"success": False, "message": message, "errors": errors, "timestamp": timestamp()}
    if data is not None:
        body["data"] = serialize(data)
    return body


def pagination(page: int, limit: int, total: int) -> Dict[str, Any]:
    pages = math.ceil(total / limit) if limit else 0
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": pages,
        "hasNext": page < pages,
        "hasPrev": page > 1,
    }


def paginated(data: Any, page: int, limit: int, total: int, message: str = "Data fetched successfully") -> Dict[str, Any]:
    body = success(data, message)
    body["pagination"] = pagination(page, limit, total)
    return body
