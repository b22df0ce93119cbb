"""
Standard API response models and helpers for consistent response formatting.

All endpoints use these helpers to ensure consistent response envelopes:
- Success: { "success": true, "data": <payload>, "meta": {...} }
- Error: { "success": false, "error": { "code": "...", "message": "...", "details": {...} } }
"""
from typing import Any
from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """Standard error detail structure."""
    code: str = Field(..., description="Error code (e.g., 'notfound', 'invalidstate')")
    message: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] | None = Field(default=None, description="Additional error context")


class StandardErrorResponse(BaseModel):
    """Standard error response envelope."""
    success: bool = Field(False, description="Always false for errors")
    error: ErrorDetail = Field(..., description="Error details")


# Documented on every admin router so the OpenAPI schema shows the envelope
ADMIN_ERROR_RESPONSES = {
    401: {"model": StandardErrorResponse},
    403: {"model": StandardErrorResponse},
    503: {"model": StandardErrorResponse},
}


def success_response(data: Any, meta: dict[str, Any] | None = None) -> dict[str, Any]:
    """
    Create a standardized success response.

    Args:
        data: The response payload
        meta: Optional metadata (pagination, counts, etc.)

    Returns:
        dict: { "success": true, "data": <data>, "meta": <meta> }
    """
    response = {"success": True, "data": data}
    if meta:
        response["meta"] = meta
    return response


def paginated_response(
    items: list[Any],
    limit: int,
    next_cursor: str | None = None,
) -> dict[str, Any]:
    """
    Create a cursor-paginated response.

    The cursor is the id of the last item on the page; callers pass it back
    as `startAfter` to fetch the next page. A short page means no more items.

    Returns:
        dict: { "success": true, "data": <items>, "meta": { "limit", "count", "nextCursor", "hasMore" } }
    """
    has_more = next_cursor is not None and len(items) >= limit
    meta = {
        "limit": limit,
        "count": len(items),
        "nextCursor": next_cursor if has_more else None,
        "hasMore": has_more,
    }
    return success_response(data=items, meta=meta)
