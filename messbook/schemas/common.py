"""Shared response envelope."""

from typing import Any


def ok(message: str, data: Any = None) -> dict:
    """Every success response: ``{"success": true, "message": ..., "data": ...}``."""
    return {"success": True, "message": message, "data": data}


def paginated(key: str, items: list, total: int, page: int, page_size: int) -> dict:
    """Body of a paginated listing; ``key`` names the item list."""
    return {
        key: items,
        "total": total,
        "page": page,
        "page_size": page_size,
        "total_pages": (total + page_size - 1) // page_size,
    }
