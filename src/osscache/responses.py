"""JSON response envelope shared by every HTTP endpoint."""

from typing import Any


def success(data: Any = None, message: str = "ok") -> dict[str, Any]:
    return {"success": True, "data": data, "message": message}


def error(message: str = "internal server error") -> dict[str, Any]:
    return {"success": False, "data": None, "message": message}
