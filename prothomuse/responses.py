"""
Uniform JSON envelope for every HTTP response:
{"status": "success" | "error", "message": str, "data": ...}
"""

from typing import Any

from fastapi import status
from fastapi.responses import JSONResponse
from pydantic import BaseModel


def _dump(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json", by_alias=True)
    if isinstance(data, list):
        return [_dump(item) for item in data]
    if isinstance(data, dict):
        return {key: _dump(value) for key, value in data.items()}
    return data


def success_response(message: str = "Success", data: Any = None) -> dict:
    """Create a successful response body. Pydantic data is dumped with camelCase keys."""
    body = {"status": "success", "message": message}
    if data is not None:
        body["data"] = _dump(data)
    return body


def error_response(
    message: str = "An error occurred",
    status_code: int = status.HTTP_400_BAD_REQUEST,
) -> JSONResponse:
    """Create an error response"""
    return JSONResponse(
        status_code=status_code,
        content={"status": "error", "message": message},
    )
