# app/api/v1/envelope.py
"""
Response envelope shared by every v1 endpoint.

    {
        "status": "ok" | "error",
        "data": <payload>,
        "message": <optional string>,
        "errors": <optional list of detail dicts>
    }

Domain failures carry their stable ``code`` inside ``errors``.
"""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

from app.domain.errors import ComplianceError

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    status: str = "ok"
    data: T | None = None
    message: str | None = None
    errors: list[dict[str, Any]] | None = None


class PaginationParams(BaseModel):
    """Query parameters for list endpoints (use as Depends)."""

    limit: int = Field(default=50, ge=1, le=200, description="Items per page")
    offset: int = Field(default=0, ge=0, description="Number of items to skip")


def ok(data: Any = None, message: str | None = None) -> dict:
    return ApiResponse(status="ok", data=data, message=message).model_dump()


def error(message: str, errors: list[dict[str, Any]] | None = None, status: str = "error") -> dict:
    return ApiResponse(status=status, message=message, errors=errors).model_dump()


def from_domain_error(exc: ComplianceError) -> dict:
    """Envelope for a ``ComplianceError``; ``details`` values are stringified for JSON."""
    detail = {k: (v if isinstance(v, (str, int, float, bool, list, type(None))) else str(v))
              for k, v in exc.to_dict().items()}
    return error(exc.message, errors=[detail])
