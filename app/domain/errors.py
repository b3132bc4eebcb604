# app/domain/errors.py
"""Error taxonomy for the compliance engine and the CRUD services around it."""

from __future__ import annotations

from typing import Any


class ComplianceError(Exception):
    """Base error; ``code`` is stable and safe to show to API callers."""

    code = "compliance_error"
    http_status = 400

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.details}


class NotFoundError(ComplianceError):
    """Referenced entity, or one of its dependents, does not exist for this actor."""

    code = "not_found"
    http_status = 404


class ValidationError(ComplianceError):
    """Input cannot be applied as given (bad status, missing linkage, unknown field)."""

    code = "validation_error"
    http_status = 422


class ConflictError(ComplianceError):
    """Another writer changed the entity first; the caller should reload and retry."""

    code = "conflict"
    http_status = 409


class PersistenceError(ComplianceError):
    """Storage failure. Fatal to the current request only."""

    code = "persistence_error"
    http_status = 500
