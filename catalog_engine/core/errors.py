"""
Error taxonomy for the catalog engine.

Callers map these to transport-level responses using ``status_code`` and
``code``; ``details`` carries structured context (ids, slugs, issues).
"""
from typing import Any, Dict, List, Optional

from pydantic import ValidationError


class CatalogError(Exception):
    """Base class for all errors raised by the catalog engine."""

    status_code: int = 500
    code: str = "INTERNAL_SERVER_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class NotFoundError(CatalogError):
    """A slug or id did not resolve to a record."""

    status_code = 404
    code = "NOT_FOUND"


class ValidationFailedError(CatalogError):
    """Malformed input: bad slug source, self-parenting, degenerate filters."""

    status_code = 400
    code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str = "Validation failed.",
        issues: Optional[List[Dict[str, str]]] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.issues = issues or []
        merged = dict(details or {})
        if self.issues:
            merged["issues"] = self.issues
        super().__init__(message, merged)

    @classmethod
    def from_pydantic(cls, error: ValidationError, message: str = "Validation failed.") -> "ValidationFailedError":
        issues = [
            {
                "path": ".".join(str(part) for part in issue.get("loc", ())),
                "message": issue.get("msg", "Invalid value."),
            }
            for issue in error.errors()
        ]
        return cls(message, issues=issues)


class ConflictError(CatalogError):
    """The write conflicts with current state (children, live products, duplicates)."""

    status_code = 409
    code = "CONFLICT"


class PersistenceError(CatalogError):
    """The store failed in a way the caller may retry."""

    status_code = 500
    code = "PERSISTENCE_ERROR"
