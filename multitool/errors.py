"""
Centralised error handling: exception hierarchy for all feature modules.

Provides:
    • Library-wide base exception with a machine-readable error code
    • Configuration validation errors (raised before any I/O)
    • Pool connection errors (raised by the pool factories)
    • Logging re-initialisation errors

Usage:
    from multitool.errors import (
        MultitoolError,
        ValidationError,
        PoolConnectionError,
        AlreadyInitializedError,
    )

    raise ValidationError("port out of range", field="port", constraint="le")
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError


# ═══════════════════════════════════════════════════════════════════════════
# Exception Hierarchy
# ═══════════════════════════════════════════════════════════════════════════

class MultitoolError(Exception):
    """Base exception for all library errors."""

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Consistent serialisable error body."""
        body: Dict[str, Any] = {
            "error": {
                "code": self.error_code,
                "message": self.message,
            }
        }
        if self.details:
            body["error"]["details"] = self.details
        return body


class ValidationError(MultitoolError, ValueError):
    """Configuration value rejected at construction time."""

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        constraint: Optional[str] = None,
        **details: Any,
    ):
        d = {**details}
        if field:
            d["field"] = field
        if constraint:
            d["constraint"] = constraint
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            details=d,
        )
        self.field = field
        self.constraint = constraint

    @classmethod
    def from_pydantic(cls, exc: PydanticValidationError, model: str = "") -> "ValidationError":
        """Collapse a pydantic error into one naming the first offending field."""
        errors = exc.errors()
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        prefix = f"{model}." if model else ""
        return cls(
            f"Invalid {prefix}{field or 'config'}: {first.get('msg', 'invalid value')}",
            field=field,
            constraint=first.get("type"),
            error_count=len(errors),
        )


class PoolConnectionError(MultitoolError, ConnectionError):
    """The pooling library failed to establish the pool."""

    def __init__(self, resource: str, message: str = "", **details: Any):
        super().__init__(
            message=f"Could not open {resource} pool: {message}",
            error_code="CONNECTION_ERROR",
            details={"resource": resource, **details},
        )
        self.resource = resource


class AlreadyInitializedError(MultitoolError, RuntimeError):
    """Process-wide state was initialised a second time."""

    def __init__(self, component: str):
        super().__init__(
            message=f"{component} is already initialised for this process",
            error_code="ALREADY_INITIALIZED",
            details={"component": component},
        )
        self.component = component
