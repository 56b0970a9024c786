"""
Typed failures raised by the workflow services.
Each maps to one HTTP status in main.py; none is retried internally.
"""
import math
from typing import Any, Dict, Optional


class WorkflowError(Exception):
    kind = "workflow_error"
    http_status = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind, "detail": self.message, "details": self.details}


class ValidationError(WorkflowError):
    """Malformed or out-of-range input (e.g. min_hours > max_hours)."""
    kind = "validation_error"
    http_status = 400


class ConflictError(WorkflowError):
    """Invariant violated by a concurrent mutation (e.g. a second pending offer)."""
    kind = "conflict"
    http_status = 409


class NotAuthorizedError(WorkflowError):
    kind = "not_authorized"
    http_status = 403


class NotFoundError(WorkflowError):
    kind = "not_found"
    http_status = 404


class StateError(WorkflowError):
    """Operation not valid for the entity's current status."""
    kind = "invalid_state"
    http_status = 409


class NotAssignableError(StateError):
    kind = "not_assignable"


def is_number(value: Any) -> bool:
    """Finite int or float; NaN, infinity and bools are rejected."""
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)
