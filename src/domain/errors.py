"""Typed failures returned by every engine operation.

The request layer maps each class to one HTTP status; the ``code`` gives
clients a stable machine-readable reason.
"""

from __future__ import annotations

from typing import Any, Optional


class EngineError(Exception):
    code = "ENGINE_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[list[dict[str, Any]]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or []


class ValidationError(EngineError):
    """Malformed or out-of-range input, rejected before any mutation."""

    code = "VALIDATION_ERROR"


class NotFoundError(EngineError):
    code = "NOT_FOUND"


class ConflictError(EngineError):
    """Duplicate active booking, busy resource, or a lost race."""

    code = "CONFLICT"


class StaleStateError(ConflictError):
    """The persisted record changed since it was read."""

    code = "STALE_STATE"


class ForbiddenError(EngineError):
    code = "FORBIDDEN"


class InsufficientSeatsError(EngineError):
    code = "INSUFFICIENT_SEATS"


class NotBookableError(EngineError):
    code = "NOT_BOOKABLE"


class InvalidTransitionError(EngineError):
    """The requested transition is illegal from the current state."""

    code = "INVALID_TRANSITION"
