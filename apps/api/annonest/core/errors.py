"""Domain errors raised by services and rendered once at the request boundary."""

from __future__ import annotations

from datetime import datetime
from typing import Any


class AppError(Exception):
    """Base class for caller-visible failures."""

    code = "error"
    status_code = 400

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(message={self.message!r}, status_code={self.status_code})"


class ValidationError(AppError):
    """Malformed or missing input. The caller should fix the request."""

    code = "validation_error"
    status_code = 422


class ConflictError(AppError):
    """A precondition failed because someone else changed the row first."""

    code = "conflict"
    status_code = 409


class LockHeldError(ConflictError):
    code = "lock_held"

    def __init__(
        self,
        *,
        entity_type: str,
        entity_id: str,
        locked_by: str,
        locked_by_name: str | None,
        locked_at: datetime | None,
    ) -> None:
        holder = locked_by_name or locked_by
        super().__init__(
            f"{entity_type} {entity_id} is being edited by {holder}, try again later",
            details={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "locked_by": locked_by,
                "locked_by_name": locked_by_name,
                "locked_at": locked_at.isoformat() if locked_at is not None else None,
            },
        )
        self.locked_by = locked_by
        self.locked_by_name = locked_by_name


class AuthorizationError(AppError):
    """The caller's role does not allow the action."""

    code = "forbidden"
    status_code = 403


class AuthenticationError(AuthorizationError):
    code = "unauthenticated"
    status_code = 401


class NotFoundError(AppError):
    """Missing row, or a row that belongs to another organization."""

    code = "not_found"
    status_code = 404
