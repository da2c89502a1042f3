"""Typed errors shared by every layer of the service.

Each error carries the HTTP status it maps to and a message that is safe to
return to the caller. Anything more detailed belongs in the logs.
"""

from __future__ import annotations

from typing import Any


class AppError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.message}


class AuthenticationError(AppError):
    """Missing, invalid or expired credential. Never says which."""

    status_code = 401
    default_message = "Not authenticated"

    def __init__(self) -> None:
        super().__init__(self.default_message)


class AuthorizationError(AppError):
    status_code = 403
    default_message = "Not authorised"


class NotFoundError(AppError):
    status_code = 404
    default_message = "Not found"


class ValidationError(AppError):
    status_code = 400
    default_message = "Invalid data"

    def __init__(self, field: str, message: str) -> None:
        super().__init__(self.default_message)
        self.field = field
        self.detail = message

    def to_payload(self) -> dict[str, Any]:
        return {
            "error": self.message,
            "details": [{"loc": [self.field], "msg": self.detail}],
        }


class SchemaNotReady(AppError):
    """The database is missing a migration the operation needs.

    ``migration`` is a stable identifier matching a file in ``migrations/``.
    """

    status_code = 500
    default_message = "Database schema is not ready"

    def __init__(self, migration: str) -> None:
        super().__init__(self.default_message)
        self.migration = migration

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.message, "migration": self.migration}


class StorageError(AppError):
    """Unclassified storage failure. The original error is chained, never shown."""

    status_code = 500
    default_message = "Internal server error"
