"""Shipfile exception hierarchy.

Exceptions are reserved for caller errors (unknown records, malformed input,
invalid lifecycle transitions). Authorization denials are never raised; they
are returned as values by :mod:`shipfile.permissions`.
"""

from __future__ import annotations

from typing import Any


class ShipfileException(Exception):
    """Base exception for all shipfile errors."""

    status_code: int = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.message,
            "type": self.__class__.__name__,
            "details": self.details,
        }


class ValidationException(ShipfileException):
    """Input failed validation."""

    status_code = 400

    def __init__(self, message: str, field: str | None = None, value: Any = None):
        details: dict[str, Any] = {}
        if field is not None:
            details["field"] = field
        if value is not None:
            details["value"] = repr(value)
        super().__init__(message, details)
        self.field = field
        self.value = value


class NotFoundError(ShipfileException):
    """A requested record does not exist."""

    status_code = 404

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} not found: {resource_id}",
            {"resource_type": resource_type, "resource_id": resource_id},
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class ConflictError(ShipfileException):
    """Operation conflicts with existing state."""

    status_code = 409


class InvitationExpiredError(ShipfileException):
    """Invitation is past its expiry time."""

    status_code = 410

    def __init__(self, token: str):
        super().__init__("Invitation has expired", {"token": token})
        self.token = token


class OwnerRequiredError(ShipfileException):
    """Operation is reserved for the bucket owner."""

    status_code = 403

    def __init__(self, bucket_name: str, actor_email: str):
        super().__init__(
            f"Only the owner of bucket {bucket_name} can perform this operation",
            {"bucket_name": bucket_name, "actor": actor_email},
        )


class DatabaseException(ShipfileException):
    """Storage layer failure."""

    status_code = 500


class ConfigException(ShipfileException):
    """Configuration is missing or invalid."""

    status_code = 500
