"""Shipfile core - configuration, errors, logging and database helpers."""

from .config import ShipfileSettings, get_config, reset_config, set_config
from .exceptions import (
    ConfigException,
    ConflictError,
    DatabaseException,
    InvitationExpiredError,
    NotFoundError,
    OwnerRequiredError,
    ShipfileException,
    ValidationException,
)
from .logging import configure_logging

__all__ = [
    # Config
    "ShipfileSettings",
    "get_config",
    "set_config",
    "reset_config",
    # Exceptions
    "ShipfileException",
    "ValidationException",
    "NotFoundError",
    "ConflictError",
    "InvitationExpiredError",
    "OwnerRequiredError",
    "DatabaseException",
    "ConfigException",
    # Logging
    "configure_logging",
]
