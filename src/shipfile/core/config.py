"""Shipfile configuration.

Settings are read from environment variables with the ``SHIPFILE_`` prefix.
The application layer may inject its own settings via :func:`set_config`;
tests instantiate :class:`ShipfileSettings` directly.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from .exceptions import ConfigException

_TRUTHY = ("1", "true", "yes")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigException(f"{name} must be an integer, got {raw!r}") from exc


@dataclass
class ShipfileSettings:
    """Concrete shipfile configuration."""

    # Storage
    database_url: str | None = None

    # Invitations
    frontend_url: str = "http://localhost:5173"
    invitation_ttl_days: int = 7

    # Scope containment: when set, a request for an ancestor folder is no
    # longer covered by a grant on one of its descendants.
    strict_scope_containment: bool = False

    # Activity log
    activity_log_limit: int = 100

    # Server
    host: str = "127.0.0.1"
    port: int = 8080
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.invitation_ttl_days <= 0:
            raise ConfigException("invitation_ttl_days must be positive")
        if self.activity_log_limit <= 0:
            raise ConfigException("activity_log_limit must be positive")
        self.frontend_url = self.frontend_url.rstrip("/")

    @classmethod
    def from_env(cls) -> ShipfileSettings:
        """Create settings from environment variables."""
        return cls(
            database_url=os.environ.get("SHIPFILE_DATABASE_URL") or os.environ.get("DATABASE_URL"),
            frontend_url=os.environ.get("SHIPFILE_FRONTEND_URL", os.environ.get("FRONTEND_URL", "http://localhost:5173")),
            invitation_ttl_days=_env_int("SHIPFILE_INVITATION_TTL_DAYS", 7),
            strict_scope_containment=os.environ.get("SHIPFILE_STRICT_SCOPE", "").lower() in _TRUTHY,
            activity_log_limit=_env_int("SHIPFILE_ACTIVITY_LOG_LIMIT", 100),
            host=os.environ.get("SHIPFILE_HOST", "127.0.0.1"),
            port=_env_int("SHIPFILE_PORT", 8080),
            log_level=os.environ.get("SHIPFILE_LOG_LEVEL", "INFO").upper(),
        )

    def require_database_url(self) -> str:
        """Return the database URL or fail with a configuration error."""
        if not self.database_url:
            raise ConfigException("SHIPFILE_DATABASE_URL (or DATABASE_URL) is not set")
        return self.database_url


_config: ShipfileSettings | None = None


def get_config() -> ShipfileSettings:
    """Get the active settings, reading the environment on first use."""
    global _config
    if _config is None:
        _config = ShipfileSettings.from_env()
    return _config


def set_config(config: ShipfileSettings) -> None:
    """Replace the active settings."""
    global _config
    _config = config


def reset_config() -> None:
    """Drop cached settings (for testing)."""
    global _config
    _config = None
