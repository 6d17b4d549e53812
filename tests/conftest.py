"""Shared fixtures for shipfile tests."""

from __future__ import annotations

import pytest

from shipfile.core.config import ShipfileSettings, reset_config, set_config
from shipfile.permissions import Capability, Membership, PermissionSet, ScopeDescriptor
from shipfile.sharing import SharingService
from shipfile.storage import InMemorySharingStore

OWNER = "owner@example.com"
BUCKET = "research"


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch):
    """Keep tests independent of the caller's environment."""
    for name in (
        "SHIPFILE_DATABASE_URL",
        "DATABASE_URL",
        "SHIPFILE_FRONTEND_URL",
        "FRONTEND_URL",
        "SHIPFILE_STRICT_SCOPE",
        "SHIPFILE_INVITATION_TTL_DAYS",
        "SHIPFILE_ACTIVITY_LOG_LIMIT",
        "SHIPFILE_HOST",
        "SHIPFILE_PORT",
        "SHIPFILE_LOG_LEVEL",
        "SHIPFILE_MIGRATIONS_DIR",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def settings() -> ShipfileSettings:
    """Settings with a fixed frontend URL."""
    config = ShipfileSettings(frontend_url="https://app.example.com/")
    set_config(config)
    return config


@pytest.fixture
def store() -> InMemorySharingStore:
    """In-memory sharing store."""
    return InMemorySharingStore()


@pytest.fixture
def service(store: InMemorySharingStore, settings: ShipfileSettings) -> SharingService:
    """Sharing service with one registered bucket."""
    svc = SharingService(store=store, settings=settings)
    svc.register_bucket(BUCKET, OWNER, "MIT")
    return svc


def make_membership(
    email: str,
    *capabilities: Capability | str,
    folders: tuple[str, ...] | None = None,
    bucket_name: str = BUCKET,
    invited_by: str | None = OWNER,
) -> Membership:
    """Build a membership; ``folders=None`` means the entire bucket."""
    scope = ScopeDescriptor.entire() if folders is None else ScopeDescriptor.specific(*folders)
    return Membership(
        email=email,
        bucket_name=bucket_name,
        permissions=PermissionSet.of(*capabilities),
        scope=scope,
        invited_by=invited_by,
    )


@pytest.fixture
def make_member():
    """Factory for memberships, see :func:`make_membership`."""
    return make_membership
