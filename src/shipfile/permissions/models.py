"""Records for buckets, memberships, invitations, file ownership and activity.

``to_dict``/``from_dict`` use the camelCase field names of the HTTP API.
``from_dict`` is the validation boundary: permission flags and scopes are
checked there once, and records are trusted afterwards.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any

from ..core.exceptions import ValidationException
from .types import PermissionSet, ScopeDescriptor

DEFAULT_INVITATION_TTL = timedelta(days=7)


def utcnow() -> datetime:
    return datetime.now(UTC)


def normalize_email(email: str) -> str:
    """Lower-case and strip an email address, rejecting obvious garbage."""
    if not isinstance(email, str) or "@" not in email:
        raise ValidationException("A valid email address is required", field="email", value=email)
    return email.strip().lower()


def _require(data: dict[str, Any], key: str) -> Any:
    value = data.get(key)
    if value is None or value == "":
        raise ValidationException(f"Missing required field: {key}", field=key)
    return value


def _parse_datetime(value: Any, name: str) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value))
        except ValueError as exc:
            raise ValidationException(f"{name} is not an ISO 8601 timestamp", field=name, value=value) from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass
class Bucket:
    """A registered storage bucket and its owner."""

    name: str
    owner_email: str
    organization_name: str | None = None
    created_at: datetime = field(default_factory=utcnow)

    def is_owner(self, email: str) -> bool:
        return self.owner_email == email.strip().lower()

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "ownerEmail": self.owner_email,
            "organizationName": self.organization_name,
            "createdAt": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Bucket:
        return cls(
            name=_require(data, "name"),
            owner_email=normalize_email(_require(data, "ownerEmail")),
            organization_name=data.get("organizationName"),
            created_at=_parse_datetime(data["createdAt"], "createdAt") if data.get("createdAt") else utcnow(),
        )


@dataclass
class Membership:
    """A member's grant on one bucket.

    One person may hold memberships in several buckets, each with its own
    permissions and scope. ``(email, bucket_name)`` identifies a membership.
    """

    email: str
    bucket_name: str
    permissions: PermissionSet = field(default_factory=PermissionSet)
    scope: ScopeDescriptor = field(default_factory=ScopeDescriptor.entire)
    invited_by: str | None = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def key(self) -> tuple[str, str]:
        return (self.email, self.bucket_name)

    def with_grant(self, permissions: PermissionSet, scope: ScopeDescriptor) -> Membership:
        """Return a copy carrying a new grant."""
        return replace(self, permissions=permissions, scope=scope)

    def to_dict(self) -> dict[str, Any]:
        return {
            "email": self.email,
            "bucketName": self.bucket_name,
            "permissions": self.permissions.to_dict(),
            "scope": self.scope.to_dict(),
            "invitedBy": self.invited_by,
            "createdAt": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Membership:
        return cls(
            email=normalize_email(_require(data, "email")),
            bucket_name=_require(data, "bucketName"),
            permissions=PermissionSet.from_dict(data.get("permissions")),
            scope=ScopeDescriptor.from_dict(data.get("scope")),
            invited_by=data.get("invitedBy"),
            created_at=_parse_datetime(data["createdAt"], "createdAt") if data.get("createdAt") else utcnow(),
        )


class InvitationStatus(StrEnum):
    """Lifecycle state of an invitation.

    ``pending`` moves to ``accepted`` by acceptance or to ``expired`` by the
    passage of time. Both are terminal.
    """

    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"


@dataclass
class Invitation:
    """A pending offer of a grant to an email address."""

    id: str
    bucket_name: str
    email: str
    permissions: PermissionSet
    scope: ScopeDescriptor
    created_by: str
    expires_at: datetime
    accepted: bool = False
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        if self.expires_at.tzinfo is None:
            self.expires_at = self.expires_at.replace(tzinfo=UTC)
        if self.created_at.tzinfo is None:
            self.created_at = self.created_at.replace(tzinfo=UTC)

    @classmethod
    def create(
        cls,
        bucket_name: str,
        email: str,
        permissions: PermissionSet,
        scope: ScopeDescriptor,
        created_by: str,
        ttl: timedelta = DEFAULT_INVITATION_TTL,
        now: datetime | None = None,
    ) -> Invitation:
        """Create a fresh pending invitation with a random token."""
        created_at = now or utcnow()
        return cls(
            id=str(uuid.uuid4()),
            bucket_name=bucket_name,
            email=normalize_email(email),
            permissions=permissions,
            scope=scope,
            created_by=created_by,
            expires_at=created_at + ttl,
            created_at=created_at,
        )

    def status(self, now: datetime | None = None) -> InvitationStatus:
        """Current lifecycle state; acceptance wins over expiry."""
        if self.accepted:
            return InvitationStatus.ACCEPTED
        if (now or utcnow()) > self.expires_at:
            return InvitationStatus.EXPIRED
        return InvitationStatus.PENDING

    def is_pending(self, now: datetime | None = None) -> bool:
        return self.status(now) == InvitationStatus.PENDING

    def to_membership(self, now: datetime | None = None) -> Membership:
        """The membership this invitation grants once accepted."""
        return Membership(
            email=self.email,
            bucket_name=self.bucket_name,
            permissions=self.permissions,
            scope=self.scope,
            invited_by=self.created_by,
            created_at=now or utcnow(),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "bucketName": self.bucket_name,
            "email": self.email,
            "permissions": self.permissions.to_dict(),
            "scope": self.scope.to_dict(),
            "createdBy": self.created_by,
            "createdAt": self.created_at.isoformat(),
            "expiresAt": self.expires_at.isoformat(),
            "accepted": self.accepted,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Invitation:
        return cls(
            id=_require(data, "id"),
            bucket_name=_require(data, "bucketName"),
            email=normalize_email(_require(data, "email")),
            permissions=PermissionSet.from_dict(data.get("permissions")),
            scope=ScopeDescriptor.from_dict(data.get("scope")),
            created_by=_require(data, "createdBy"),
            expires_at=_parse_datetime(_require(data, "expiresAt"), "expiresAt"),
            accepted=bool(data.get("accepted", False)),
            created_at=_parse_datetime(data["createdAt"], "createdAt") if data.get("createdAt") else utcnow(),
        )


@dataclass
class FileOwnership:
    """Who uploaded a file.

    Members limited to their own files may only delete, rename or overwrite
    files whose record names them.
    """

    bucket_name: str
    file_path: str
    owner_email: str
    uploaded_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "bucketName": self.bucket_name,
            "filePath": self.file_path,
            "ownerEmail": self.owner_email,
            "uploadedAt": self.uploaded_at.isoformat(),
        }


class ActivityAction(StrEnum):
    """Bucket events recorded in the activity log."""

    INVITATION_CREATED = "invitation_created"
    INVITATION_ACCEPTED = "invitation_accepted"
    PERMISSION_CHANGE = "permission_change"
    MEMBER_REMOVED = "member_removed"
    UPLOAD = "upload"
    RENAME = "rename"


@dataclass
class ActivityEntry:
    """One line of a bucket's activity log."""

    bucket_name: str
    user_email: str
    action: ActivityAction
    resource_path: str
    details: str | None = None
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "bucketName": self.bucket_name,
            "userEmail": self.user_email,
            "action": self.action.value,
            "resourcePath": self.resource_path,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }
