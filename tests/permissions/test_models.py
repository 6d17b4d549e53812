"""Tests for bucket, membership, invitation and activity records."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from shipfile.core.exceptions import ValidationException
from shipfile.permissions.models import (
    ActivityAction,
    ActivityEntry,
    Bucket,
    FileOwnership,
    Invitation,
    InvitationStatus,
    Membership,
    normalize_email,
)
from shipfile.permissions.types import PermissionSet, ScopeDescriptor

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


class TestNormalizeEmail:
    """Tests for normalize_email."""

    def test_lowercases_and_strips(self) -> None:
        assert normalize_email("  Alice@Example.COM ") == "alice@example.com"

    @pytest.mark.parametrize("bad", ["", "alice", None, 7])
    def test_rejects_invalid(self, bad) -> None:
        with pytest.raises(ValidationException):
            normalize_email(bad)


class TestBucket:
    """Tests for Bucket."""

    def test_is_owner_ignores_case(self) -> None:
        bucket = Bucket(name="research", owner_email="owner@example.com")
        assert bucket.is_owner("Owner@Example.com ")
        assert not bucket.is_owner("other@example.com")

    def test_from_dict_normalizes_owner(self) -> None:
        bucket = Bucket.from_dict({"name": "research", "ownerEmail": "OWNER@example.com"})
        assert bucket.owner_email == "owner@example.com"

    def test_from_dict_requires_name(self) -> None:
        with pytest.raises(ValidationException) as exc_info:
            Bucket.from_dict({"ownerEmail": "owner@example.com"})
        assert exc_info.value.field == "name"


class TestMembership:
    """Tests for Membership."""

    def test_key(self) -> None:
        m = Membership(email="a@example.com", bucket_name="research")
        assert m.key == ("a@example.com", "research")

    def test_defaults(self) -> None:
        m = Membership(email="a@example.com", bucket_name="research")
        assert not m.permissions
        assert m.scope.is_entire

    def test_with_grant_returns_copy(self) -> None:
        m = Membership(email="a@example.com", bucket_name="research", permissions=PermissionSet.of("viewOnly"))
        updated = m.with_grant(PermissionSet.of("uploadViewAll"), ScopeDescriptor.specific("docs"))
        assert m.permissions.has("viewOnly")
        assert updated.permissions.has("uploadViewAll")
        assert updated.scope.folders == ("docs",)
        assert updated.created_at == m.created_at

    def test_from_dict_validates_blobs(self) -> None:
        with pytest.raises(ValidationException):
            Membership.from_dict(
                {
                    "email": "a@example.com",
                    "bucketName": "research",
                    "permissions": {"everything": True},
                }
            )

    def test_to_dict_from_dict(self) -> None:
        m = Membership(
            email="a@example.com",
            bucket_name="research",
            permissions=PermissionSet.of("viewDownload"),
            scope=ScopeDescriptor.specific("mit/ai"),
            invited_by="owner@example.com",
            created_at=NOW,
        )
        d = m.to_dict()
        assert d["scope"] == {"type": "specific", "folders": ["mit/ai"]}
        assert d["invitedBy"] == "owner@example.com"
        assert Membership.from_dict(d) == m


class TestInvitation:
    """Tests for Invitation lifecycle."""

    @pytest.fixture
    def invitation(self) -> Invitation:
        return Invitation.create(
            bucket_name="research",
            email="New@Example.com",
            permissions=PermissionSet.of("viewOnly"),
            scope=ScopeDescriptor.specific("mit/ai"),
            created_by="owner@example.com",
            now=NOW,
        )

    def test_create(self, invitation: Invitation) -> None:
        assert invitation.email == "new@example.com"
        assert invitation.expires_at == NOW + timedelta(days=7)
        assert not invitation.accepted
        assert len(invitation.id) == 36

    def test_tokens_are_unique(self, invitation: Invitation) -> None:
        other = Invitation.create(
            bucket_name="research",
            email="new@example.com",
            permissions=PermissionSet(),
            scope=ScopeDescriptor.entire(),
            created_by="owner@example.com",
        )
        assert other.id != invitation.id

    def test_pending_until_expiry(self, invitation: Invitation) -> None:
        assert invitation.status(NOW) == InvitationStatus.PENDING
        assert invitation.is_pending(invitation.expires_at)
        assert invitation.status(invitation.expires_at + timedelta(seconds=1)) == InvitationStatus.EXPIRED

    def test_accepted_wins_over_expired(self, invitation: Invitation) -> None:
        invitation.accepted = True
        assert invitation.status(NOW + timedelta(days=30)) == InvitationStatus.ACCEPTED

    def test_naive_timestamps_become_utc(self) -> None:
        inv = Invitation(
            id="t",
            bucket_name="b",
            email="a@example.com",
            permissions=PermissionSet(),
            scope=ScopeDescriptor.entire(),
            created_by="o@example.com",
            expires_at=datetime(2026, 1, 1),
            created_at=datetime(2025, 12, 25),
        )
        assert inv.expires_at.tzinfo is UTC
        assert inv.created_at.tzinfo is UTC

    def test_to_membership(self, invitation: Invitation) -> None:
        m = invitation.to_membership(NOW)
        assert m.email == "new@example.com"
        assert m.bucket_name == "research"
        assert m.scope == invitation.scope
        assert m.invited_by == "owner@example.com"

    def test_to_dict_from_dict(self, invitation: Invitation) -> None:
        d = invitation.to_dict()
        assert d["expiresAt"] == (NOW + timedelta(days=7)).isoformat()
        assert Invitation.from_dict(d) == invitation

    def test_from_dict_requires_expiry(self, invitation: Invitation) -> None:
        d = invitation.to_dict()
        del d["expiresAt"]
        with pytest.raises(ValidationException):
            Invitation.from_dict(d)

    def test_from_dict_rejects_bad_timestamp(self, invitation: Invitation) -> None:
        d = invitation.to_dict()
        d["expiresAt"] = "next tuesday"
        with pytest.raises(ValidationException):
            Invitation.from_dict(d)


class TestActivityEntry:
    """Tests for ActivityEntry."""

    def test_to_dict(self) -> None:
        entry = ActivityEntry(
            bucket_name="research",
            user_email="owner@example.com",
            action=ActivityAction.MEMBER_REMOVED,
            resource_path="gone@example.com",
            timestamp=NOW,
        )
        assert entry.to_dict() == {
            "bucketName": "research",
            "userEmail": "owner@example.com",
            "action": "member_removed",
            "resourcePath": "gone@example.com",
            "details": None,
            "timestamp": NOW.isoformat(),
        }


class TestFileOwnership:
    """Tests for FileOwnership."""

    def test_to_dict(self) -> None:
        record = FileOwnership("research", "mit/ai/paper.pdf", "alice@example.com", uploaded_at=NOW)
        assert record.to_dict() == {
            "bucketName": "research",
            "filePath": "mit/ai/paper.pdf",
            "ownerEmail": "alice@example.com",
            "uploadedAt": NOW.isoformat(),
        }
