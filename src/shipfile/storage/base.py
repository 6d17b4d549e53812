"""Storage protocol and the in-memory implementation."""

from __future__ import annotations

from typing import Protocol

from ..permissions.models import ActivityEntry, Bucket, FileOwnership, Invitation, Membership


class SharingStore(Protocol):
    """Protocol for bucket, membership, invitation and activity persistence.

    ``save_*`` methods insert or replace. Implementations must keep
    memberships unique per ``(email, bucket_name)`` and file ownership unique
    per ``(bucket_name, file_path)``.
    """

    def get_bucket(self, name: str) -> Bucket | None:
        """Get a bucket by name."""
        ...

    def save_bucket(self, bucket: Bucket) -> bool:
        """Save or update a bucket.

        Returns False, writing nothing, when the name belongs to another owner.
        """
        ...

    def get_membership(self, email: str, bucket_name: str) -> Membership | None:
        """Get the membership of one person in one bucket."""
        ...

    def save_membership(self, membership: Membership) -> None:
        """Save or replace a membership."""
        ...

    def delete_membership(self, email: str, bucket_name: str) -> bool:
        """Delete a membership. Returns True if deleted."""
        ...

    def list_memberships(
        self,
        bucket_name: str | None = None,
        email: str | None = None,
        invited_by: str | None = None,
    ) -> list[Membership]:
        """List memberships with optional filters."""
        ...

    def get_invitation(self, token: str) -> Invitation | None:
        """Get an invitation by token."""
        ...

    def save_invitation(self, invitation: Invitation) -> None:
        """Save or update an invitation."""
        ...

    def accept_invitation(self, invitation: Invitation, membership: Membership) -> bool:
        """Mark an invitation accepted and save its membership in one step.

        Returns False, writing nothing, when the invitation was already accepted.
        """
        ...

    def save_file_owner(self, ownership: FileOwnership) -> None:
        """Record or replace the uploader of a file."""
        ...

    def get_file_owners(self, bucket_name: str, paths: list[str]) -> dict[str, str]:
        """Map each recorded path among ``paths`` to its uploader."""
        ...

    def list_owned_files(self, bucket_name: str, email: str) -> list[FileOwnership]:
        """List the files one person uploaded to a bucket."""
        ...

    def rename_file_owners(self, bucket_name: str, old_path: str, new_path: str) -> int:
        """Move ownership records at or below ``old_path``. Returns the count moved."""
        ...

    def append_activity(self, entry: ActivityEntry) -> None:
        """Record an activity entry."""
        ...

    def list_activity(self, bucket_name: str, limit: int = 100) -> list[ActivityEntry]:
        """List a bucket's activity, newest first."""
        ...


class InMemorySharingStore:
    """In-memory store for testing and local use."""

    def __init__(self) -> None:
        self._buckets: dict[str, Bucket] = {}
        self._memberships: dict[tuple[str, str], Membership] = {}
        self._invitations: dict[str, Invitation] = {}
        self._owners: dict[tuple[str, str], FileOwnership] = {}
        self._activity: list[ActivityEntry] = []

    def get_bucket(self, name: str) -> Bucket | None:
        return self._buckets.get(name)

    def save_bucket(self, bucket: Bucket) -> bool:
        existing = self._buckets.get(bucket.name)
        if existing is not None and existing.owner_email != bucket.owner_email:
            return False
        self._buckets[bucket.name] = bucket
        return True

    def get_membership(self, email: str, bucket_name: str) -> Membership | None:
        return self._memberships.get((email, bucket_name))

    def save_membership(self, membership: Membership) -> None:
        self._memberships[membership.key] = membership

    def delete_membership(self, email: str, bucket_name: str) -> bool:
        return self._memberships.pop((email, bucket_name), None) is not None

    def list_memberships(
        self,
        bucket_name: str | None = None,
        email: str | None = None,
        invited_by: str | None = None,
    ) -> list[Membership]:
        results = list(self._memberships.values())
        if bucket_name is not None:
            results = [m for m in results if m.bucket_name == bucket_name]
        if email is not None:
            results = [m for m in results if m.email == email]
        if invited_by is not None:
            results = [m for m in results if m.invited_by == invited_by]
        results.sort(key=lambda m: (m.bucket_name, m.email))
        return results

    def get_invitation(self, token: str) -> Invitation | None:
        return self._invitations.get(token)

    def save_invitation(self, invitation: Invitation) -> None:
        self._invitations[invitation.id] = invitation

    def accept_invitation(self, invitation: Invitation, membership: Membership) -> bool:
        stored = self._invitations.get(invitation.id)
        if stored is None or stored.accepted:
            return False
        stored.accepted = True
        self._memberships[membership.key] = membership
        return True

    def save_file_owner(self, ownership: FileOwnership) -> None:
        self._owners[(ownership.bucket_name, ownership.file_path)] = ownership

    def get_file_owners(self, bucket_name: str, paths: list[str]) -> dict[str, str]:
        owners = {}
        for path in paths:
            record = self._owners.get((bucket_name, path))
            if record is not None:
                owners[path] = record.owner_email
        return owners

    def list_owned_files(self, bucket_name: str, email: str) -> list[FileOwnership]:
        results = [o for o in self._owners.values() if o.bucket_name == bucket_name and o.owner_email == email]
        results.sort(key=lambda o: o.file_path)
        return results

    def rename_file_owners(self, bucket_name: str, old_path: str, new_path: str) -> int:
        moved = [
            o
            for o in self._owners.values()
            if o.bucket_name == bucket_name and (o.file_path == old_path or o.file_path.startswith(old_path + "/"))
        ]
        for record in moved:
            del self._owners[(bucket_name, record.file_path)]
        for record in moved:
            record.file_path = new_path + record.file_path[len(old_path) :]
            self._owners[(bucket_name, record.file_path)] = record
        return len(moved)

    def append_activity(self, entry: ActivityEntry) -> None:
        self._activity.append(entry)

    def list_activity(self, bucket_name: str, limit: int = 100) -> list[ActivityEntry]:
        entries = [e for e in self._activity if e.bucket_name == bucket_name]
        entries.sort(key=lambda e: e.timestamp, reverse=True)
        return entries[:limit]
