"""Bucket sharing service.

Runs the invitation lifecycle, member management and access checks on top
of the pure authorization model and an injected store.

Owners hold every capability on their bucket without a membership record.
Members act through their membership: a stored permission set plus a scope.
Access checks and invitation creation report denials as values; caller
mistakes (unknown bucket, expired invitation, non-owner managing members)
raise exceptions.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

from .core.config import ShipfileSettings, get_config
from .core.exceptions import (
    ConflictError,
    InvitationExpiredError,
    NotFoundError,
    OwnerRequiredError,
    ValidationException,
)
from .permissions import (
    REASON_CAPABILITY,
    REASON_NO_MEMBERSHIP,
    AccessLevel,
    AccessProfile,
    ActivityAction,
    ActivityEntry,
    AuthorizationResult,
    Bucket,
    Capability,
    DenialKind,
    FileOwnership,
    Invitation,
    InvitationStatus,
    ListingEntry,
    Membership,
    PermissionSet,
    ScopeDescriptor,
    authorize,
    check_file_ownership,
    filter_listing,
    limited_to_own_files,
    normalize_email,
    normalize_folder,
    rename_in_scope,
    validate_invitation_scope,
    validate_permission_escalation,
)
from .permissions.models import utcnow
from .permissions.types import parse_capability
from .storage import InMemorySharingStore, SharingStore

logger = logging.getLogger(__name__)

_UPLOAD_CAPABILITIES = (Capability.UPLOAD_VIEW_ALL, Capability.UPLOAD_VIEW_OWN, Capability.UPLOAD_ONLY)


@dataclass
class InviteResult:
    """Result of an invitation request."""

    invitation: Invitation | None
    decision: AuthorizationResult
    invite_link: str | None = None

    @property
    def created(self) -> bool:
        return self.invitation is not None


class SharingService:
    """Service for sharing buckets with scoped members."""

    def __init__(
        self,
        store: SharingStore | None = None,
        settings: ShipfileSettings | None = None,
    ) -> None:
        self._store: SharingStore = store or InMemorySharingStore()
        self._settings = settings or get_config()

    @property
    def store(self) -> SharingStore:
        return self._store

    @property
    def settings(self) -> ShipfileSettings:
        return self._settings

    @property
    def _allow_ancestor(self) -> bool:
        return not self._settings.strict_scope_containment

    # -------------------------------------------------------------------------
    # BUCKETS
    # -------------------------------------------------------------------------

    def register_bucket(
        self,
        name: str,
        owner_email: str,
        organization_name: str | None = None,
    ) -> Bucket:
        """Register a bucket for an owner.

        Re-registering by the same owner updates the organization name.

        Raises:
            ValidationException: If the name is empty.
            ConflictError: If another owner already registered the name.
        """
        name = (name or "").strip()
        if not name:
            raise ValidationException("Bucket name is required", field="bucketName")
        owner = normalize_email(owner_email)

        existing = self._store.get_bucket(name)
        if existing is not None and existing.owner_email != owner:
            raise ConflictError(f"Bucket {name} is already registered", {"bucket_name": name})

        bucket = Bucket(
            name=name,
            owner_email=owner,
            organization_name=organization_name or (existing.organization_name if existing else None),
            created_at=existing.created_at if existing else utcnow(),
        )
        if not self._store.save_bucket(bucket):
            raise ConflictError(f"Bucket {name} is already registered", {"bucket_name": name})
        logger.info("Bucket %s registered by %s", name, owner)
        return bucket

    def get_bucket(self, name: str) -> Bucket:
        """Get a bucket or raise NotFoundError."""
        bucket = self._store.get_bucket(name)
        if bucket is None:
            raise NotFoundError("Bucket", name)
        return bucket

    def _require_owner(self, bucket_name: str, actor_email: str) -> Bucket:
        bucket = self.get_bucket(bucket_name)
        if not bucket.is_owner(actor_email):
            logger.warning("Owner-only operation on %s refused for %s", bucket_name, actor_email)
            raise OwnerRequiredError(bucket_name, actor_email)
        return bucket

    # -------------------------------------------------------------------------
    # ACCESS
    # -------------------------------------------------------------------------

    def check_access(
        self,
        email: str,
        bucket_name: str,
        action: Capability | str,
        target_paths: Sequence[str] = (),
    ) -> AuthorizationResult:
        """Decide whether ``email`` may perform ``action`` in a bucket.

        Raises:
            NotFoundError: If the bucket is not registered.
        """
        bucket = self.get_bucket(bucket_name)
        email = normalize_email(email)
        if bucket.is_owner(email):
            return AuthorizationResult.allow()

        membership = self._store.get_membership(email, bucket_name)
        if membership is None:
            return AuthorizationResult.deny(DenialKind.MEMBERSHIP_NOT_FOUND, REASON_NO_MEMBERSHIP)
        return self._evaluate(membership, action, target_paths)

    def _evaluate(
        self,
        membership: Membership,
        action: Capability | str,
        target_paths: Sequence[str],
        *,
        require_record: bool | None = None,
    ) -> AuthorizationResult:
        if require_record is None:
            require_record = parse_capability(action) == Capability.DELETE_OWN_FILES
        decision = authorize(membership, action, target_paths, allow_ancestor=self._allow_ancestor)
        if decision.allowed and target_paths and limited_to_own_files(membership.permissions, action):
            owners = self._store.get_file_owners(
                membership.bucket_name, [normalize_folder(p) for p in target_paths]
            )
            decision = check_file_ownership(
                membership.email,
                target_paths,
                owners,
                require_record=require_record,
            )
        if not decision.allowed:
            logger.warning(
                "Denied %s for %s on %s: %s %s",
                action,
                membership.email,
                membership.bucket_name,
                decision.reason,
                list(decision.denied_paths),
            )
        return decision

    def visible_listing(
        self,
        email: str,
        bucket_name: str,
        prefix: str,
        entries: Sequence[ListingEntry],
    ) -> list[ListingEntry] | None:
        """Filter a raw folder listing down to what ``email`` may see.

        Returns None when the member may not browse ``prefix`` at all, or is
        not a member. Files are shown by the member's view access: all of
        them, only those they uploaded, or none.
        """
        bucket = self.get_bucket(bucket_name)
        email = normalize_email(email)
        if bucket.is_owner(email):
            return list(entries)

        membership = self._store.get_membership(email, bucket_name)
        if membership is None:
            return None
        visible = filter_listing(membership.scope, prefix, entries, allow_ancestor=self._allow_ancestor)
        if visible is None:
            return None

        view = AccessProfile.from_permissions(membership.permissions).view
        if view == AccessLevel.ALL:
            return visible
        owned: dict[str, str] = {}
        if view == AccessLevel.OWN:
            files = [normalize_folder(e.path) for e in visible if not e.is_folder]
            owned = self._store.get_file_owners(bucket_name, files)
        return [e for e in visible if e.is_folder or owned.get(normalize_folder(e.path)) == email]

    # -------------------------------------------------------------------------
    # FILES
    # -------------------------------------------------------------------------

    def record_upload(
        self,
        email: str,
        bucket_name: str,
        file_path: str,
        now: datetime | None = None,
    ) -> AuthorizationResult:
        """Record ``email`` as the uploader of ``file_path``.

        Members need an upload capability covering the path. Members limited
        to their own files may not take over a file someone else uploaded.

        Raises:
            NotFoundError: If the bucket is not registered.
            ValidationException: If the path is empty.
        """
        bucket = self.get_bucket(bucket_name)
        email = normalize_email(email)
        path = normalize_folder(file_path)
        if not path:
            raise ValidationException("File path is required", field="filePath")

        if not bucket.is_owner(email):
            membership = self._store.get_membership(email, bucket_name)
            if membership is None:
                return AuthorizationResult.deny(DenialKind.MEMBERSHIP_NOT_FOUND, REASON_NO_MEMBERSHIP)
            held = [c for c in _UPLOAD_CAPABILITIES if membership.permissions.has(c)]
            decision = self._evaluate(membership, held[0] if held else Capability.UPLOAD_ONLY, [path])
            if not decision.allowed:
                return decision

        self._store.save_file_owner(
            FileOwnership(bucket_name=bucket_name, file_path=path, owner_email=email, uploaded_at=now or utcnow())
        )
        self._record(bucket_name, email, ActivityAction.UPLOAD, path, None, now)
        logger.info("Upload of %s to %s recorded for %s", path, bucket_name, email)
        return AuthorizationResult.allow()

    def owned_files(self, bucket_name: str, email: str) -> list[FileOwnership]:
        """Files one person uploaded to a bucket."""
        self.get_bucket(bucket_name)
        return self._store.list_owned_files(bucket_name, normalize_email(email))

    def rename_path(
        self,
        actor_email: str,
        bucket_name: str,
        old_path: str,
        new_path: str,
        *,
        folder: bool = False,
        now: datetime | None = None,
    ) -> AuthorizationResult:
        """Carry a file or folder rename over to ownership records and grants.

        Members with ``uploadViewAll`` or ``deleteFiles`` may rename anything
        in scope. Members limited to their own files may rename only files
        they uploaded, never folders. Renaming a folder moves member scopes
        that point at or below it.

        Raises:
            NotFoundError: If the bucket is not registered.
            ValidationException: If either path is empty.
        """
        bucket = self.get_bucket(bucket_name)
        actor = normalize_email(actor_email)
        old = normalize_folder(old_path)
        new = normalize_folder(new_path)
        if not old or not new:
            raise ValidationException("Both the old and the new path are required", field="newPath")

        if not bucket.is_owner(actor):
            membership = self._store.get_membership(actor, bucket_name)
            if membership is None:
                return AuthorizationResult.deny(DenialKind.MEMBERSHIP_NOT_FOUND, REASON_NO_MEMBERSHIP)
            decision = self._check_rename(membership, old, new, folder)
            if not decision.allowed:
                return decision

        moved_grants = 0
        if folder:
            for membership in self._store.list_memberships(bucket_name=bucket_name):
                scope = rename_in_scope(membership.scope, old, new)
                if scope is not None:
                    self._store.save_membership(membership.with_grant(membership.permissions, scope))
                    moved_grants += 1
        moved_files = self._store.rename_file_owners(bucket_name, old, new)

        self._record(bucket_name, actor, ActivityAction.RENAME, new, f"Renamed from {old}", now)
        logger.info(
            "Renamed %s to %s in %s: %d grants and %d ownership records moved",
            old,
            new,
            bucket_name,
            moved_grants,
            moved_files,
        )
        return AuthorizationResult.allow()

    def _check_rename(self, membership: Membership, old: str, new: str, folder: bool) -> AuthorizationResult:
        permissions = membership.permissions
        for capability in (Capability.UPLOAD_VIEW_ALL, Capability.DELETE_FILES):
            if permissions.has(capability):
                return self._evaluate(membership, capability, [old, new])

        own = [c for c in (Capability.UPLOAD_VIEW_OWN, Capability.DELETE_OWN_FILES) if permissions.has(c)]
        if folder or not own:
            return AuthorizationResult.deny(DenialKind.CAPABILITY_DENIED, REASON_CAPABILITY)

        decision = self._evaluate(membership, own[0], [old], require_record=True)
        if not decision.allowed:
            return decision
        return self._evaluate(membership, own[0], [new], require_record=False)

    # -------------------------------------------------------------------------
    # INVITATIONS
    # -------------------------------------------------------------------------

    def invite_link(self, invitation: Invitation) -> str:
        return f"{self._settings.frontend_url}/accept-invite/{invitation.id}"

    def create_invitation(
        self,
        inviter_email: str,
        bucket_name: str,
        email: str,
        permissions: PermissionSet,
        scope: ScopeDescriptor,
        now: datetime | None = None,
    ) -> InviteResult:
        """Invite ``email`` into a bucket with a permission set and scope.

        The owner may invite with any grant. A member needs ``inviteMembers``,
        may not grant more than they hold, and may not grant folders outside
        their own scope. Checks run before anything is stored.

        Raises:
            NotFoundError: If the bucket is not registered.
            ValidationException: If the invitee email is invalid.
        """
        bucket = self.get_bucket(bucket_name)
        inviter = normalize_email(inviter_email)
        invitee = normalize_email(email)

        if not bucket.is_owner(inviter):
            decision = self._check_delegation(inviter, bucket_name, permissions, scope)
            if not decision.allowed:
                logger.warning(
                    "Invitation from %s to %s in %s refused: %s",
                    inviter,
                    invitee,
                    bucket_name,
                    decision.reason,
                )
                return InviteResult(invitation=None, decision=decision)

        invitation = Invitation.create(
            bucket_name=bucket_name,
            email=invitee,
            permissions=permissions,
            scope=scope,
            created_by=inviter,
            ttl=timedelta(days=self._settings.invitation_ttl_days),
            now=now,
        )
        self._store.save_invitation(invitation)
        self._record(
            bucket_name,
            inviter,
            ActivityAction.INVITATION_CREATED,
            invitee,
            f"Invited with scope {scope.type.value}",
            now,
        )
        logger.info("Invitation %s created by %s for %s in %s", invitation.id, inviter, invitee, bucket_name)
        return InviteResult(
            invitation=invitation,
            decision=AuthorizationResult.allow(),
            invite_link=self.invite_link(invitation),
        )

    def _check_delegation(
        self,
        inviter: str,
        bucket_name: str,
        permissions: PermissionSet,
        scope: ScopeDescriptor,
    ) -> AuthorizationResult:
        membership = self._store.get_membership(inviter, bucket_name)
        if membership is None:
            return AuthorizationResult.deny(DenialKind.MEMBERSHIP_NOT_FOUND, REASON_NO_MEMBERSHIP)

        decision = authorize(membership, Capability.INVITE_MEMBERS)
        if not decision.allowed:
            return decision

        decision = validate_permission_escalation(membership.permissions, permissions)
        if not decision.allowed:
            return decision

        return validate_invitation_scope(membership.scope, scope, allow_ancestor=self._allow_ancestor)

    def get_invitation(self, token: str, now: datetime | None = None) -> Invitation:
        """Get a pending invitation.

        Raises:
            NotFoundError: If the token is unknown or already accepted.
            InvitationExpiredError: If the invitation has expired.
        """
        invitation = self._store.get_invitation(token)
        if invitation is None:
            raise NotFoundError("Invitation", token)

        status = invitation.status(now)
        if status == InvitationStatus.ACCEPTED:
            raise NotFoundError("Invitation", token)
        if status == InvitationStatus.EXPIRED:
            raise InvitationExpiredError(token)
        return invitation

    def accept_invitation(self, token: str, now: datetime | None = None) -> Membership:
        """Accept a pending invitation, creating or replacing the membership.

        Memberships of the same person in other buckets are untouched. The
        store marks the token used and writes the membership together, so a
        token grants access at most once.

        Raises:
            NotFoundError: If the token is unknown or already accepted.
            InvitationExpiredError: If the invitation has expired.
        """
        invitation = self.get_invitation(token, now)
        existing = self._store.get_membership(invitation.email, invitation.bucket_name)

        if existing is not None:
            membership = existing.with_grant(invitation.permissions, invitation.scope)
            membership.invited_by = invitation.created_by
        else:
            membership = invitation.to_membership(now)

        if not self._store.accept_invitation(invitation, membership):
            raise NotFoundError("Invitation", token)
        invitation.accepted = True
        self._record(
            invitation.bucket_name,
            invitation.email,
            ActivityAction.INVITATION_ACCEPTED,
            invitation.email,
            "Updated existing membership" if existing else "Joined bucket",
            now,
        )
        logger.info("Invitation %s accepted by %s for %s", token, invitation.email, invitation.bucket_name)
        return membership

    # -------------------------------------------------------------------------
    # MEMBERS
    # -------------------------------------------------------------------------

    def get_membership(self, email: str, bucket_name: str) -> Membership:
        """Get one membership or raise NotFoundError."""
        membership = self._store.get_membership(normalize_email(email), bucket_name)
        if membership is None:
            raise NotFoundError("Membership", f"{email} in {bucket_name}")
        return membership

    def list_memberships(self, email: str) -> list[Membership]:
        """All memberships of one person, across buckets."""
        return self._store.list_memberships(email=normalize_email(email))

    def list_members(self, bucket_name: str, requester_email: str) -> list[Membership]:
        """List members visible to the requester.

        The owner sees every member; a member sees only those they invited.
        """
        bucket = self.get_bucket(bucket_name)
        requester = normalize_email(requester_email)
        if bucket.is_owner(requester):
            return self._store.list_memberships(bucket_name=bucket_name)
        return self._store.list_memberships(bucket_name=bucket_name, invited_by=requester)

    def update_member_permissions(
        self,
        actor_email: str,
        bucket_name: str,
        email: str,
        permissions: PermissionSet,
        scope: ScopeDescriptor,
    ) -> Membership:
        """Replace a member's grant. Owner only."""
        self._require_owner(bucket_name, actor_email)
        membership = self.get_membership(email, bucket_name)

        updated = membership.with_grant(permissions, scope)
        self._store.save_membership(updated)
        self._record(
            bucket_name,
            normalize_email(actor_email),
            ActivityAction.PERMISSION_CHANGE,
            updated.email,
            "Permissions updated",
        )
        logger.info("Permissions of %s in %s updated", updated.email, bucket_name)
        return updated

    def remove_member(self, actor_email: str, bucket_name: str, email: str) -> None:
        """Remove a member from a bucket. Owner only."""
        self._require_owner(bucket_name, actor_email)
        member = normalize_email(email)
        if not self._store.delete_membership(member, bucket_name):
            raise NotFoundError("Membership", f"{member} in {bucket_name}")

        self._record(
            bucket_name,
            normalize_email(actor_email),
            ActivityAction.MEMBER_REMOVED,
            member,
            "Member removed from organization",
        )
        logger.info("Member %s removed from %s", member, bucket_name)

    # -------------------------------------------------------------------------
    # ACTIVITY
    # -------------------------------------------------------------------------

    def activity(self, bucket_name: str, requester_email: str, limit: int | None = None) -> list[ActivityEntry]:
        """Recent activity of a bucket, newest first. Owner only."""
        self._require_owner(bucket_name, requester_email)
        return self._store.list_activity(bucket_name, limit or self._settings.activity_log_limit)

    def _record(
        self,
        bucket_name: str,
        user_email: str,
        action: ActivityAction,
        resource_path: str,
        details: str | None = None,
        now: datetime | None = None,
    ) -> None:
        self._store.append_activity(
            ActivityEntry(
                bucket_name=bucket_name,
                user_email=user_email,
                action=action,
                resource_path=resource_path,
                details=details,
                timestamp=now or utcnow(),
            )
        )
