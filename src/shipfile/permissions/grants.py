"""Grant evaluation: authorization and delegation checks.

All functions here are pure. A denial is a returned value carrying a
human-readable reason, never an exception, so callers can pass the reason
straight through to the user.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import IntEnum, StrEnum
from typing import TYPE_CHECKING

from .scope import uncovered_paths
from .types import Capability, PermissionSet, ScopeDescriptor, normalize_folder, parse_capability

if TYPE_CHECKING:
    from .models import Membership

REASON_CAPABILITY = "capability not granted"
REASON_SCOPE = "outside granted scope"
REASON_DELEGATION = "cannot grant access outside own scope"
REASON_ESCALATION = "cannot grant permissions higher than own"
REASON_NO_MEMBERSHIP = "not a member of this bucket"
REASON_OWNERSHIP = "can only act on own files"


class DenialKind(StrEnum):
    """Why a request was denied."""

    CAPABILITY_DENIED = "capability_denied"
    SCOPE_DENIED = "scope_denied"
    DELEGATION_DENIED = "delegation_denied"
    ESCALATION_DENIED = "escalation_denied"
    MEMBERSHIP_NOT_FOUND = "membership_not_found"
    OWNERSHIP_DENIED = "ownership_denied"


@dataclass(frozen=True)
class AuthorizationResult:
    """Outcome of an authorization or delegation check."""

    allowed: bool
    reason: str = ""
    denial: DenialKind | None = None
    denied_paths: tuple[str, ...] = ()

    def __bool__(self) -> bool:
        return self.allowed

    @classmethod
    def allow(cls) -> AuthorizationResult:
        return ALLOW

    @classmethod
    def deny(cls, denial: DenialKind, reason: str, denied_paths: Sequence[str] = ()) -> AuthorizationResult:
        return cls(allowed=False, reason=reason, denial=denial, denied_paths=tuple(denied_paths))

    def to_dict(self) -> dict:
        result: dict = {"allowed": self.allowed}
        if not self.allowed:
            result["reason"] = self.reason
            result["denial"] = self.denial.value if self.denial else None
            if self.denied_paths:
                result["deniedPaths"] = list(self.denied_paths)
        return result


ALLOW = AuthorizationResult(allowed=True, reason="allowed")


def authorize(
    membership: Membership,
    action: Capability | str,
    target_paths: Sequence[str] = (),
    *,
    allow_ancestor: bool = True,
) -> AuthorizationResult:
    """Decide whether a member may perform ``action`` on ``target_paths``.

    The capability flag is checked first, then scope. Unknown actions are
    treated as capabilities that were never granted.
    """
    capability = parse_capability(action)
    if capability is None or not membership.permissions.has(capability):
        return AuthorizationResult.deny(DenialKind.CAPABILITY_DENIED, REASON_CAPABILITY)

    if target_paths:
        outside = uncovered_paths(target_paths, membership.scope, allow_ancestor=allow_ancestor)
        if outside:
            return AuthorizationResult.deny(DenialKind.SCOPE_DENIED, REASON_SCOPE, outside)

    return ALLOW


def validate_invitation_scope(
    inviter_scope: ScopeDescriptor,
    proposed_scope: ScopeDescriptor,
    *,
    allow_ancestor: bool = True,
) -> AuthorizationResult:
    """Check that a proposed invitation scope stays within the inviter's.

    An inviter with the whole bucket may hand out anything. An inviter
    limited to folders may not hand out the whole bucket, and every proposed
    folder must fall within their own folders.
    """
    if inviter_scope.is_entire:
        return ALLOW

    if proposed_scope.is_entire:
        return AuthorizationResult.deny(DenialKind.DELEGATION_DENIED, REASON_DELEGATION)

    outside = uncovered_paths(proposed_scope.folders, inviter_scope, allow_ancestor=allow_ancestor)
    if outside:
        return AuthorizationResult.deny(DenialKind.DELEGATION_DENIED, REASON_DELEGATION, outside)
    return ALLOW


# =============================================================================
# FILE OWNERSHIP
# =============================================================================

# Capabilities that only reach the holder's own files, and the flags that
# lift that limit.
_OWN_FILE_CAPABILITIES: dict[Capability, tuple[Capability, ...]] = {
    Capability.UPLOAD_ONLY: (Capability.UPLOAD_VIEW_ALL,),
    Capability.UPLOAD_VIEW_OWN: (Capability.UPLOAD_VIEW_ALL,),
    Capability.DELETE_OWN_FILES: (Capability.DELETE_FILES, Capability.UPLOAD_VIEW_ALL),
}


def limited_to_own_files(permissions: PermissionSet, action: Capability | str) -> bool:
    """Whether acting with ``action`` under ``permissions`` only reaches own files."""
    broader = _OWN_FILE_CAPABILITIES.get(parse_capability(action))
    if broader is None:
        return False
    return not any(permissions.has(capability) for capability in broader)


def check_file_ownership(
    email: str,
    target_paths: Sequence[str],
    owners: Mapping[str, str],
    *,
    require_record: bool = False,
) -> AuthorizationResult:
    """Check that an own-files action only touches files ``email`` uploaded.

    ``owners`` maps normalized file paths to the recorded uploader. A path
    owned by someone else is always denied. A path with no record passes
    unless ``require_record`` is set, as for deleting or renaming.
    """
    foreign = []
    for raw in target_paths:
        owner = owners.get(normalize_folder(raw))
        if owner == email:
            continue
        if owner is None and not require_record:
            continue
        foreign.append(raw)
    if foreign:
        return AuthorizationResult.deny(DenialKind.OWNERSHIP_DENIED, REASON_OWNERSHIP, foreign)
    return ALLOW


# =============================================================================
# ACCESS PROFILES
# =============================================================================


class AccessLevel(IntEnum):
    """Breadth of view, upload or delete access, ordered."""

    NONE = 0
    OWN = 1
    ALL = 2


@dataclass(frozen=True)
class AccessProfile:
    """Simplified reading of a permission set.

    ``view`` decides which files are visible, ``upload`` which files may be
    uploaded and managed, ``delete`` which files may be deleted. The extras
    are independent switches.
    """

    view: AccessLevel = AccessLevel.NONE
    upload: AccessLevel = AccessLevel.NONE
    download: bool = False
    share: bool = False
    create_folder: bool = False
    delete: AccessLevel = AccessLevel.NONE
    invite_members: bool = False

    @classmethod
    def from_permissions(cls, permissions: PermissionSet) -> AccessProfile:
        view = AccessLevel.NONE
        upload = AccessLevel.NONE
        download = False
        delete = AccessLevel.NONE

        if permissions.has(Capability.VIEW_ONLY):
            view = AccessLevel.ALL
        if permissions.has(Capability.VIEW_DOWNLOAD):
            view = AccessLevel.ALL
            download = True
        if permissions.has(Capability.UPLOAD_ONLY):
            upload = AccessLevel.OWN
        if permissions.has(Capability.UPLOAD_VIEW_OWN):
            upload = AccessLevel.OWN
            view = max(view, AccessLevel.OWN)
        if permissions.has(Capability.UPLOAD_VIEW_ALL):
            upload = AccessLevel.ALL
            view = AccessLevel.ALL
        if permissions.has(Capability.DELETE_OWN_FILES):
            delete = AccessLevel.OWN
        if permissions.has(Capability.DELETE_FILES):
            delete = AccessLevel.ALL

        return cls(
            view=view,
            upload=upload,
            download=download,
            share=permissions.has(Capability.GENERATE_LINKS),
            create_folder=permissions.has(Capability.CREATE_FOLDER),
            delete=delete,
            invite_members=permissions.has(Capability.INVITE_MEMBERS),
        )

    def covers(self, other: AccessProfile) -> bool:
        """Check that ``other`` grants nothing beyond this profile."""
        for level in ("view", "upload", "delete"):
            if getattr(other, level) > getattr(self, level):
                return False
        for extra in ("download", "share", "create_folder", "invite_members"):
            if getattr(other, extra) and not getattr(self, extra):
                return False
        return True


def validate_permission_escalation(
    inviter_permissions: PermissionSet,
    proposed_permissions: PermissionSet,
) -> AuthorizationResult:
    """Check that an invitation does not grant more than the inviter holds."""
    inviter = AccessProfile.from_permissions(inviter_permissions)
    proposed = AccessProfile.from_permissions(proposed_permissions)
    if inviter.covers(proposed):
        return ALLOW
    return AuthorizationResult.deny(DenialKind.ESCALATION_DENIED, REASON_ESCALATION)


_VIEW_LABELS = {AccessLevel.OWN: "View Own Files", AccessLevel.ALL: "View All Files"}
_UPLOAD_LABELS = {AccessLevel.OWN: "Upload & Manage Own Files", AccessLevel.ALL: "Upload & Manage All Files"}
_DELETE_LABELS = {AccessLevel.OWN: "Delete Own Files", AccessLevel.ALL: "Delete Files"}


def describe_permissions(permissions: PermissionSet) -> str:
    """Render a permission set for people."""
    profile = AccessProfile.from_permissions(permissions)
    parts = []
    if profile.view in _VIEW_LABELS:
        parts.append(_VIEW_LABELS[profile.view])
    if profile.upload in _UPLOAD_LABELS:
        parts.append(_UPLOAD_LABELS[profile.upload])
    if profile.download:
        parts.append("Download Files")
    if profile.share:
        parts.append("Generate Share Links")
    if profile.create_folder:
        parts.append("Create Folders")
    if profile.delete in _DELETE_LABELS:
        parts.append(_DELETE_LABELS[profile.delete])
    if profile.invite_members:
        parts.append("Invite Members")
    return ", ".join(parts) if parts else "No permissions"
