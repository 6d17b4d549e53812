"""Scope & permission authorization model.

Pure and stateless: nothing in this package performs I/O or keeps state
between calls, so it is safe to call from concurrent request handlers.
"""

from .grants import (
    ALLOW,
    REASON_CAPABILITY,
    REASON_DELEGATION,
    REASON_ESCALATION,
    REASON_NO_MEMBERSHIP,
    REASON_OWNERSHIP,
    REASON_SCOPE,
    AccessLevel,
    AccessProfile,
    AuthorizationResult,
    DenialKind,
    authorize,
    check_file_ownership,
    describe_permissions,
    limited_to_own_files,
    validate_invitation_scope,
    validate_permission_escalation,
)
from .models import (
    ActivityAction,
    ActivityEntry,
    Bucket,
    FileOwnership,
    Invitation,
    InvitationStatus,
    Membership,
    normalize_email,
)
from .scope import ListingEntry, filter_listing, is_contained, rename_in_scope, uncovered_paths
from .types import Capability, PermissionSet, ScopeDescriptor, ScopeType, normalize_folder

__all__ = [
    # Types
    "Capability",
    "PermissionSet",
    "ScopeType",
    "ScopeDescriptor",
    "normalize_folder",
    # Scope
    "is_contained",
    "uncovered_paths",
    "ListingEntry",
    "filter_listing",
    "rename_in_scope",
    # Grants
    "ALLOW",
    "AuthorizationResult",
    "DenialKind",
    "authorize",
    "validate_invitation_scope",
    "validate_permission_escalation",
    "AccessLevel",
    "AccessProfile",
    "describe_permissions",
    "limited_to_own_files",
    "check_file_ownership",
    "REASON_CAPABILITY",
    "REASON_SCOPE",
    "REASON_DELEGATION",
    "REASON_ESCALATION",
    "REASON_NO_MEMBERSHIP",
    "REASON_OWNERSHIP",
    # Records
    "Bucket",
    "FileOwnership",
    "Membership",
    "Invitation",
    "InvitationStatus",
    "ActivityAction",
    "ActivityEntry",
    "normalize_email",
]
