"""PostgreSQL implementation of the sharing store.

Permissions and scope folders live in JSONB columns and are validated into
typed records when rows are read. The store holds no connection of its own;
every operation opens one from the injected factory.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from psycopg2.extras import Json

from ..core.db import ConnectionFactory, get_cursor
from ..permissions.models import ActivityAction, ActivityEntry, Bucket, FileOwnership, Invitation, Membership
from ..permissions.types import PermissionSet, ScopeDescriptor

logger = logging.getLogger(__name__)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


def _bucket_from_row(row: dict[str, Any]) -> Bucket:
    return Bucket(
        name=row["name"],
        owner_email=row["owner_email"],
        organization_name=row.get("organization_name"),
        created_at=_aware(row["created_at"]),
    )


def _membership_from_row(row: dict[str, Any]) -> Membership:
    return Membership(
        email=row["email"],
        bucket_name=row["bucket_name"],
        permissions=PermissionSet.from_dict(row["permissions"]),
        scope=ScopeDescriptor.parse(row.get("scope_type"), row.get("scope_folders")),
        invited_by=row.get("invited_by"),
        created_at=_aware(row["created_at"]),
    )


def _invitation_from_row(row: dict[str, Any]) -> Invitation:
    return Invitation(
        id=row["id"],
        bucket_name=row["bucket_name"],
        email=row["email"],
        permissions=PermissionSet.from_dict(row["permissions"]),
        scope=ScopeDescriptor.parse(row.get("scope_type"), row.get("scope_folders")),
        created_by=row["created_by"],
        expires_at=row["expires_at"],
        accepted=bool(row["accepted"]),
        created_at=row["created_at"],
    )


def _ownership_from_row(row: dict[str, Any]) -> FileOwnership:
    return FileOwnership(
        bucket_name=row["bucket_name"],
        file_path=row["file_path"],
        owner_email=row["owner_email"],
        uploaded_at=_aware(row["uploaded_at"]),
    )


def _activity_from_row(row: dict[str, Any]) -> ActivityEntry:
    return ActivityEntry(
        bucket_name=row["bucket_name"],
        user_email=row["user_email"],
        action=ActivityAction(row["action"]),
        resource_path=row["resource_path"],
        details=row.get("details"),
        timestamp=_aware(row["timestamp"]),
    )


_UPSERT_MEMBERSHIP = """
    INSERT INTO members (email, bucket_name, permissions, scope_type, scope_folders, invited_by, created_at)
    VALUES (%s, %s, %s, %s, %s, %s, %s)
    ON CONFLICT (email, bucket_name) DO UPDATE
    SET permissions = EXCLUDED.permissions,
        scope_type = EXCLUDED.scope_type,
        scope_folders = EXCLUDED.scope_folders,
        invited_by = EXCLUDED.invited_by
"""


def _membership_params(membership: Membership) -> tuple[Any, ...]:
    return (
        membership.email,
        membership.bucket_name,
        Json(membership.permissions.to_dict()),
        membership.scope.type.value,
        Json(list(membership.scope.folders)),
        membership.invited_by,
        membership.created_at,
    )


class PostgresSharingStore:
    """Sharing store backed by the tables of migrations 001 and 002."""

    def __init__(self, connect: ConnectionFactory) -> None:
        self._connect = connect

    # -------------------------------------------------------------------------
    # BUCKETS
    # -------------------------------------------------------------------------

    def get_bucket(self, name: str) -> Bucket | None:
        with get_cursor(self._connect) as cur:
            cur.execute(
                "SELECT name, owner_email, organization_name, created_at FROM buckets WHERE name = %s",
                (name,),
            )
            row = cur.fetchone()
        return _bucket_from_row(row) if row else None

    def save_bucket(self, bucket: Bucket) -> bool:
        with get_cursor(self._connect) as cur:
            cur.execute(
                """
                INSERT INTO buckets (name, owner_email, organization_name, created_at)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (name) DO UPDATE
                SET organization_name = EXCLUDED.organization_name
                WHERE buckets.owner_email = EXCLUDED.owner_email
                """,
                (bucket.name, bucket.owner_email, bucket.organization_name, bucket.created_at),
            )
            return cur.rowcount > 0

    # -------------------------------------------------------------------------
    # MEMBERSHIPS
    # -------------------------------------------------------------------------

    def get_membership(self, email: str, bucket_name: str) -> Membership | None:
        with get_cursor(self._connect) as cur:
            cur.execute(
                """
                SELECT email, bucket_name, permissions, scope_type, scope_folders, invited_by, created_at
                FROM members
                WHERE email = %s AND bucket_name = %s
                """,
                (email, bucket_name),
            )
            row = cur.fetchone()
        return _membership_from_row(row) if row else None

    def save_membership(self, membership: Membership) -> None:
        with get_cursor(self._connect) as cur:
            cur.execute(_UPSERT_MEMBERSHIP, _membership_params(membership))
        logger.debug("Saved membership %s in %s", membership.email, membership.bucket_name)

    def delete_membership(self, email: str, bucket_name: str) -> bool:
        with get_cursor(self._connect) as cur:
            cur.execute(
                "DELETE FROM members WHERE email = %s AND bucket_name = %s",
                (email, bucket_name),
            )
            return cur.rowcount > 0

    def list_memberships(
        self,
        bucket_name: str | None = None,
        email: str | None = None,
        invited_by: str | None = None,
    ) -> list[Membership]:
        sql = """
            SELECT email, bucket_name, permissions, scope_type, scope_folders, invited_by, created_at
            FROM members
            WHERE 1=1
        """
        params: list[Any] = []
        if bucket_name is not None:
            sql += " AND bucket_name = %s"
            params.append(bucket_name)
        if email is not None:
            sql += " AND email = %s"
            params.append(email)
        if invited_by is not None:
            sql += " AND invited_by = %s"
            params.append(invited_by)
        sql += " ORDER BY bucket_name, email"

        with get_cursor(self._connect) as cur:
            cur.execute(sql, params)
            rows = cur.fetchall()
        return [_membership_from_row(row) for row in rows]

    # -------------------------------------------------------------------------
    # INVITATIONS
    # -------------------------------------------------------------------------

    def get_invitation(self, token: str) -> Invitation | None:
        with get_cursor(self._connect) as cur:
            cur.execute(
                """
                SELECT id, bucket_name, email, permissions, scope_type, scope_folders,
                       created_by, created_at, expires_at, accepted
                FROM invitations
                WHERE id = %s
                """,
                (token,),
            )
            row = cur.fetchone()
        return _invitation_from_row(row) if row else None

    def save_invitation(self, invitation: Invitation) -> None:
        with get_cursor(self._connect) as cur:
            cur.execute(
                """
                INSERT INTO invitations (id, bucket_name, email, permissions, scope_type, scope_folders,
                                         created_by, created_at, expires_at, accepted)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (id) DO UPDATE SET accepted = EXCLUDED.accepted
                """,
                (
                    invitation.id,
                    invitation.bucket_name,
                    invitation.email,
                    Json(invitation.permissions.to_dict()),
                    invitation.scope.type.value,
                    Json(list(invitation.scope.folders)),
                    invitation.created_by,
                    invitation.created_at,
                    invitation.expires_at,
                    invitation.accepted,
                ),
            )

    def accept_invitation(self, invitation: Invitation, membership: Membership) -> bool:
        with get_cursor(self._connect) as cur:
            cur.execute(
                "UPDATE invitations SET accepted = TRUE WHERE id = %s AND NOT accepted",
                (invitation.id,),
            )
            if cur.rowcount == 0:
                return False
            cur.execute(_UPSERT_MEMBERSHIP, _membership_params(membership))
        return True

    # -------------------------------------------------------------------------
    # FILE OWNERSHIP
    # -------------------------------------------------------------------------

    def save_file_owner(self, ownership: FileOwnership) -> None:
        with get_cursor(self._connect) as cur:
            cur.execute(
                """
                INSERT INTO file_ownership (bucket_name, file_path, owner_email, uploaded_at)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (bucket_name, file_path) DO UPDATE
                SET owner_email = EXCLUDED.owner_email,
                    uploaded_at = EXCLUDED.uploaded_at
                """,
                (ownership.bucket_name, ownership.file_path, ownership.owner_email, ownership.uploaded_at),
            )

    def get_file_owners(self, bucket_name: str, paths: list[str]) -> dict[str, str]:
        if not paths:
            return {}
        with get_cursor(self._connect) as cur:
            cur.execute(
                """
                SELECT file_path, owner_email FROM file_ownership
                WHERE bucket_name = %s AND file_path = ANY(%s)
                """,
                (bucket_name, list(paths)),
            )
            rows = cur.fetchall()
        return {row["file_path"]: row["owner_email"] for row in rows}

    def list_owned_files(self, bucket_name: str, email: str) -> list[FileOwnership]:
        with get_cursor(self._connect) as cur:
            cur.execute(
                """
                SELECT bucket_name, file_path, owner_email, uploaded_at
                FROM file_ownership
                WHERE bucket_name = %s AND owner_email = %s
                ORDER BY file_path
                """,
                (bucket_name, email),
            )
            rows = cur.fetchall()
        return [_ownership_from_row(row) for row in rows]

    def rename_file_owners(self, bucket_name: str, old_path: str, new_path: str) -> int:
        with get_cursor(self._connect) as cur:
            cur.execute(
                """
                UPDATE file_ownership
                SET file_path = %s || substr(file_path, char_length(%s) + 1)
                WHERE bucket_name = %s AND (file_path = %s OR left(file_path, char_length(%s) + 1) = %s || '/')
                """,
                (new_path, old_path, bucket_name, old_path, old_path, old_path),
            )
            return cur.rowcount

    # -------------------------------------------------------------------------
    # ACTIVITY
    # -------------------------------------------------------------------------

    def append_activity(self, entry: ActivityEntry) -> None:
        with get_cursor(self._connect) as cur:
            cur.execute(
                """
                INSERT INTO activity_logs (bucket_name, user_email, action, resource_path, details, timestamp)
                VALUES (%s, %s, %s, %s, %s, %s)
                """,
                (
                    entry.bucket_name,
                    entry.user_email,
                    entry.action.value,
                    entry.resource_path,
                    entry.details,
                    entry.timestamp,
                ),
            )

    def list_activity(self, bucket_name: str, limit: int = 100) -> list[ActivityEntry]:
        with get_cursor(self._connect) as cur:
            cur.execute(
                """
                SELECT bucket_name, user_email, action, resource_path, details, timestamp
                FROM activity_logs
                WHERE bucket_name = %s
                ORDER BY timestamp DESC
                LIMIT %s
                """,
                (bucket_name, limit),
            )
            rows = cur.fetchall()
        return [_activity_from_row(row) for row in rows]
