"""Migration 001: bucket sharing schema.

Creates buckets, members (one row per email and bucket), invitations and
activity_logs. Permission flags are stored as a JSONB object keyed by
capability name; scope folders as a JSONB array.
"""

version = "001"
description = "sharing_schema"

# Individual SQL statements executed in order.
# Kept as a list of (description, sql) pairs so failures are easy to identify.
_STATEMENTS = [
    (
        "create table buckets",
        """
        CREATE TABLE IF NOT EXISTS buckets (
            name TEXT PRIMARY KEY,
            owner_email TEXT NOT NULL,
            organization_name TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
        """,
    ),
    (
        "create table members",
        """
        CREATE TABLE IF NOT EXISTS members (
            id BIGSERIAL PRIMARY KEY,
            email TEXT NOT NULL,
            bucket_name TEXT NOT NULL REFERENCES buckets(name) ON DELETE CASCADE,
            permissions JSONB NOT NULL DEFAULT '{}'::jsonb,
            scope_type TEXT NOT NULL DEFAULT 'entire'
                CHECK (scope_type IN ('entire', 'specific')),
            scope_folders JSONB NOT NULL DEFAULT '[]'::jsonb,
            invited_by TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            UNIQUE (email, bucket_name)
        )
        """,
    ),
    ("index members by bucket", "CREATE INDEX IF NOT EXISTS idx_members_bucket ON members(bucket_name)"),
    ("index members by inviter", "CREATE INDEX IF NOT EXISTS idx_members_invited_by ON members(invited_by)"),
    (
        "create table invitations",
        """
        CREATE TABLE IF NOT EXISTS invitations (
            id TEXT PRIMARY KEY,
            bucket_name TEXT NOT NULL REFERENCES buckets(name) ON DELETE CASCADE,
            email TEXT NOT NULL,
            permissions JSONB NOT NULL DEFAULT '{}'::jsonb,
            scope_type TEXT NOT NULL DEFAULT 'entire'
                CHECK (scope_type IN ('entire', 'specific')),
            scope_folders JSONB NOT NULL DEFAULT '[]'::jsonb,
            created_by TEXT NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            expires_at TIMESTAMPTZ NOT NULL,
            accepted BOOLEAN NOT NULL DEFAULT FALSE
        )
        """,
    ),
    ("index invitations by email", "CREATE INDEX IF NOT EXISTS idx_invitations_email ON invitations(email)"),
    (
        "create table activity_logs",
        """
        CREATE TABLE IF NOT EXISTS activity_logs (
            id BIGSERIAL PRIMARY KEY,
            bucket_name TEXT NOT NULL,
            user_email TEXT NOT NULL,
            action TEXT NOT NULL,
            resource_path TEXT NOT NULL,
            details TEXT,
            timestamp TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
        """,
    ),
    (
        "index activity by bucket and time",
        "CREATE INDEX IF NOT EXISTS idx_activity_bucket_time ON activity_logs(bucket_name, timestamp DESC)",
    ),
]

_TABLES = ["activity_logs", "invitations", "members", "buckets"]


def up(conn) -> None:
    """Create the sharing tables."""
    cur = conn.cursor()
    try:
        for description, sql in _STATEMENTS:
            try:
                cur.execute(sql)
            except Exception as exc:
                raise RuntimeError(f"Migration 001 step '{description}' failed: {exc}") from exc
    finally:
        cur.close()


def down(conn) -> None:
    """Drop the sharing tables. All sharing data is lost."""
    cur = conn.cursor()
    try:
        for table in _TABLES:
            cur.execute(f"DROP TABLE IF EXISTS {table} CASCADE")
    finally:
        cur.close()
