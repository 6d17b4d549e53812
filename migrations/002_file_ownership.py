"""Migration 002: file ownership.

Records who uploaded each file, one row per bucket and path. Members whose
grant only reaches their own files are checked against this table.
"""

version = "002"
description = "file_ownership"

_STATEMENTS = [
    (
        "create table file_ownership",
        """
        CREATE TABLE IF NOT EXISTS file_ownership (
            id BIGSERIAL PRIMARY KEY,
            bucket_name TEXT NOT NULL REFERENCES buckets(name) ON DELETE CASCADE,
            file_path TEXT NOT NULL,
            owner_email TEXT NOT NULL,
            uploaded_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            UNIQUE (bucket_name, file_path)
        )
        """,
    ),
    (
        "index file_ownership by owner",
        "CREATE INDEX IF NOT EXISTS idx_file_ownership_owner ON file_ownership(bucket_name, owner_email)",
    ),
]


def up(conn) -> None:
    """Create the file_ownership table."""
    cur = conn.cursor()
    try:
        for description, sql in _STATEMENTS:
            try:
                cur.execute(sql)
            except Exception as exc:
                raise RuntimeError(f"Migration 002 step '{description}' failed: {exc}") from exc
    finally:
        cur.close()


def down(conn) -> None:
    """Drop the file_ownership table. Ownership records are lost."""
    cur = conn.cursor()
    try:
        cur.execute("DROP TABLE IF EXISTS file_ownership CASCADE")
    finally:
        cur.close()
