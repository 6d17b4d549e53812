#!/usr/bin/env python3
"""
Shipfile CLI - scoped sharing for storage buckets.

Commands:
  shipfile serve                          Run the HTTP API
  shipfile init-db                        Create the database schema
  shipfile members <bucket>               List a bucket's members
  shipfile check <email> <bucket> <action> [path ...]
                                          Check whether a member may act
"""

from __future__ import annotations

import argparse
import importlib.util
import json
import logging
import os
import sys
from pathlib import Path
from types import ModuleType

import psycopg2

from ..core.config import ShipfileSettings, get_config
from ..core.db import connection_factory
from ..core.exceptions import ShipfileException
from ..core.logging import configure_logging
from ..permissions import describe_permissions
from ..sharing import SharingService
from ..storage import PostgresSharingStore

logger = logging.getLogger(__name__)

ENV_FILES = [Path.cwd() / ".env", Path.home() / ".shipfile" / ".env"]


def load_env_files(paths: list[Path] | None = None) -> Path | None:
    """Load the first existing .env file into the environment.

    Variables already set in the environment win.
    """
    for env_path in paths or ENV_FILES:
        if env_path.exists():
            with open(env_path) as f:
                for line in f:
                    line = line.strip()
                    if line and not line.startswith("#") and "=" in line:
                        key, value = line.split("=", 1)
                        os.environ.setdefault(key.strip(), value.strip().strip('"').strip("'"))
            return env_path
    return None


def build_service(settings: ShipfileSettings) -> SharingService:
    """Sharing service over the configured PostgreSQL database."""
    return SharingService(PostgresSharingStore(connection_factory(settings)), settings)


# ============================================================================
# Migrations
# ============================================================================


def find_migrations_dir() -> Path:
    """Locate the migrations directory.

    ``SHIPFILE_MIGRATIONS_DIR`` wins, then ``./migrations``, then the
    directory next to the source tree.
    """
    override = os.environ.get("SHIPFILE_MIGRATIONS_DIR")
    if override:
        return Path(override)
    local = Path.cwd() / "migrations"
    if local.is_dir():
        return local
    return Path(__file__).resolve().parents[3] / "migrations"


def load_migrations(directory: Path) -> list[ModuleType]:
    """Import ``NNN_name.py`` migration modules, ordered by version."""
    modules = []
    for path in sorted(directory.glob("[0-9][0-9][0-9]_*.py")):
        spec = importlib.util.spec_from_file_location(f"shipfile_migration_{path.stem}", path)
        if spec is None or spec.loader is None:
            continue
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        modules.append(module)
    return modules


# ============================================================================
# SERVE Command
# ============================================================================


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    from ..server import create_app

    settings = get_config()
    host = args.host or settings.host
    port = args.port or settings.port

    logger.info("Starting shipfile API on %s:%s", host, port)
    uvicorn.run(create_app(settings=settings), host=host, port=port, log_level=settings.log_level.lower())
    return 0


# ============================================================================
# INIT-DB Command
# ============================================================================


def cmd_init_db(args: argparse.Namespace) -> int:
    """Apply (or roll back) the schema migrations."""
    directory = find_migrations_dir()
    migrations = load_migrations(directory)
    if not migrations:
        print(f"❌ No migrations found in {directory}", file=sys.stderr)
        return 1

    try:
        conn = psycopg2.connect(get_config().require_database_url())
    except (ShipfileException, psycopg2.Error) as e:
        print(f"❌ Could not connect: {e}", file=sys.stderr)
        return 1

    try:
        ordered = list(reversed(migrations)) if args.rollback else migrations
        for migration in ordered:
            if args.rollback:
                migration.down(conn)
            else:
                migration.up(conn)
            conn.commit()
            verb = "Rolled back" if args.rollback else "Applied"
            print(f"  {verb} {migration.version} {migration.description}")
        print("✅ Database ready" if not args.rollback else "✅ Schema removed")
        return 0
    except (RuntimeError, psycopg2.Error) as e:
        conn.rollback()
        print(f"❌ Migration failed: {e}", file=sys.stderr)
        return 1
    finally:
        conn.close()


# ============================================================================
# MEMBERS Command
# ============================================================================


def cmd_members(args: argparse.Namespace) -> int:
    """List every member of a bucket."""
    try:
        service = build_service(get_config())
        bucket = service.get_bucket(args.bucket)
        members = service.list_members(bucket.name, bucket.owner_email)
    except ShipfileException as e:
        print(f"❌ {e.message}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps([m.to_dict() for m in members], indent=2))
        return 0

    if not members:
        print(f"📭 No members in {bucket.name}")
        return 0

    print(f"👥 {len(members)} member(s) in {bucket.name} (owner {bucket.owner_email})\n")
    for m in members:
        scope = "entire bucket" if m.scope.is_entire else ", ".join(m.scope.folders)
        print(f"  {m.email:<32} [{scope}]  {describe_permissions(m.permissions)}")
    return 0


# ============================================================================
# CHECK Command
# ============================================================================


def cmd_check(args: argparse.Namespace) -> int:
    """Check one access decision. Exit code 0 means allowed."""
    try:
        service = build_service(get_config())
        decision = service.check_access(args.email, args.bucket, args.action, args.paths)
    except ShipfileException as e:
        print(f"❌ {e.message}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(decision.to_dict(), indent=2))
    elif decision.allowed:
        print(f"✅ {args.email} may {args.action} in {args.bucket}")
    else:
        print(f"🚫 Denied: {decision.reason}")
        for path in decision.denied_paths:
            print(f"  - {path}")
    return 0 if decision.allowed else 1


# ============================================================================
# Parser
# ============================================================================


def app() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="shipfile",
        description="Scoped sharing for storage buckets",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  shipfile init-db                                  Create tables
  shipfile serve --port 8080                        Run the API
  shipfile members photos                           List members
  shipfile check bob@example.com photos viewOnly docs/a.txt
        """,
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # serve
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", help="Bind address (default from SHIPFILE_HOST)")
    serve_parser.add_argument("--port", "-p", type=int, help="Port (default from SHIPFILE_PORT)")

    # init-db
    init_parser = subparsers.add_parser("init-db", help="Create the database schema")
    init_parser.add_argument("--rollback", action="store_true", help="Drop the schema instead")

    # members
    members_parser = subparsers.add_parser("members", help="List a bucket's members")
    members_parser.add_argument("bucket", help="Bucket name")
    members_parser.add_argument("--json", action="store_true", help="Output JSON")

    # check
    check_parser = subparsers.add_parser("check", help="Check an access decision")
    check_parser.add_argument("email", help="Member email")
    check_parser.add_argument("bucket", help="Bucket name")
    check_parser.add_argument("action", help="Capability, e.g. viewOnly or uploadViewAll")
    check_parser.add_argument("paths", nargs="*", help="Target folders")
    check_parser.add_argument("--json", action="store_true", help="Output JSON")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    load_env_files()
    parser = app()
    args = parser.parse_args(argv)
    try:
        configure_logging(get_config().log_level)
    except ShipfileException as e:
        print(f"❌ {e.message}", file=sys.stderr)
        return 1

    commands = {
        "serve": cmd_serve,
        "init-db": cmd_init_db,
        "members": cmd_members,
        "check": cmd_check,
    }

    handler = commands.get(args.command)
    if handler:
        return handler(args)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
