"""PostgreSQL connection helpers.

There is no module-level connection. Callers build a connection factory
from settings and hand it to whatever needs database access.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Generator
from contextlib import contextmanager
from typing import Any

import psycopg2
from psycopg2.extras import RealDictCursor

from .config import ShipfileSettings, get_config
from .exceptions import DatabaseException

logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[], Any]


def connection_factory(settings: ShipfileSettings | None = None) -> ConnectionFactory:
    """Build a factory that opens a new connection to the configured database."""
    dsn = (settings or get_config()).require_database_url()

    def _connect():
        try:
            return psycopg2.connect(dsn)
        except psycopg2.OperationalError as exc:
            raise DatabaseException(f"Could not connect to database: {exc}") from exc

    return _connect


@contextmanager
def get_cursor(connect: ConnectionFactory, dict_cursor: bool = True) -> Generator[Any, None, None]:
    """Open a connection, yield a cursor, commit on success and always close.

    Driver errors are rolled back and re-raised as DatabaseException.
    """
    conn = connect()
    try:
        cursor = conn.cursor(cursor_factory=RealDictCursor) if dict_cursor else conn.cursor()
        try:
            yield cursor
            conn.commit()
        except psycopg2.Error as exc:
            conn.rollback()
            logger.error("Database operation failed: %s", exc)
            raise DatabaseException(f"Database operation failed: {exc}") from exc
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
    finally:
        conn.close()
