from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import psycopg2
from psycopg2 import sql

from ..models.config_models import DatabaseConfig

"""Card database row source (single-record update path).

fetch_card_record() takes any DB-API cursor so tests can hand in a MagicMock;
db_cursor() opens the production psycopg2 connection.

Connection resolution order:
    1. DATABASE_URL / PGDSN (whole DSN)
    2. PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE
    3. the ``database`` section of the config file
"""

__all__ = [
    "RecordSourceError",
    "fetch_card_record",
    "resolve_dsn",
    "db_cursor",
]

logger = logging.getLogger(__name__)


class RecordSourceError(Exception):
    """Raised when the card database cannot be reached or queried."""


def fetch_card_record(cursor: Any, card_no: str, table: str = "carddb") -> dict[str, Any] | None:
    """Return the first row of ``table`` whose CardNo equals ``card_no`` (or None)."""
    query = sql.SQL("SELECT * FROM {} WHERE {} = %s LIMIT 1").format(
        sql.Identifier(table), sql.Identifier("CardNo")
    )
    try:
        cursor.execute(query, (card_no,))
        found = cursor.fetchone()
    except psycopg2.Error as e:
        raise RecordSourceError(f"card lookup failed for {card_no}: {e}") from e
    if found is None:
        return None
    columns = [d[0] for d in cursor.description]
    return dict(zip(columns, found, strict=False))


def resolve_dsn(db_cfg: DatabaseConfig) -> str:
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


@contextmanager
def db_cursor(db_cfg: DatabaseConfig) -> Iterator[Any]:  # pragma: no cover (needs a live database)
    """Read-only psycopg2 cursor; the connection is closed on exit."""
    try:
        conn = psycopg2.connect(resolve_dsn(db_cfg))
    except psycopg2.Error as e:
        raise RecordSourceError(f"database unavailable: {e}") from e
    try:
        conn.set_session(readonly=True, autocommit=True)
        with conn.cursor() as cur:
            yield cur
    finally:
        conn.close()
        logger.debug("card database connection closed")
