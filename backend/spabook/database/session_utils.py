# backend/spabook/database/session_utils.py
"""
Dialect helpers used by repositories and services to pick a locking strategy.

Postgres takes row locks with SELECT ... FOR UPDATE. SQLite has no row
locks, so a check-then-insert there must hold the database write lock from
the start of the transaction instead.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import text
from sqlalchemy.exc import UnboundExecutionError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


def get_dialect_name(session: Session) -> Optional[str]:
    """Dialect of the engine bound to ``session``, or None when no bind can be resolved."""
    try:
        bind = session.get_bind()
    except UnboundExecutionError:
        return None
    dialect = getattr(bind, "dialect", None)
    return getattr(dialect, "name", None)


def is_sqlite(session: Session) -> bool:
    return get_dialect_name(session) == "sqlite"


def begin_write_transaction(session: Session) -> bool:
    """
    Hold SQLite's write lock for the rest of the session's transaction.

    pysqlite only opens a transaction before the first INSERT/UPDATE/DELETE,
    so reads that precede a write see a snapshot another writer can
    invalidate. Issuing ``BEGIN IMMEDIATE`` up front makes a concurrent
    writer wait (up to the busy timeout) until this transaction ends.

    No-op on other dialects, and when the connection already has a write
    transaction open (it then already holds the lock).

    Returns:
        True when an immediate transaction was started
    """
    if not is_sqlite(session):
        return False

    dbapi_connection = session.connection().connection.dbapi_connection
    if dbapi_connection.in_transaction:
        return False

    session.execute(text("BEGIN IMMEDIATE"))
    logger.debug("Started SQLite IMMEDIATE transaction")
    return True
