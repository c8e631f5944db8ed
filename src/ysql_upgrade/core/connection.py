"""Connection factory: psycopg connections to individual cluster databases.

Every connection the upgrade opens goes through :func:`connect_database`.
Connections run in ``autocommit`` mode so that a request sent with
:meth:`PgConnection.execute` is handled by the server as a single
implicit transaction (libpq simple-query semantics): every statement in
the text commits together, unless the text itself issues ``BEGIN`` /
``COMMIT``.

Usage
-----
::

    from ysql_upgrade.core.connection import connect_database
    from ysql_upgrade.core.settings import get_settings

    with connect_database(get_settings(), "template1") as conn:
        count = conn.fetch_scalar("SELECT COUNT(*) FROM pg_database")

Connection string
-----------------
``user=<user> password=<auth_key> host=<socket dir> port=<port> dbname=<db>``.
The password is only sent over the unix-domain socket of the local proxy
when ``use_socket_dir`` is on.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import psycopg
from psycopg import sql
from psycopg.conninfo import make_conninfo

from ysql_upgrade.core.errors import (
    ConfigError,
    DatabaseConnectionError,
    QueryError,
    UpgradeError,
)
from ysql_upgrade.core.logging import get_logger
from ysql_upgrade.core.settings import UpgradeSettings

logger = get_logger(__name__)

# Lets the session write catalog tables and create catalog objects with fixed oids.
UPGRADE_MODE_SQL = "SET ysql_upgrade_mode TO true;"


class PgConnection:
    """psycopg-backed implementation of ``CatalogConnection``."""

    def __init__(self, conn: psycopg.Connection, database: str) -> None:
        self._conn = conn
        self._database = database

    @property
    def database(self) -> str:
        return self._database

    @property
    def raw(self) -> psycopg.Connection:
        """The underlying psycopg connection."""
        return self._conn

    # --- execute ---

    def execute(self, query: str) -> None:
        # No parameters: psycopg sends the text with the simple query
        # protocol, so multi-statement scripts run as one request.
        self._run(query)

    def execute_format(self, template: str, *args: Any) -> None:
        composed = sql.SQL(template).format(*(sql.Literal(a) for a in args))
        self._run(composed)

    # --- fetch ---

    def fetch(self, query: str, params: Sequence[Any] | None = None) -> list[tuple[Any, ...]]:
        cursor = self._run(query, params)
        try:
            return list(cursor.fetchall())
        except psycopg.Error as exc:
            raise QueryError(
                f"Query returned no result set: {query}", cause=exc
            ).with_context(database=self._database) from exc

    def fetch_scalar(self, query: str, params: Sequence[Any] | None = None) -> Any:
        rows = self.fetch(query, params)
        if len(rows) != 1:
            raise QueryError(
                f"Query {query} was expected to return a single row, got {len(rows)}"
            ).with_context(database=self._database)
        return rows[0][0]

    def quote_ident(self, name: str) -> str:
        return sql.Identifier(name).as_string(self._conn)

    # --- lifecycle ---

    def close(self) -> None:
        if not self._conn.closed:
            self._conn.close()

    def __enter__(self) -> PgConnection:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"PgConnection(database={self._database!r}, closed={self._conn.closed})"

    def _run(self, query: Any, params: Sequence[Any] | None = None) -> psycopg.Cursor:
        try:
            return self._conn.execute(query, params)
        except psycopg.Error as exc:
            error_cls = DatabaseConnectionError if self._conn.broken else QueryError
            # Scripts can be long; keep the statement text out of the message.
            raise error_cls(
                f"{type(exc).__name__}: {str(exc).strip()}", cause=exc
            ).with_context(database=self._database) from exc


def build_conninfo(settings: UpgradeSettings, database: str) -> str:
    """Build an escaped libpq connection string for *database*."""
    if not settings.proxy_host:
        raise ConfigError("proxy_host must be set to reach the YSQL proxy")
    return make_conninfo(
        user=settings.user,
        password=settings.auth_key,
        host=settings.socket_host,
        port=settings.proxy_port,
        dbname=database,
        connect_timeout=settings.connect_timeout_s,
    )


def connect_database(settings: UpgradeSettings, database: str) -> PgConnection:
    """Open an upgrade-mode connection to *database*.

    Raises
    ------
    DatabaseConnectionError
        The proxy could not be reached or rejected the credentials.
    QueryError
        Upgrade mode could not be enabled on the new session.

    The connection is closed before any error from enabling upgrade mode
    propagates.
    """
    conninfo = build_conninfo(settings, database)
    try:
        raw = psycopg.connect(conninfo, autocommit=True)
    except psycopg.Error as exc:
        raise DatabaseConnectionError(
            f"Cannot connect to database {database}", cause=exc
        ).with_context(
            database=database,
            host=settings.socket_host,
            port=settings.proxy_port,
        ) from exc

    conn = PgConnection(raw, database)
    try:
        conn.execute(UPGRADE_MODE_SQL)
    except UpgradeError:
        conn.close()
        raise

    logger.debug("connection.opened", database=database, host=settings.socket_host)
    return conn


__all__ = ["PgConnection", "UPGRADE_MODE_SQL", "build_conninfo", "connect_database"]
