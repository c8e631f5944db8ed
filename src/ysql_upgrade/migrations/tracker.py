"""Per-database version tracking in ``pg_catalog.pg_yb_migration``.

Each database records every applied migration as a row
``(major, minor, name, time_applied)``; the greatest ``(major, minor)``
is the database's current version.  A ``<baseline>`` row with a NULL
``time_applied`` marks a version inferred by :class:`VersionDiscovery`
rather than produced by running a script.

Writes go to a catalog-owned table, so they are prefixed with
``SET LOCAL yb_non_ddl_txn_for_sys_tables_allowed`` inside the same
request.
"""

from __future__ import annotations

from ysql_upgrade.core.errors import QueryError
from ysql_upgrade.core.logging import get_logger
from ysql_upgrade.core.protocols import CatalogConnection
from ysql_upgrade.migrations.discovery import VersionDiscovery, system_table_exists
from ysql_upgrade.migrations.version import Version

logger = get_logger(__name__)

TRACKING_TABLE = "pg_yb_migration"
BASELINE_NAME = "<baseline>"

# Fixed catalog oids of pg_yb_migration and its row type.
TRACKING_TABLE_OID = 8036
TRACKING_ROW_TYPE_OID = 8061

CREATE_TRACKING_TABLE_SQL = (
    "CREATE TABLE pg_catalog.pg_yb_migration ("
    "  major        int    NOT NULL,"
    "  minor        int    NOT NULL,"
    "  name         name   NOT NULL,"
    "  time_applied bigint"
    ") WITH (table_oid = {}, row_type_oid = {});"
)

SELECT_CURRENT_VERSION_SQL = (
    "SELECT major, minor FROM pg_catalog.pg_yb_migration"
    "  ORDER BY major DESC, minor DESC"
    "  LIMIT 1"
)

INSERT_BASELINE_SQL = (
    "INSERT INTO pg_catalog.pg_yb_migration (major, minor, name, time_applied)"
    "  VALUES ({}, 0, '<baseline>', NULL);"
)

INSERT_APPLIED_SQL = (
    "INSERT INTO pg_catalog.pg_yb_migration (major, minor, name, time_applied)"
    "  VALUES ({}, {}, {}, ROUND(EXTRACT(EPOCH FROM CURRENT_TIMESTAMP) * 1000));"
)


def wrap_system_dml(query: str) -> str:
    """Allow a non-DDL write to a system table for the current request."""
    return "SET LOCAL yb_non_ddl_txn_for_sys_tables_allowed TO true;\n" + query


class CatalogTracker:
    """Reads and writes the tracking table of one database at a time."""

    def __init__(self, discovery: VersionDiscovery | None = None) -> None:
        self._discovery = discovery or VersionDiscovery()

    @property
    def discovery(self) -> VersionDiscovery:
        return self._discovery

    def ensure_tracking_table(self, conn: CatalogConnection) -> bool:
        """Create the tracking table if absent; True if it was just created."""
        if system_table_exists(conn, TRACKING_TABLE):
            logger.info("tracker.table_present", database=conn.database)
            return False

        conn.execute_format(CREATE_TRACKING_TABLE_SQL, TRACKING_TABLE_OID, TRACKING_ROW_TYPE_OID)
        logger.info("tracker.table_created", database=conn.database)
        return True

    def read_version(self, conn: CatalogConnection) -> Version | None:
        """Current recorded version, or ``None`` if untracked.  Read-only."""
        if not system_table_exists(conn, TRACKING_TABLE):
            return None
        return self._select_current_version(conn)

    def determine_version(self, conn: CatalogConnection) -> Version:
        """Return the database's version, recording a baseline if needed.

        Idempotent: once a baseline row exists, later calls read it back.
        """
        created = self.ensure_tracking_table(conn)

        if not created:
            version = self._select_current_version(conn)
            if version is not None:
                logger.info("tracker.version_read", database=conn.database, version=str(version))
                return version

        major = self._discovery.major_version(conn)
        conn.execute_format(wrap_system_dml(INSERT_BASELINE_SQL), major)

        version = Version(major, 0)
        logger.info("tracker.baseline_inserted", database=conn.database, version=str(version))
        return version

    def record_applied(self, conn: CatalogConnection, version: Version, script_name: str) -> None:
        """Insert a row for a migration that has already been executed."""
        conn.execute_format(
            wrap_system_dml(INSERT_APPLIED_SQL),
            version.major,
            version.minor,
            script_name,
        )

    def _select_current_version(self, conn: CatalogConnection) -> Version | None:
        rows = conn.fetch(SELECT_CURRENT_VERSION_SQL)
        if not rows:
            return None
        row = rows[0]
        if len(row) != 2:
            raise QueryError(
                f"Expected (major, minor) from {TRACKING_TABLE}, got {len(row)} columns"
            ).with_context(database=conn.database)
        try:
            return Version(int(row[0]), int(row[1]))
        except (TypeError, ValueError) as exc:
            raise QueryError(
                f"Malformed version row in {TRACKING_TABLE}: {row!r}", cause=exc
            ).with_context(database=conn.database) from exc
