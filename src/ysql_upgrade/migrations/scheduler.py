"""
Multi-database upgrade scheduler.

Manifesto:
    User databases may be cloned from the template databases at any
    moment, so templates are upgraded first.  After that, no database may
    race ahead while another falls behind: every step advances the
    globally least-advanced database by exactly one migration.  Progress
    is checkpointed in each database's tracking table after every step,
    so a failed run is recovered by running again.

Architecture:
    ::

        run_upgrade()
          │
          ├─ MigrationRegistry.from_directory()      once
          ├─ connect("template1")                    bootstrap connection
          │    └─ list databases: template1, template0, <user dbs...>
          ├─ for each database:
          │    connect (template1 reuses bootstrap)
          │    CatalogTracker.determine_version()    → DatabaseEntry
          └─ loop:
               laggard = min(entries by current_version)
               laggard ≥ latest?  → done
               MigrationApplier.apply(laggard, propagation_pending=...)

Features:
    - **Laggard-first:** the minimum version is always advanced next
    - **Templates first:** template1, template0 precede user databases
    - **One propagation wait per run:** the flag lives here, not in the applier
    - **Read-only status:** report versions without writing anything

Guardrails:
    ❌ DON'T: Catch a failure and continue with the next database
    ✅ DO: Abort the run; every database stays at its last recorded version

Tags:
    migrations, scheduler, laggard-first, multi-database, ysql-upgrade

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import functools
import time
from collections.abc import Callable
from contextlib import ExitStack, closing
from dataclasses import dataclass, field
from operator import attrgetter

from ysql_upgrade.core.connection import connect_database
from ysql_upgrade.core.errors import QueryError, UpgradeError
from ysql_upgrade.core.logging import LogContext, get_logger
from ysql_upgrade.core.protocols import CatalogConnection
from ysql_upgrade.core.settings import UpgradeSettings
from ysql_upgrade.migrations.applier import AppliedMigration, DatabaseEntry, MigrationApplier
from ysql_upgrade.migrations.registry import MigrationRegistry, resolve_migrations_dir
from ysql_upgrade.migrations.tracker import CatalogTracker
from ysql_upgrade.migrations.version import Version

logger = get_logger(__name__)

BOOTSTRAP_DATABASE = "template1"
TEMPLATE_DATABASES = ("template1", "template0")

# Major version whose migration introduces catalog version tracking.
CATALOG_VERSION_MIGRATION_NUMBER = 1

LIST_DATABASES_SQL = (
    "SELECT datname FROM pg_database"
    "  WHERE datname NOT IN ('template0', 'template1');"
)


@dataclass(frozen=True)
class ConsistencyRisk:
    """The best-effort propagation wait ran; not an error."""

    database: str
    version: Version
    message: str


@dataclass
class UpgradeResult:
    """Outcome of a successful :meth:`UpgradeScheduler.run_upgrade`."""

    latest_version: Version
    applied: list[AppliedMigration] = field(default_factory=list)
    final_versions: dict[str, Version] = field(default_factory=dict)
    risks: list[ConsistencyRisk] = field(default_factory=list)

    @property
    def migrations_applied(self) -> int:
        return len(self.applied)


@dataclass(frozen=True)
class DatabaseStatus:
    """Recorded (or, when untracked, inferred) version of one database."""

    name: str
    version: Version
    tracked: bool
    pending: int


class UpgradeScheduler:
    """Drives an upgrade across every database of the cluster.

    Parameters
    ----------
    settings
        Cluster address, auth key, heartbeat, migrations location.
    connect
        ``connect(database_name) -> CatalogConnection``.  Defaults to
        :func:`connect_database` bound to *settings*.
    registry
        Pre-built registry; loaded from the migrations directory otherwise.
    tracker
        Tracking-table access (default :class:`CatalogTracker`).
    sleep
        Blocking sleep used for the propagation wait.

    Example::

        result = UpgradeScheduler(get_settings()).run_upgrade()
        print(f"Applied {result.migrations_applied} migrations")
    """

    def __init__(
        self,
        settings: UpgradeSettings,
        *,
        connect: Callable[[str], CatalogConnection] | None = None,
        registry: MigrationRegistry | None = None,
        tracker: CatalogTracker | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._settings = settings
        self._connect = connect or functools.partial(connect_database, settings)
        self._registry = registry
        self._tracker = tracker or CatalogTracker()
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def load_registry(self) -> MigrationRegistry:
        """Return the registry, discovering it on first use."""
        if self._registry is None:
            self._registry = MigrationRegistry.from_directory(
                resolve_migrations_dir(self._settings)
            )
        return self._registry

    def run_upgrade(self) -> UpgradeResult:
        """Bring every database to the latest migration version.

        Any error aborts the whole run; databases keep the last version
        recorded in their tracking tables.
        """
        registry = self.load_registry()
        logger.info("upgrade.started", latest_version=str(registry.latest_version))

        applier = MigrationApplier(
            registry,
            self._tracker,
            self._settings.heartbeat_interval_ms,
            sleep=self._sleep,
        )
        result = UpgradeResult(latest_version=registry.latest_version)

        with ExitStack() as stack:
            entries = self._open_entries(stack)

            # Clusters that already track catalog versions need no wait.
            catalog_version_tracked = any(
                entry.current_version.major >= CATALOG_VERSION_MIGRATION_NUMBER
                for entry in entries
            )

            while True:
                laggard = min(entries, key=attrgetter("current_version"))
                if laggard.current_version >= registry.latest_version:
                    logger.info(
                        "upgrade.minimum_is_latest",
                        minimum_version=str(laggard.current_version),
                    )
                    break

                logger.info(
                    "upgrade.minimum_version",
                    database=laggard.name,
                    minimum_version=str(laggard.current_version),
                )
                with LogContext(database=laggard.name):
                    applied = applier.apply(
                        laggard, propagation_pending=not catalog_version_tracked
                    )
                result.applied.append(applied)

                if applied.waited_for_propagation:
                    result.risks.append(
                        ConsistencyRisk(
                            database=applied.database,
                            version=applied.version,
                            message=(
                                "Catalog version may not have reached every node; "
                                "clients may see a transient catalog version mismatch"
                            ),
                        )
                    )
                catalog_version_tracked = True

            result.final_versions = {entry.name: entry.current_version for entry in entries}

        logger.info(
            "upgrade.completed",
            migrations_applied=result.migrations_applied,
            databases=len(result.final_versions),
        )
        return result

    def status(self) -> list[DatabaseStatus]:
        """Report each database's version without writing to any of them."""
        registry = self.load_registry()
        statuses: list[DatabaseStatus] = []

        with ExitStack() as stack:
            bootstrap = stack.enter_context(closing(self._connect(BOOTSTRAP_DATABASE)))
            for name in self.list_databases(bootstrap):
                conn = bootstrap if name == BOOTSTRAP_DATABASE else stack.enter_context(
                    closing(self._connect(name))
                )
                recorded = self._tracker.read_version(conn)
                if recorded is None:
                    version = Version(self._tracker.discovery.major_version(conn), 0)
                else:
                    version = recorded
                pending = sum(1 for candidate in registry.scripts if candidate > version)
                statuses.append(
                    DatabaseStatus(
                        name=name, version=version, tracked=recorded is not None, pending=pending
                    )
                )
        return statuses

    def list_databases(self, bootstrap: CatalogConnection) -> list[str]:
        """Template databases first, then every other database."""
        names = list(TEMPLATE_DATABASES)
        for row in bootstrap.fetch(LIST_DATABASES_SQL):
            if not row or not isinstance(row[0], str):
                raise QueryError(
                    f"Unexpected row from pg_database: {row!r}"
                ).with_context(database=bootstrap.database)
            names.append(row[0])
        return names

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _open_entries(self, stack: ExitStack) -> list[DatabaseEntry]:
        """Connect to every database and establish its starting version."""
        bootstrap = stack.enter_context(closing(self._connect(BOOTSTRAP_DATABASE)))

        entries: list[DatabaseEntry] = []
        for name in self.list_databases(bootstrap):
            with LogContext(database=name):
                logger.info("upgrade.determining_version", database=name)
                try:
                    conn = bootstrap if name == BOOTSTRAP_DATABASE else stack.enter_context(
                        closing(self._connect(name))
                    )
                    version = self._tracker.determine_version(conn)
                except UpgradeError as exc:
                    exc.with_context(database=name)
                    raise
            entries.append(DatabaseEntry(name=name, connection=conn, current_version=version))
        return entries


__all__ = [
    "BOOTSTRAP_DATABASE",
    "TEMPLATE_DATABASES",
    "CATALOG_VERSION_MIGRATION_NUMBER",
    "ConsistencyRisk",
    "DatabaseStatus",
    "UpgradeResult",
    "UpgradeScheduler",
]
