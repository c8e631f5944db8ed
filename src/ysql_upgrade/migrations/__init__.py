"""Catalog migrations for every database of a YSQL cluster.

Manifesto:
    Catalog migrations must reach every database, including the
    templates that new databases are cloned from, in a total and
    deterministic order.  Each step is checkpointed in the database's own
    ``pg_yb_migration`` table so an interrupted upgrade resumes where it
    stopped.

Modules
-------
version     Version, MigrationScript
registry    MigrationRegistry: discover and order ``V*__*__*.sql`` scripts
discovery   VersionDiscovery: infer a baseline from catalog features
tracker     CatalogTracker: pg_yb_migration reads and writes
applier     MigrationApplier: one step for one database
scheduler   UpgradeScheduler: laggard-first loop over all databases

Tags:
    ysql-upgrade, migrations, schema, catalog, idempotent

Doc-Types:
    package-overview
"""

from ysql_upgrade.migrations.applier import AppliedMigration, DatabaseEntry, MigrationApplier
from ysql_upgrade.migrations.discovery import CatalogProbe, ProbeKind, VersionDiscovery
from ysql_upgrade.migrations.registry import MigrationRegistry, resolve_migrations_dir
from ysql_upgrade.migrations.scheduler import (
    ConsistencyRisk,
    DatabaseStatus,
    UpgradeResult,
    UpgradeScheduler,
)
from ysql_upgrade.migrations.tracker import CatalogTracker
from ysql_upgrade.migrations.version import MigrationScript, Version

__all__ = [
    "AppliedMigration",
    "CatalogProbe",
    "CatalogTracker",
    "ConsistencyRisk",
    "DatabaseEntry",
    "DatabaseStatus",
    "MigrationApplier",
    "MigrationRegistry",
    "MigrationScript",
    "ProbeKind",
    "UpgradeResult",
    "UpgradeScheduler",
    "Version",
    "VersionDiscovery",
    "resolve_migrations_dir",
]
