"""Apply one migration step to one database."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from ysql_upgrade.core.errors import ApplicationError, MigrationNotFoundError, UpgradeError
from ysql_upgrade.core.logging import get_logger
from ysql_upgrade.core.protocols import CatalogConnection
from ysql_upgrade.migrations.registry import MigrationRegistry
from ysql_upgrade.migrations.tracker import CatalogTracker
from ysql_upgrade.migrations.version import Version

logger = get_logger(__name__)


@dataclass
class DatabaseEntry:
    """A database under management and the version it has reached."""

    name: str
    connection: CatalogConnection
    current_version: Version


@dataclass(frozen=True)
class AppliedMigration:
    """Record of a single applied migration step."""

    database: str
    version: Version
    filename: str
    waited_for_propagation: bool = False


class MigrationApplier:
    """Advances a :class:`DatabaseEntry` by exactly one migration.

    Parameters
    ----------
    registry
        Scripts to choose the next step from.
    tracker
        Records the new version once the script has run.
    heartbeat_interval_ms
        Cluster heartbeat; the propagation wait blocks for twice this.
    sleep
        Blocking sleep in seconds (``time.sleep``).
    """

    def __init__(
        self,
        registry: MigrationRegistry,
        tracker: CatalogTracker,
        heartbeat_interval_ms: int,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._registry = registry
        self._tracker = tracker
        self._heartbeat_interval_ms = heartbeat_interval_ms
        self._sleep = sleep

    @property
    def propagation_wait_s(self) -> float:
        return 2 * self._heartbeat_interval_ms / 1000.0

    def apply(self, entry: DatabaseEntry, *, propagation_pending: bool) -> AppliedMigration:
        """Apply the migration that follows ``entry.current_version``.

        When *propagation_pending* is true the cluster has not yet seen
        a catalog version, so after the script runs this call blocks once
        for the propagation wait before recording the new version.

        If loading or executing the script fails, ``entry`` is left
        unchanged and the error propagates; nothing is retried.
        """
        script = self._registry.next_after(entry.current_version)
        if script is None:
            raise MigrationNotFoundError(
                f"Migration following {entry.current_version} is not found"
            ).with_context(database=entry.name)

        try:
            content = script.read()
        except (OSError, UnicodeDecodeError) as exc:
            raise ApplicationError(
                f"Failed to read migration '{script.filename}'", cause=exc
            ).with_context(
                database=entry.name, migration=script.filename, version=script.version
            ) from exc

        logger.info(
            "migration.applying",
            database=entry.name,
            migration=script.filename,
            from_version=str(entry.current_version),
        )

        # The whole script is one request: statements commit together
        # unless the script splits them with its own BEGIN / COMMIT.
        try:
            entry.connection.execute(content)
        except UpgradeError as exc:
            raise ApplicationError(
                f"Failed to apply migration '{script.filename}' to database {entry.name}",
                cause=exc,
            ).with_context(
                database=entry.name, migration=script.filename, version=script.version
            ) from exc

        waited = False
        if propagation_pending:
            # Best effort only: a node that misses the heartbeat reports a
            # catalog version mismatch, which its client must retry.
            logger.info(
                "migration.propagation_wait",
                database=entry.name,
                seconds=self.propagation_wait_s,
            )
            self._sleep(self.propagation_wait_s)
            waited = True

        try:
            self._tracker.record_applied(entry.connection, script.version, script.filename)
        except UpgradeError as exc:
            raise ApplicationError(
                f"Failed to bump {script.version} in database {entry.name}",
                cause=exc,
            ).with_context(
                database=entry.name, migration=script.filename, version=script.version
            ) from exc

        entry.current_version = script.version
        logger.info(
            "migration.applied",
            database=entry.name,
            migration=script.filename,
            version=str(script.version),
        )
        return AppliedMigration(
            database=entry.name,
            version=script.version,
            filename=script.filename,
            waited_for_propagation=waited,
        )
