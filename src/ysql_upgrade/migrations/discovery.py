"""
Catalog version discovery for databases with no migration history.

Manifesto:
    Migrations were introduced long after the first clusters went into
    production.  A database created before that point has no tracking
    table, yet its catalog already carries a number of features that
    later became migrations.  Those features were only ever added in a
    fixed chronological order, so the first missing one identifies the
    database's generation unambiguously.

Architecture:
    ::

        DEFAULT_PROBES (chronological)
        ┌───┬──────────────────┬────────────────────────┐
        │ 1 │ table_has_rows   │ pg_yb_catalog_version  │
        │ 2 │ table_exists     │ pg_tablegroup          │
        │ 3 │ table_exists     │ pg_stat_statements     │
        │ 4 │ function_exists  │ jsonb_path_query       │
        │ 5 │ function_exists  │ yb_getrusage           │
        │ 6 │ function_exists  │ yb_servers             │
        │ 7 │ function_exists  │ yb_hash_code           │
        │ 8 │ function_exists  │ ybginhandler           │
        └───┴──────────────────┴────────────────────────┘

        major version = number of consecutive passing probes from #1

Examples:
    >>> discovery = VersionDiscovery()
    >>> discovery.major_version(conn)   # catalog has probes 1-3 only
    3

Guardrails:
    ❌ DON'T: Count every passing probe
    ✅ DO: Stop at the first gap; later probes are irrelevant

    ❌ DON'T: Reorder DEFAULT_PROBES
    ✅ DO: Append a probe only for a feature shipped after the last one

Tags:
    migrations, catalog, version-inference, baseline, ysql-upgrade

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from ysql_upgrade.core.errors import QueryError
from ysql_upgrade.core.logging import get_logger
from ysql_upgrade.core.protocols import CatalogConnection

logger = get_logger(__name__)

TABLE_EXISTS_SQL = (
    "SELECT COUNT(*) FROM pg_class"
    " WHERE relname = %s AND relnamespace = 'pg_catalog'::regnamespace"
)
FUNCTION_EXISTS_SQL = "SELECT COUNT(*) FROM pg_proc WHERE proname = %s"


def _count(conn: CatalogConnection, query: str, params: Sequence[str] | None = None) -> int:
    value = conn.fetch_scalar(query, params)
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise QueryError(
            f"Query {query} returned a non-integer count: {value!r}", cause=exc
        ).with_context(database=conn.database) from exc


def system_table_exists(conn: CatalogConnection, table_name: str) -> bool:
    """True if ``pg_catalog.<table_name>`` exists."""
    return _count(conn, TABLE_EXISTS_SQL, (table_name,)) == 1


def system_table_has_rows(conn: CatalogConnection, table_name: str) -> bool:
    """True if ``pg_catalog.<table_name>`` exists and is not empty."""
    if not system_table_exists(conn, table_name):
        return False
    query = f"SELECT COUNT(*) FROM pg_catalog.{conn.quote_ident(table_name)}"
    return _count(conn, query) > 0


def function_exists(conn: CatalogConnection, function_name: str) -> bool:
    """True if exactly one function named *function_name* exists."""
    return _count(conn, FUNCTION_EXISTS_SQL, (function_name,)) == 1


class ProbeKind(str, Enum):
    TABLE_HAS_ROWS = "table_has_rows"
    TABLE_EXISTS = "table_exists"
    FUNCTION_EXISTS = "function_exists"


_PROBE_CHECKS = {
    ProbeKind.TABLE_HAS_ROWS: system_table_has_rows,
    ProbeKind.TABLE_EXISTS: system_table_exists,
    ProbeKind.FUNCTION_EXISTS: function_exists,
}


@dataclass(frozen=True)
class CatalogProbe:
    """One catalog feature whose presence marks a historical version."""

    kind: ProbeKind
    name: str
    description: str = ""

    def check(self, conn: CatalogConnection) -> bool:
        return _PROBE_CHECKS[self.kind](conn, self.name)


DEFAULT_PROBES: tuple[CatalogProbe, ...] = (
    CatalogProbe(ProbeKind.TABLE_HAS_ROWS, "pg_yb_catalog_version", "#3979 catalog version table"),
    CatalogProbe(ProbeKind.TABLE_EXISTS, "pg_tablegroup", "#4525 tablegroups"),
    CatalogProbe(ProbeKind.TABLE_EXISTS, "pg_stat_statements", "#5478 pg_stat_statements"),
    CatalogProbe(ProbeKind.FUNCTION_EXISTS, "jsonb_path_query", "#5408 JSONB path functions"),
    CatalogProbe(ProbeKind.FUNCTION_EXISTS, "yb_getrusage", "#6509 yb_getrusage / yb_mem_usage"),
    CatalogProbe(ProbeKind.FUNCTION_EXISTS, "yb_servers", "#7879 yb_servers"),
    CatalogProbe(ProbeKind.FUNCTION_EXISTS, "yb_hash_code", "#8719 yb_hash_code"),
    CatalogProbe(ProbeKind.FUNCTION_EXISTS, "ybginhandler", "#7850 ybgin access method"),
)


class VersionDiscovery:
    """Infers a major version from an ordered list of catalog probes."""

    def __init__(self, probes: Sequence[CatalogProbe] = DEFAULT_PROBES) -> None:
        self._probes = tuple(probes)

    @property
    def probes(self) -> tuple[CatalogProbe, ...]:
        return self._probes

    def major_version(self, conn: CatalogConnection) -> int:
        """Count consecutive passing probes, stopping at the first failure.

        0 means no known feature is present.  Read-only.
        """
        major = 0
        for probe in self._probes:
            if not probe.check(conn):
                break
            major += 1

        logger.debug(
            "discovery.major_version",
            database=conn.database,
            major=major,
            first_missing=self._probes[major].name if major < len(self._probes) else None,
        )
        return major
