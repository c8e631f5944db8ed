"""
Protocol for the SQL transport used by the migration core.

The tracker, discovery probes, applier, and scheduler only ever talk to
a database through this shape.  ``PgConnection`` implements it over
psycopg; tests implement it over an in-memory fake cluster.

Guardrails:
    ❌ DON'T: Reach for the raw psycopg connection from migration code
    ✅ DO: Add the operation here and implement it in ``PgConnection``
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class CatalogConnection(Protocol):
    """Connection to one database of the cluster.

    ``execute`` runs its text as a single request: every statement in it
    commits or rolls back together unless the text itself issues
    ``BEGIN`` / ``COMMIT``.
    """

    @property
    def database(self) -> str:
        """Name of the database this connection is bound to."""
        ...

    def execute(self, query: str) -> None:
        """Execute (possibly multi-statement) text, returning nothing."""
        ...

    def execute_format(self, template: str, *args: Any) -> None:
        """Fill ``{}`` placeholders of *template* with SQL literals and execute."""
        ...

    def fetch(self, query: str, params: Sequence[Any] | None = None) -> list[tuple[Any, ...]]:
        """Run a query and return all rows."""
        ...

    def fetch_scalar(self, query: str, params: Sequence[Any] | None = None) -> Any:
        """Run a query expected to return exactly one row; return its first column."""
        ...

    def quote_ident(self, name: str) -> str:
        """Quote *name* as an SQL identifier."""
        ...

    def close(self) -> None:
        """Close the connection."""
        ...


__all__ = ["CatalogConnection"]
