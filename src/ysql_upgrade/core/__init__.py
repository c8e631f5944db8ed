"""Core building blocks: errors, logging, settings, and the SQL transport.

Modules
-------
errors       UpgradeError hierarchy with structured context
logging      structlog configuration and LogContext
settings     UpgradeSettings (pydantic-settings, ``YSQL_UPGRADE_*``)
protocols    CatalogConnection protocol
connection   PgConnection over psycopg, connect_database()
"""

from ysql_upgrade.core.errors import (
    ApplicationError,
    ConfigError,
    DatabaseConnectionError,
    DiscoveryError,
    ErrorCategory,
    ErrorContext,
    MigrationNotFoundError,
    QueryError,
    UpgradeError,
)
from ysql_upgrade.core.protocols import CatalogConnection

__all__ = [
    "ApplicationError",
    "CatalogConnection",
    "ConfigError",
    "DatabaseConnectionError",
    "DiscoveryError",
    "ErrorCategory",
    "ErrorContext",
    "MigrationNotFoundError",
    "QueryError",
    "UpgradeError",
]
