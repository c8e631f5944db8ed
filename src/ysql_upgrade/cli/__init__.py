"""
CLI: ``ysql-upgrade``: run and inspect catalog migrations.
"""

from ysql_upgrade.cli.app import app

__all__ = ["app"]
