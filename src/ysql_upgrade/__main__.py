"""Allow ``python -m ysql_upgrade``."""

from ysql_upgrade.cli.app import app

if __name__ == "__main__":
    app()
