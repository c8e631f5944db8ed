"""
Shared pytest fixtures for ysql-upgrade tests.

This module provides:
- Settings cache isolation
- A fake cluster with the two template databases
- Temporary migration directories
"""

import sys
from pathlib import Path

import pytest
import structlog

# Ensure ysql_upgrade and tests._support are importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent.parent))

from tests._support.fake_cluster import FakeCluster, write_scripts  # noqa: E402
from ysql_upgrade.core.settings import UpgradeSettings, clear_settings_cache  # noqa: E402


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark every test without an explicit marker as a unit test."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


@pytest.fixture(autouse=True)
def _isolate_settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Keep the developer's environment and .env out of every test."""
    import os

    for key in list(os.environ):
        if key.startswith("YSQL_UPGRADE_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    clear_settings_cache()
    yield
    clear_settings_cache()
    structlog.reset_defaults()


@pytest.fixture()
def settings(tmp_path: Path) -> UpgradeSettings:
    return UpgradeSettings(
        proxy_host="127.0.0.1",
        auth_key="secret",
        heartbeat_interval_ms=500,
        migrations_dir=tmp_path / "ysql_migrations",
    )


@pytest.fixture()
def cluster() -> FakeCluster:
    """Cluster holding only the template databases, both untracked."""
    c = FakeCluster()
    c.add_database("template1")
    c.add_database("template0")
    return c


@pytest.fixture()
def migrations_dir(tmp_path: Path) -> Path:
    """Scripts V1..V3 plus a minor version."""
    return write_scripts(
        tmp_path / "ysql_migrations",
        "V1__100__catalog_version.sql",
        "V2__200__tablegroup.sql",
        "V2.1__201__tablegroup_fix.sql",
        "V3__300__stat_statements.sql",
    )
