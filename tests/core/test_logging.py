"""Tests for structlog configuration and scoped logging context."""

from __future__ import annotations

import json

import structlog

from ysql_upgrade.core.logging import (
    LogContext,
    bind_context,
    configure_logging,
    get_logger,
    unbind_context,
)


def test_json_output_includes_service_and_context(capsys):
    configure_logging(level="INFO", json_format=True, service="ysql-upgrade-test")
    logger = get_logger("ysql_upgrade.tests")

    with LogContext(database="template1"):
        logger.info("migration.applied", version="2.0")

    line = capsys.readouterr().err.strip().splitlines()[-1]
    event = json.loads(line)
    assert event["event"] == "migration.applied"
    assert event["database"] == "template1"
    assert event["version"] == "2.0"
    assert event["service.name"] == "ysql-upgrade-test"
    assert event["level"] == "info"
    assert event["logger"] == "ysql_upgrade.tests"


def test_level_filtering(capsys):
    configure_logging(level="WARNING", json_format=True)
    get_logger(__name__).info("hidden")
    assert "hidden" not in capsys.readouterr().err


def test_log_context_unbinds_on_exit():
    with LogContext(database="yugabyte", migration="V1__1__x.sql"):
        assert structlog.contextvars.get_contextvars()["database"] == "yugabyte"
    assert "database" not in structlog.contextvars.get_contextvars()
    assert "migration" not in structlog.contextvars.get_contextvars()


def test_bind_and_unbind():
    bind_context(run="abc")
    assert structlog.contextvars.get_contextvars()["run"] == "abc"
    unbind_context("run")
    assert "run" not in structlog.contextvars.get_contextvars()


def test_configure_after_import_reaches_module_loggers(capsys, tmp_path):
    from tests._support.fake_cluster import write_scripts
    from ysql_upgrade.migrations.registry import MigrationRegistry

    directory = write_scripts(tmp_path / "ysql_migrations", "V1__1__one.sql")

    configure_logging(level="WARNING", json_format=True)
    MigrationRegistry.from_directory(directory)
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "registry.loaded" not in captured.err

    configure_logging(level="INFO", json_format=True)
    MigrationRegistry.from_directory(directory)
    captured = capsys.readouterr()
    assert captured.out == ""
    event = json.loads(captured.err.strip().splitlines()[-1])
    assert event["event"] == "registry.loaded"
    assert event["logger"] == "ysql_upgrade.migrations.registry"
