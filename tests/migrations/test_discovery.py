"""Tests for baseline version inference from catalog features."""

from __future__ import annotations

import pytest

from tests._support.fake_cluster import FakeDatabase
from ysql_upgrade.core.errors import QueryError
from ysql_upgrade.migrations.discovery import (
    DEFAULT_PROBES,
    CatalogProbe,
    ProbeKind,
    VersionDiscovery,
    function_exists,
    system_table_exists,
    system_table_has_rows,
)


class TestProbeChecks:
    def test_table_exists(self):
        db = FakeDatabase("yugabyte")
        assert system_table_exists(db, "pg_tablegroup") is False
        db.tables.add("pg_tablegroup")
        assert system_table_exists(db, "pg_tablegroup") is True

    def test_table_has_rows_requires_existence(self):
        db = FakeDatabase("yugabyte")
        db.table_rows["pg_yb_catalog_version"] = 3  # rows but no pg_class entry
        assert system_table_has_rows(db, "pg_yb_catalog_version") is False

    def test_table_has_rows_empty_table(self):
        db = FakeDatabase("yugabyte")
        db.tables.add("pg_yb_catalog_version")
        assert system_table_has_rows(db, "pg_yb_catalog_version") is False
        db.table_rows["pg_yb_catalog_version"] = 1
        assert system_table_has_rows(db, "pg_yb_catalog_version") is True

    def test_function_exists(self):
        db = FakeDatabase("yugabyte")
        assert function_exists(db, "yb_servers") is False
        db.functions.add("yb_servers")
        assert function_exists(db, "yb_servers") is True

    def test_count_must_be_single_row(self):
        class NoRows(FakeDatabase):
            def fetch(self, query, params=None):
                return []

        with pytest.raises(QueryError, match="single row"):
            system_table_exists(NoRows("yugabyte"), "pg_tablegroup")

    def test_count_must_be_integer(self):
        class BadCount(FakeDatabase):
            def fetch(self, query, params=None):
                return [("many",)]

        with pytest.raises(QueryError, match="non-integer"):
            function_exists(BadCount("yugabyte"), "yb_servers")


class TestDefaultProbes:
    def test_chronological_order(self):
        assert [p.name for p in DEFAULT_PROBES] == [
            "pg_yb_catalog_version",
            "pg_tablegroup",
            "pg_stat_statements",
            "jsonb_path_query",
            "yb_getrusage",
            "yb_servers",
            "yb_hash_code",
            "ybginhandler",
        ]

    def test_first_probe_requires_rows(self):
        assert DEFAULT_PROBES[0].kind is ProbeKind.TABLE_HAS_ROWS


class TestVersionDiscovery:
    def test_empty_catalog_is_version_zero(self):
        assert VersionDiscovery().major_version(FakeDatabase("yugabyte")) == 0

    @pytest.mark.parametrize("k", range(len(DEFAULT_PROBES) + 1))
    def test_counts_leading_features(self, k):
        db = FakeDatabase("yugabyte").add_features(k)
        assert VersionDiscovery().major_version(db) == k

    @pytest.mark.parametrize("gap", range(len(DEFAULT_PROBES)))
    def test_stops_at_first_gap_regardless_of_later_features(self, gap):
        db = FakeDatabase("yugabyte").add_features(len(DEFAULT_PROBES), skip=[gap])
        assert VersionDiscovery().major_version(db) == gap

    def test_empty_catalog_version_table_counts_as_missing(self):
        db = FakeDatabase("yugabyte").add_features(len(DEFAULT_PROBES))
        db.table_rows["pg_yb_catalog_version"] = 0
        assert VersionDiscovery().major_version(db) == 0

    def test_short_circuits_after_failure(self):
        calls: list[str] = []

        class Recording(FakeDatabase):
            def fetch(self, query, params=None):
                calls.append(params[0] if params else query)
                return super().fetch(query, params)

        db = Recording("yugabyte")
        VersionDiscovery().major_version(db)
        # Only the first probe's existence check ran
        assert calls == ["pg_yb_catalog_version"]

    def test_custom_probe_list(self):
        probes = [
            CatalogProbe(ProbeKind.FUNCTION_EXISTS, "f_one"),
            CatalogProbe(ProbeKind.TABLE_EXISTS, "t_two"),
        ]
        db = FakeDatabase("yugabyte")
        db.functions.add("f_one")
        discovery = VersionDiscovery(probes)
        assert discovery.probes == tuple(probes)
        assert discovery.major_version(db) == 1

    def test_has_no_side_effects(self):
        db = FakeDatabase("yugabyte").add_features(4)
        VersionDiscovery().major_version(db)
        assert db.requests == []
        assert db.migration_rows == []
