"""Tests for migration script discovery and ordering."""

from __future__ import annotations

from pathlib import Path

import pytest

from tests._support.fake_cluster import write_scripts
from ysql_upgrade.core.errors import DiscoveryError, ErrorCategory
from ysql_upgrade.core.settings import UpgradeSettings
from ysql_upgrade.migrations.registry import (
    MigrationRegistry,
    find_root_dir,
    parse_script_version,
    resolve_migrations_dir,
)
from ysql_upgrade.migrations.version import MigrationScript, Version


# ── Version ──────────────────────────────────────────────────────────


class TestVersion:
    def test_orders_by_major_then_minor(self):
        assert Version(1, 9) < Version(2, 0) < Version(2, 1) < Version(10, 0)

    def test_minor_defaults_to_zero(self):
        assert Version(3) == Version(3, 0)

    @pytest.mark.parametrize("text", ["0.0", "1.0", "2.1", "12.34"])
    def test_str_then_parse_recovers_version(self, text):
        assert str(Version.parse(text)) == text

    def test_parse_without_minor(self):
        assert Version.parse("7") == Version(7, 0)

    @pytest.mark.parametrize("text", ["", "a.b", "1.", "-1.0", "1.2.3"])
    def test_parse_rejects_garbage(self, text):
        with pytest.raises(ValueError):
            Version.parse(text)

    def test_negative_components_rejected(self):
        with pytest.raises(ValueError):
            Version(0, -1)


# ── Filename pattern ─────────────────────────────────────────────────


class TestParseScriptVersion:
    @pytest.mark.parametrize(
        ("filename", "expected"),
        [
            ("V1__3979__pg_yb_catalog_version.sql", Version(1, 0)),
            ("V2.1__4525__tablegroup_Fix_2.sql", Version(2, 1)),
            ("V0__1__init.sql", Version(0, 0)),
            ("V12.34__99999__x.sql", Version(12, 34)),
        ],
    )
    def test_valid_names(self, filename, expected):
        version = parse_script_version(filename)
        assert version == expected
        # Formatting then parsing recovers the registry key
        assert Version.parse(str(version)) == expected

    @pytest.mark.parametrize(
        "filename",
        [
            "V1__init.sql",
            "1__100__init.sql",
            "V1_100_init.sql",
            "V1__abc__init.sql",
            "V1__100__bad-name.sql",
            "V1__100__init.SQL",
            "backup_V1__100__init.sql",
        ],
    )
    def test_invalid_names(self, filename):
        with pytest.raises(DiscoveryError) as exc_info:
            parse_script_version(filename)
        assert exc_info.value.context.migration == filename


# ── Registry construction ────────────────────────────────────────────


class TestMigrationRegistry:
    def test_loads_all_scripts(self, migrations_dir: Path):
        registry = MigrationRegistry.from_directory(migrations_dir)
        assert len(registry) == 4
        assert registry.latest_version == Version(3, 0)
        assert [s.version for s in registry] == [
            Version(1, 0),
            Version(2, 0),
            Version(2, 1),
            Version(3, 0),
        ]

    def test_scripts_are_records_with_paths(self, migrations_dir: Path):
        registry = MigrationRegistry.from_directory(migrations_dir)
        script = registry[Version(2, 1)]
        assert isinstance(script, MigrationScript)
        assert script.filename == "V2.1__201__tablegroup_fix.sql"
        assert script.path == migrations_dir / script.filename
        assert Version(2, 1) in registry

    def test_ordinal_does_not_affect_order(self, tmp_path: Path):
        d = write_scripts(tmp_path / "m", "V1__900__a.sql", "V2__1__b.sql")
        registry = MigrationRegistry.from_directory(d)
        assert [s.filename for s in registry] == ["V1__900__a.sql", "V2__1__b.sql"]

    def test_non_sql_files_ignored(self, migrations_dir: Path):
        (migrations_dir / "README.md").write_text("notes")
        (migrations_dir / "V9__1__draft.sql.bak").write_text("")
        registry = MigrationRegistry.from_directory(migrations_dir)
        assert len(registry) == 4

    def test_latest_is_max_not_last_listed(self, tmp_path: Path):
        d = write_scripts(tmp_path / "m", "V10__1__ten.sql", "V9.5__2__nine.sql")
        registry = MigrationRegistry.from_directory(d)
        assert registry.latest_version == Version(10, 0)

    def test_mapping_is_read_only(self, migrations_dir: Path):
        registry = MigrationRegistry.from_directory(migrations_dir)
        with pytest.raises(TypeError):
            registry.scripts[Version(4, 0)] = None  # type: ignore[index]

    def test_duplicate_version_overwrites(self, tmp_path: Path):
        d = write_scripts(tmp_path / "m", "V1__1__alpha.sql", "V1.0__2__beta.sql")
        registry = MigrationRegistry.from_directory(d)
        assert len(registry) == 1
        # Files are processed in sorted order; the later one wins.
        assert registry[Version(1, 0)].filename == "V1__1__alpha.sql"

    def test_missing_directory(self, tmp_path: Path):
        with pytest.raises(DiscoveryError, match="not found"):
            MigrationRegistry.from_directory(tmp_path / "nope")

    def test_empty_directory(self, tmp_path: Path):
        d = tmp_path / "empty"
        d.mkdir()
        with pytest.raises(DiscoveryError, match="No migrations found"):
            MigrationRegistry.from_directory(d)

    def test_directory_with_only_other_files(self, tmp_path: Path):
        d = tmp_path / "docs"
        d.mkdir()
        (d / "notes.txt").write_text("")
        with pytest.raises(DiscoveryError):
            MigrationRegistry.from_directory(d)

    def test_one_misnamed_script_fails_everything(self, migrations_dir: Path):
        (migrations_dir / "V4_oops.sql").write_text("SELECT 1;")
        with pytest.raises(DiscoveryError) as exc_info:
            MigrationRegistry.from_directory(migrations_dir)
        assert exc_info.value.category == ErrorCategory.DISCOVERY
        assert "V4_oops.sql" in str(exc_info.value)


class TestNextAfter:
    @pytest.fixture()
    def registry(self, migrations_dir: Path) -> MigrationRegistry:
        return MigrationRegistry.from_directory(migrations_dir)

    @pytest.mark.parametrize(
        ("current", "expected"),
        [
            (Version(0, 0), Version(1, 0)),
            (Version(1, 0), Version(2, 0)),
            (Version(2, 0), Version(2, 1)),
            (Version(2, 1), Version(3, 0)),
            # A version between scripts moves to the next one above it
            (Version(1, 5), Version(2, 0)),
        ],
    )
    def test_smallest_strictly_greater(self, registry, current, expected):
        assert registry.next_after(current).version == expected

    def test_none_at_latest(self, registry):
        assert registry.next_after(Version(3, 0)) is None
        assert registry.next_after(Version(7, 0)) is None


# ── Directory resolution ─────────────────────────────────────────────


class TestResolveMigrationsDir:
    def test_explicit_setting_wins(self, tmp_path: Path):
        settings = UpgradeSettings(migrations_dir=tmp_path / "custom")
        assert resolve_migrations_dir(settings) == tmp_path / "custom"

    def test_found_from_working_directory(self, tmp_path: Path, monkeypatch):
        root = tmp_path / "install"
        (root / "share" / "ysql_migrations").mkdir(parents=True)
        workdir = root / "bin" / "sub"
        workdir.mkdir(parents=True)
        monkeypatch.chdir(workdir)

        resolved = resolve_migrations_dir(UpgradeSettings())
        assert resolved.resolve() == (root / "share" / "ysql_migrations").resolve()

    def test_find_root_dir_walks_up(self, tmp_path: Path):
        (tmp_path / "share" / "ysql_migrations").mkdir(parents=True)
        start = tmp_path / "a" / "b"
        start.mkdir(parents=True)
        assert find_root_dir(Path("share") / "ysql_migrations", start) == tmp_path

    def test_find_root_dir_none_when_absent(self, tmp_path: Path):
        assert find_root_dir("definitely_not_here_dir", tmp_path) is None
