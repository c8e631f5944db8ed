"""Migration script discovery.

Scripts live in ``share/ysql_migrations`` under the installation root and
are named ``V<major>[.<minor>]__<ordinal>__<description>.sql``.  The
ordinal is an opaque unique number; only ``major`` / ``minor`` order the
scripts.  Any ``.sql`` file that does not follow the pattern stops the
upgrade before a single database is touched.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from pathlib import Path
from types import MappingProxyType

from ysql_upgrade.core.errors import DiscoveryError
from ysql_upgrade.core.logging import get_logger
from ysql_upgrade.core.settings import UpgradeSettings
from ysql_upgrade.migrations.version import MigrationScript, Version

logger = get_logger(__name__)

STATIC_DATA_PARENT_DIR = "share"
MIGRATIONS_DIR_NAME = "ysql_migrations"

SCRIPT_NAME_RE = re.compile(r"V(\d+)(?:\.(\d+))?__\d+__[_0-9A-Za-z]+\.sql")


def parse_script_version(filename: str) -> Version:
    """Return the version encoded in a script filename.

    Raises ``DiscoveryError`` if the name does not follow the pattern.
    """
    match = SCRIPT_NAME_RE.fullmatch(filename)
    if match is None:
        raise DiscoveryError(
            f"Migration '{filename}' does not conform to the filename pattern"
        ).with_context(migration=filename)
    major, minor = match.groups()
    return Version(int(major), int(minor) if minor else 0)


def find_root_dir(search_for: str | Path, start: Path) -> Path | None:
    """Walk up from *start* to the first directory containing *search_for*."""
    for candidate in (start, *start.parents):
        if (candidate / search_for).is_dir():
            return candidate
    return None


def resolve_migrations_dir(settings: UpgradeSettings) -> Path:
    """Locate the migrations directory.

    An explicit ``migrations_dir`` setting wins; otherwise the
    installation root is found by walking up from this package, then from
    the working directory, until ``share/ysql_migrations`` is found.
    """
    if settings.migrations_dir is not None:
        return settings.migrations_dir

    search_for = Path(STATIC_DATA_PARENT_DIR) / MIGRATIONS_DIR_NAME
    for start in (Path(__file__).resolve().parent, Path.cwd()):
        root = find_root_dir(search_for, start)
        if root is not None:
            return root / search_for

    raise DiscoveryError(
        f"Installation root containing {search_for} not found; "
        "set YSQL_UPGRADE_MIGRATIONS_DIR"
    )


class MigrationRegistry:
    """Immutable, version-ordered set of migration scripts.

    Build with :meth:`from_directory`; the mapping never changes after
    construction and every database of the run reads the same instance.

    Example::

        registry = MigrationRegistry.from_directory(path)
        registry.latest_version          # Version(major=12, minor=1)
        registry.next_after(Version(3))  # first script above 3.0
    """

    def __init__(self, scripts: dict[Version, MigrationScript], directory: Path) -> None:
        if not scripts:
            raise DiscoveryError(f"No migrations found in {directory}")
        ordered = dict(sorted(scripts.items()))
        self._scripts = MappingProxyType(ordered)
        self._versions = tuple(ordered)
        self._directory = directory

    @classmethod
    def from_directory(cls, directory: Path | str) -> MigrationRegistry:
        """Discover and validate every ``.sql`` script in *directory*.

        Raises ``DiscoveryError`` if the directory is missing, holds no
        scripts, or holds a misnamed script.
        """
        directory = Path(directory)
        if not directory.is_dir():
            raise DiscoveryError(f"Migrations directory not found: {directory}")

        filenames = sorted(
            entry.name
            for entry in directory.iterdir()
            if entry.name.lower().endswith(".sql")
        )
        if not filenames:
            raise DiscoveryError(f"No migrations found in {directory}")

        scripts: dict[Version, MigrationScript] = {}
        for filename in filenames:
            version = parse_script_version(filename)
            if version in scripts:
                # Kept permissive: the later file replaces the earlier one.
                logger.warning(
                    "registry.duplicate_version",
                    version=str(version),
                    replaced=scripts[version].filename,
                    migration=filename,
                )
            scripts[version] = MigrationScript(version, filename, directory / filename)

        registry = cls(scripts, directory)
        logger.info(
            "registry.loaded",
            directory=str(directory),
            scripts=len(registry),
            latest_version=str(registry.latest_version),
        )
        return registry

    @property
    def directory(self) -> Path:
        return self._directory

    @property
    def latest_version(self) -> Version:
        return self._versions[-1]

    @property
    def scripts(self) -> MappingProxyType[Version, MigrationScript]:
        """Read-only ``Version -> MigrationScript`` mapping, ascending."""
        return self._scripts

    def next_after(self, version: Version) -> MigrationScript | None:
        """Smallest script strictly newer than *version*, or ``None``."""
        for candidate in self._versions:
            if candidate > version:
                return self._scripts[candidate]
        return None

    def __getitem__(self, version: Version) -> MigrationScript:
        return self._scripts[version]

    def __contains__(self, version: object) -> bool:
        return version in self._scripts

    def __iter__(self) -> Iterator[MigrationScript]:
        return iter(self._scripts.values())

    def __len__(self) -> int:
        return len(self._scripts)

    def __repr__(self) -> str:
        return f"MigrationRegistry(scripts={len(self)}, latest={self.latest_version})"
