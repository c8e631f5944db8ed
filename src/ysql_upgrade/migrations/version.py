"""Version and migration-script records."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

_VERSION_RE = re.compile(r"(\d+)(?:\.(\d+))?")


@dataclass(frozen=True, order=True)
class Version:
    """Catalog schema version; ordered by major, then minor."""

    major: int
    minor: int = 0

    def __post_init__(self) -> None:
        if self.major < 0 or self.minor < 0:
            raise ValueError(f"Version components must be non-negative: {self.major}.{self.minor}")

    @classmethod
    def parse(cls, text: str) -> Version:
        """Parse ``"<major>[.<minor>]"``; minor defaults to 0."""
        match = _VERSION_RE.fullmatch(text.strip())
        if match is None:
            raise ValueError(f"Not a version: {text!r}")
        major, minor = match.groups()
        return cls(int(major), int(minor) if minor else 0)

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}"


@dataclass(frozen=True)
class MigrationScript:
    """A versioned ``.sql`` file; its content is read when applied."""

    version: Version
    filename: str
    path: Path

    def read(self) -> str:
        """Read the whole script (raises ``OSError`` if unreadable)."""
        return self.path.read_bytes().decode("utf-8")
