"""
Settings for ysql-upgrade.

Manifesto:
    The upgrade runs once per cluster upgrade, usually launched by the
    cluster manager with a handful of values: where the YSQL proxy
    listens, the auth key, and the heartbeat interval used to size the
    propagation wait.  All of them come from ``YSQL_UPGRADE_*``
    environment variables (or a ``.env`` file) and can be overridden per
    CLI invocation.

Examples:
    >>> from ysql_upgrade.core.settings import get_settings
    >>> settings = get_settings()
    >>> settings.heartbeat_interval_ms
    1000

Tags:
    settings, configuration, pydantic, environment, ysql-upgrade

Doc-Types:
    api-reference
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class UpgradeSettings(BaseSettings):
    """Validated configuration for one upgrade run.

    Fields
    ──────
    proxy_host            : Host the YSQL proxy listens on
    proxy_port            : Port the YSQL proxy listens on
    auth_key              : Token sent as the ``postgres`` user's password
    user                  : Role used for every connection
    heartbeat_interval_ms : Cluster heartbeat; the propagation wait is twice this
    migrations_dir        : Explicit script directory (else searched for)
    use_socket_dir        : Connect through the proxy's unix-socket directory
    socket_dir_prefix     : Prefix of that directory, followed by ``proxy_host``
    connect_timeout_s     : libpq connect timeout
    log_level / log_format: structlog configuration
    """

    model_config = SettingsConfigDict(
        env_prefix="YSQL_UPGRADE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Cluster ──────────────────────────────────────────────────
    proxy_host: str = Field(default="127.0.0.1")
    proxy_port: int = Field(default=5433, gt=0, lt=65536)
    auth_key: str = Field(default="", description="YSQL auth key (password)")
    user: str = Field(default="postgres")
    heartbeat_interval_ms: int = Field(default=1000, gt=0)

    # ── Transport ────────────────────────────────────────────────
    use_socket_dir: bool = Field(default=True)
    socket_dir_prefix: str = Field(default="/tmp/.yb.")
    connect_timeout_s: int = Field(default=30, gt=0)

    # ── Migrations ───────────────────────────────────────────────
    migrations_dir: Path | None = Field(default=None)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: Literal["json", "console", "auto"] = Field(default="auto")

    @property
    def socket_host(self) -> str:
        """Host (or unix-socket directory) handed to libpq."""
        if self.use_socket_dir:
            return f"{self.socket_dir_prefix}{self.proxy_host}"
        return self.proxy_host


_settings_cache: dict[str, UpgradeSettings] = {}


def get_settings(*, _force_reload: bool = False, **overrides: Any) -> UpgradeSettings:
    """Load, validate, and cache :class:`UpgradeSettings`.

    Keyword *overrides* (e.g. from CLI options) bypass the cache; ``None``
    values are dropped so unset options fall through to the environment.
    """
    overrides = {k: v for k, v in overrides.items() if v is not None}
    if overrides:
        return UpgradeSettings(**overrides)

    if _force_reload or "default" not in _settings_cache:
        _settings_cache["default"] = UpgradeSettings()
    return _settings_cache["default"]


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()


__all__ = ["UpgradeSettings", "get_settings", "clear_settings_cache"]
