"""
CLI utility helpers: settings, logging setup, and output formatting.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, NoReturn

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ysql_upgrade.core.errors import ConfigError, UpgradeError
from ysql_upgrade.core.logging import configure_logging
from ysql_upgrade.core.settings import UpgradeSettings, get_settings

console = Console()
err_console = Console(stderr=True)

_LOG_FORMATS = {"json": True, "console": False, "auto": None}


# ── Settings / logging ───────────────────────────────────────────────────


def load_settings(
    *,
    host: str | None = None,
    port: int | None = None,
    auth_key: str | None = None,
    heartbeat_ms: int | None = None,
    migrations_dir: Path | None = None,
    log_level: str | None = None,
    as_json: bool = False,
) -> UpgradeSettings:
    """Resolve settings from the environment plus CLI overrides, then set up logging."""
    try:
        settings = get_settings(
            proxy_host=host,
            proxy_port=port,
            auth_key=auth_key,
            heartbeat_interval_ms=heartbeat_ms,
            migrations_dir=migrations_dir,
            log_level=log_level,
        )
    except ValidationError as exc:
        fail(
            ConfigError(f"Invalid settings: {exc.error_count()} error(s)", cause=exc),
            as_json=as_json,
        )

    configure_logging(level=settings.log_level, json_format=_LOG_FORMATS[settings.log_format])
    return settings


# ── Output helpers ───────────────────────────────────────────────────────


def fail(error: UpgradeError, *, as_json: bool = False) -> NoReturn:
    """Report an error and exit with status 1."""
    if as_json:
        console.print_json(json.dumps({"success": False, "error": error.to_dict()}, default=str))
    else:
        err_console.print(f"[bold red]Error[/bold red] ({error.category.value}): {escape(str(error))}")
        if error.cause is not None:
            cause = f"{type(error.cause).__name__}: {error.cause}"
            err_console.print(f"[dim]caused by {escape(cause)}[/dim]")
    raise typer.Exit(code=1)


def print_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


def print_table(rows: list[dict[str, Any]], *, title: str = "") -> None:
    """Render a list of flat dicts as a rich table."""
    if not rows:
        console.print("[dim]No items.[/dim]")
        return

    table = Table(title=title or None, show_lines=False)
    for key in rows[0]:
        table.add_column(key.replace("_", " ").title())
    for row in rows:
        table.add_row(*(str(v) if v is not None else "-" for v in row.values()))
    console.print(table)
