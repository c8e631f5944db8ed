"""
Root Typer application for the ``ysql-upgrade`` CLI.

Commands
--------
run         Upgrade every database to the latest migration
migrations  List the migration scripts that were discovered
status      Show each database's version without changing anything
"""

from __future__ import annotations

from pathlib import Path

import typer
from typer import Typer

from ysql_upgrade.cli.utils import console, fail, load_settings, print_json, print_table
from ysql_upgrade.core.errors import UpgradeError
from ysql_upgrade.migrations.scheduler import UpgradeScheduler

app = Typer(
    name="ysql-upgrade",
    help="Bring every database of a YSQL cluster to the latest catalog migration.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Shared options
HostOpt = typer.Option(None, "--host", help="YSQL proxy host [env: YSQL_UPGRADE_PROXY_HOST]")
PortOpt = typer.Option(None, "--port", "-p", help="YSQL proxy port")
AuthKeyOpt = typer.Option(None, "--auth-key", help="YSQL auth key", envvar="YSQL_UPGRADE_AUTH_KEY")
HeartbeatOpt = typer.Option(None, "--heartbeat-ms", help="Cluster heartbeat interval (ms)")
MigrationsDirOpt = typer.Option(None, "--migrations-dir", "-m", help="Directory of V*__*__*.sql scripts")
LogLevelOpt = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING, ERROR")
JsonOpt = typer.Option(False, "--json", help="JSON output")


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from ysql_upgrade import __version__

        typer.echo(f"ysql-upgrade {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """ysql-upgrade CLI: apply catalog migrations across a cluster."""


# ── Commands ─────────────────────────────────────────────────────────────


@app.command()
def run(
    host: str | None = HostOpt,
    port: int | None = PortOpt,
    auth_key: str | None = AuthKeyOpt,
    heartbeat_ms: int | None = HeartbeatOpt,
    migrations_dir: Path | None = MigrationsDirOpt,
    log_level: str | None = LogLevelOpt,
    json_out: bool = JsonOpt,
) -> None:
    """Upgrade every database to the latest migration version."""
    settings = load_settings(
        host=host,
        port=port,
        auth_key=auth_key,
        heartbeat_ms=heartbeat_ms,
        migrations_dir=migrations_dir,
        log_level=log_level,
        as_json=json_out,
    )
    try:
        result = UpgradeScheduler(settings).run_upgrade()
    except UpgradeError as exc:
        fail(exc, as_json=json_out)

    if json_out:
        print_json(
            {
                "success": True,
                "latest_version": str(result.latest_version),
                "migrations_applied": result.migrations_applied,
                "applied": [
                    {"database": a.database, "version": str(a.version), "migration": a.filename}
                    for a in result.applied
                ],
                "final_versions": {name: str(v) for name, v in result.final_versions.items()},
                "consistency_risks": [
                    {"database": r.database, "version": str(r.version), "message": r.message}
                    for r in result.risks
                ],
            }
        )
        return

    if result.applied:
        print_table(
            [
                {"database": a.database, "version": str(a.version), "migration": a.filename}
                for a in result.applied
            ],
            title="Applied Migrations",
        )
    for risk in result.risks:
        console.print(f"[yellow]Warning[/yellow] ({risk.database} → {risk.version}): {risk.message}")
    console.print(
        f"[green]✓[/green] {len(result.final_versions)} database(s) at "
        f"{result.latest_version} ({result.migrations_applied} migration(s) applied)"
    )


@app.command()
def migrations(
    migrations_dir: Path | None = MigrationsDirOpt,
    json_out: bool = JsonOpt,
) -> None:
    """List the discovered migration scripts in version order."""
    settings = load_settings(migrations_dir=migrations_dir, as_json=json_out)
    try:
        registry = UpgradeScheduler(settings).load_registry()
    except UpgradeError as exc:
        fail(exc, as_json=json_out)

    rows = [{"version": str(s.version), "migration": s.filename} for s in registry]
    if json_out:
        print_json({"latest_version": str(registry.latest_version), "migrations": rows})
        return
    print_table(rows, title=f"Migrations in {registry.directory}")
    console.print(f"Latest version: [bold]{registry.latest_version}[/bold]")


@app.command()
def status(
    host: str | None = HostOpt,
    port: int | None = PortOpt,
    auth_key: str | None = AuthKeyOpt,
    migrations_dir: Path | None = MigrationsDirOpt,
    json_out: bool = JsonOpt,
) -> None:
    """Show each database's version and pending migration count (read-only)."""
    settings = load_settings(
        host=host,
        port=port,
        auth_key=auth_key,
        migrations_dir=migrations_dir,
        as_json=json_out,
    )
    try:
        statuses = UpgradeScheduler(settings).status()
    except UpgradeError as exc:
        fail(exc, as_json=json_out)

    rows = [
        {
            "database": s.name,
            "version": str(s.version),
            "tracked": "yes" if s.tracked else "untracked",
            "pending": s.pending,
        }
        for s in statuses
    ]
    if json_out:
        print_json(rows)
        return
    print_table(rows, title="Database Versions")
