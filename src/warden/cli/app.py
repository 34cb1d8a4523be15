"""
Root Typer application for the warden CLI.

``warden run`` supervises the application until it exits or the process is
asked to stop; ``warden check`` validates a configuration file and shows
when each policy will next fire.
"""

from __future__ import annotations

import asyncio
from importlib.metadata import PackageNotFoundError, version as pkg_version
from pathlib import Path

import typer
from dotenv import find_dotenv, load_dotenv
from pydantic import ValidationError

from warden import __version__
from warden.cli.utils import err_console, fail, output_rows, schedule_rows
from warden.config import SupervisorConfig, load_config
from warden.core.errors import ConfigError, ShutdownRequested, WardenError
from warden.core.settings import WardenSettings
from warden.core.timestamps import resolve_timezone, utc_now
from warden.execution.shutdown import (
    ShutdownCoordinator,
    install_signal_handlers,
    remove_signal_handlers,
)
from warden.logging import configure_logging, get_logger
from warden.supervisor import Supervisor
from warden.tools import Toolbox

logger = get_logger(__name__)

app = typer.Typer(
    name="warden",
    help="warden - supervise one containerized app with scheduled backups and updates.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        try:
            v = pkg_version("warden")
        except PackageNotFoundError:
            v = __version__
        typer.echo(f"warden {v}")
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
    """warden CLI - run and inspect an application supervisor."""


# ── Helpers ──────────────────────────────────────────────────────────────


def _load_settings() -> WardenSettings:
    try:
        return WardenSettings()
    except ValidationError as exc:
        fail(ConfigError(f"Invalid WARDEN_* settings: {exc}", cause=exc))


def _load(config_path: Path) -> SupervisorConfig:
    try:
        return load_config(config_path)
    except ConfigError as exc:
        fail(exc)


async def _supervise(config: SupervisorConfig, tools: Toolbox, timezone) -> int:
    shutdown = ShutdownCoordinator()
    installed = install_signal_handlers(shutdown)
    try:
        status = await Supervisor(config, tools, shutdown, timezone=timezone).run()
    except ShutdownRequested as exc:
        logger.info("warden.shutdown", reason=shutdown.reason or exc.message)
        return 1
    except WardenError as exc:
        logger.error("warden.failed", **exc.to_dict())
        return 1
    finally:
        remove_signal_handlers(installed)

    logger.info("warden.app_exited", status=str(status), exit_code=status.exit_code)
    return status.exit_code


# ── Commands ─────────────────────────────────────────────────────────────


@app.command("run")
def run_command(
    config_path: Path = typer.Argument(..., help="Supervisor YAML configuration"),
    timezone: str | None = typer.Option(
        None, "--timezone", "-z", help="Zone for daily/weekly schedules (default WARDEN_TIMEZONE or UTC)"
    ),
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
    log_format: str | None = typer.Option(None, "--log-format"),
    env_file: Path | None = typer.Option(
        None, "--env-file", help="dotenv file loaded into the environment (default ./.env)"
    ),
) -> None:
    """Run the supervisor until the app exits or SIGINT/SIGTERM arrives."""
    load_dotenv(env_file or find_dotenv(usecwd=True))

    settings = _load_settings()
    configure_logging(
        level=(log_level or settings.log_level).upper(),
        format=(log_format or settings.log_format).lower(),
        force=True,
    )

    config = _load(config_path)
    zone = resolve_timezone(timezone or settings.timezone)
    tools = Toolbox.from_settings(settings)

    logger.info("warden.starting", config=str(config_path), image=config.app.image, timezone=str(zone))
    exit_code = asyncio.run(_supervise(config, tools, zone))
    raise typer.Exit(code=exit_code)


@app.command("check")
def check_command(
    config_path: Path = typer.Argument(..., help="Supervisor YAML configuration"),
    timezone: str | None = typer.Option(None, "--timezone", "-z"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Validate a configuration and show when each policy fires next."""
    settings = _load_settings()
    config = _load(config_path)
    zone = resolve_timezone(timezone or settings.timezone)

    rows = schedule_rows(config, utc_now().astimezone(zone))
    if not json_out:
        err_console.print(f"[green]Configuration OK[/green]: {config_path}")
    output_rows(rows, as_json=json_out, title=f"Policies ({zone})")
