"""
CLI utility helpers - output formatting and schedule summaries.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.table import Table

from warden.config import RestoreStrategy, SupervisorConfig
from warden.core.errors import WardenError

console = Console()
err_console = Console(stderr=True)


# ── Schedule summary ─────────────────────────────────────────────────────


def schedule_rows(config: SupervisorConfig, now: datetime) -> list[dict[str, Any]]:
    """One row per configured policy with its next due time from ``now``.

    Backups are computed as if no snapshot existed yet; restores run at
    startup only.
    """
    rows: list[dict[str, Any]] = []

    for policy in config.restore:
        skipped = policy.strategy == RestoreStrategy.IF_MISSING and policy.dst.exists()
        rows.append({
            "kind": "restore",
            "target": str(policy.dst),
            "interval": "startup",
            "strategy": policy.strategy.value,
            "next_due": "skipped (destination exists)" if skipped else "startup",
        })

    for policy in config.backup:
        rows.append({
            "kind": "backup",
            "target": str(policy.src),
            "interval": str(policy.interval),
            "strategy": f"{policy.strategy.value}, {policy.on_failure.value}",
            "next_due": _due(policy.interval.next(None, now), now),
        })

    rows.append({
        "kind": "update",
        "target": config.app.image,
        "interval": str(config.update.interval),
        "strategy": "restart on new image",
        "next_due": _due(config.update.interval.next(None, now), now),
    })
    return rows


def _due(delay, now: datetime) -> str:
    if delay is None:
        return "never"
    return (now + delay).isoformat(timespec="seconds")


# ── Output helpers ───────────────────────────────────────────────────────


def output_rows(rows: list[dict[str, Any]], *, as_json: bool = False, title: str = "") -> None:
    """Render rows as a Rich table, or as JSON."""
    if as_json:
        console.print_json(json.dumps(rows, default=str))
        return

    if not rows:
        console.print("[dim]No items.[/dim]")
        return

    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in rows[0]:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*(str(v) for v in row.values()))
    console.print(table)


def fail(error: WardenError) -> NoReturn:
    """Print ``error`` and exit with status 1."""
    err_console.print(f"[bold red]Error[/bold red] ({error.category.value}): {error.message}")
    raise typer.Exit(code=1) from error
