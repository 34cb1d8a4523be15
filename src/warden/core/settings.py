"""Runtime settings for the warden supervisor.

The application configuration (what to run, what to back up) lives in the
YAML file given on the command line. Everything about *how* the supervisor
itself behaves comes from ``WardenSettings``: environment variables with the
``WARDEN_`` prefix, a ``.env`` file, or explicit keyword overrides from the
CLI.

Fields
──────
log_level            : DEBUG | INFO | WARNING | ERROR
log_format           : console | json
timezone             : IANA name used for schedule arithmetic
container_runtime    : docker-compatible CLI (``docker`` or ``podman``)
restic_binary        : restic executable
grace_period_seconds : delay between SIGTERM and SIGKILL for children

Examples:
    >>> settings = WardenSettings(timezone="Australia/Melbourne")
    >>> settings.container_runtime
    'docker'

Tags:
    settings, configuration, pydantic, environment, warden
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class WardenSettings(BaseSettings):
    """Settings shared by every warden command."""

    model_config = SettingsConfigDict(
        env_prefix="WARDEN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Observability ────────────────────────────────────────────
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["console", "json"] = "console"

    # ── Scheduling ───────────────────────────────────────────────
    timezone: str = Field(
        default="UTC",
        description="Timezone for daily/weekly boundaries and cron evaluation",
    )

    # ── External tools ───────────────────────────────────────────
    container_runtime: str = Field(
        default="docker",
        description="Container runtime CLI used to run, pull and inspect images",
    )
    restic_binary: str = Field(
        default="restic",
        description="Backup tool executable",
    )

    # ── Process supervision ──────────────────────────────────────
    grace_period_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Seconds between SIGTERM and SIGKILL when stopping a child",
    )
