"""Configuration models for the supervised application.

Provides Pydantic v2 models for the YAML file that describes what warden
runs: the application container, its backup and restore policies, and the
image update schedule.

Example YAML::

    app:
      image: ghcr.io/example/wiki:latest
      volumes: ["/srv/wiki:/data"]
      ports: ["8080:80"]
      environments:
        TZ: Australia/Melbourne

    backup:
      - repo: s3:https://s3.example.com/backups/wiki
        src: /srv/wiki
        interval: daily
        strategy: stop_app
        environments:
          RESTIC_PASSWORD: hunter2

    restore:
      repo: s3:https://s3.example.com/backups/wiki
      dst: /srv/wiki
      strategy: if_missing

    update:
      interval: "0 4 * * 1"

Key Concepts:
    SupervisorConfig: Root model. ``backup`` and ``restore`` accept either a
        single mapping or a list of them and always hold a list.
    AppSpec: How to start the application container.
    BackupPolicy / RestorePolicy: restic repository, path and strategy.
    UpdatePolicy: When to pull a newer image. Defaults to daily.

Architecture Decisions:
    - Frozen models: the configuration is loaded once and never mutated;
      every (re)start of the application reads the same ``AppSpec``.
    - ``extra="forbid"``: a misspelled key fails at startup instead of being
      silently ignored.
    - Loader errors are wrapped in ``ConfigError`` with the file path.

Tags:
    config, pydantic, yaml, backup, restore, update, warden
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Annotated, Any

import yaml
from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PlainSerializer,
    ValidationError,
    field_validator,
)

from warden.core.errors import ConfigError, ErrorContext
from warden.scheduling.interval import DAILY, Interval


def _scalar_to_str(value: Any) -> Any:
    """YAML turns `PORT: 8080` into an int; environment values are strings."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int | float):
        return str(value)
    return value


EnvValue = Annotated[str, BeforeValidator(_scalar_to_str)]

IntervalField = Annotated[
    Interval,
    BeforeValidator(Interval.parse),
    PlainSerializer(str, return_type=str),
]


class NetworkMode(str, Enum):
    """Container network mode."""

    HOST = "host"
    BRIDGE = "bridge"


class BackupStrategy(str, Enum):
    """Whether the application is stopped while a snapshot is taken."""

    STOP_APP = "stop_app"  # Stop, back up, start again
    LIVE = "live"  # Back up while the app keeps running


class BackupFailurePolicy(str, Enum):
    """What a failed backup does to the run."""

    FAIL_FAST = "fail_fast"  # Terminate the supervisor
    RETRY_NEXT = "retry_next"  # Log and try again at the next interval


class RestoreStrategy(str, Enum):
    """When a restore runs at startup."""

    ALWAYS = "always"
    IF_MISSING = "if_missing"  # Only when the destination does not exist


class _Model(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        arbitrary_types_allowed=True,
    )


class AppSpec(_Model):
    """How to run the application container."""

    image: str = Field(..., min_length=1, description="Image reference")
    args: list[str] = Field(default_factory=list, description="Arguments after the image")
    volumes: list[str] = Field(default_factory=list, description="-v mounts")
    ports: list[str] = Field(default_factory=list, description="-p mappings")
    network_mode: NetworkMode | None = Field(default=None, description="--network")
    environments: dict[str, EnvValue] = Field(
        default_factory=dict,
        description="Environment passed into the container",
    )
    cap_add: list[str] = Field(default_factory=list, description="--cap-add capabilities")


class BackupPolicy(_Model):
    """Periodic restic snapshot of one path."""

    repo: str = Field(..., min_length=1, description="restic repository locator")
    src: Path = Field(..., description="Path to back up")
    interval: IntervalField = Field(..., description="hourly, daily, weekly or cron")
    strategy: BackupStrategy = Field(default=BackupStrategy.STOP_APP)
    environments: dict[str, EnvValue] = Field(
        default_factory=dict,
        description="Environment for restic (credentials)",
    )
    on_failure: BackupFailurePolicy = Field(default=BackupFailurePolicy.FAIL_FAST)


class RestorePolicy(_Model):
    """One-off restic restore evaluated before the application first starts."""

    repo: str = Field(..., min_length=1, description="restic repository locator")
    dst: Path = Field(..., description="Restore target directory")
    strategy: RestoreStrategy = Field(default=RestoreStrategy.IF_MISSING)
    snapshot: str = Field(default="latest", min_length=1, description="Snapshot to restore")
    environments: dict[str, EnvValue] = Field(
        default_factory=dict,
        description="Environment for restic (credentials)",
    )


class UpdatePolicy(_Model):
    """When to check for a newer application image."""

    interval: IntervalField = Field(default=DAILY)


class SupervisorConfig(_Model):
    """Root of the configuration file."""

    app: AppSpec
    backup: list[BackupPolicy] = Field(default_factory=list)
    restore: list[RestorePolicy] = Field(default_factory=list)
    update: UpdatePolicy = Field(default_factory=UpdatePolicy)

    @field_validator("backup", "restore", mode="before")
    @classmethod
    def _one_or_many(cls, value: Any) -> Any:
        """Accept a single policy mapping as a one-element list."""
        if value is None:
            return []
        if isinstance(value, dict):
            return [value]
        return value

    @field_validator("update", mode="before")
    @classmethod
    def _default_update(cls, value: Any) -> Any:
        if value is None:
            return {}
        return value

    @classmethod
    def from_yaml(cls, yaml_content: str) -> SupervisorConfig:
        """Parse and validate YAML content.

        Raises:
            ConfigError: If the YAML is malformed or does not match the schema.
        """
        try:
            data = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML: {e}", cause=e) from e

        if not isinstance(data, dict):
            raise ConfigError("Configuration must be a mapping with at least an 'app' section")

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}", cause=e) from e


def load_config(path: str | Path) -> SupervisorConfig:
    """Load and validate the configuration file at ``path``.

    Raises:
        ConfigError: If the file cannot be read or is invalid.
    """
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(
            f"Cannot read configuration file {path}: {e}",
            context=ErrorContext(path=str(path)),
            cause=e,
        ) from e

    try:
        return SupervisorConfig.from_yaml(content)
    except ConfigError as e:
        raise e.with_context(path=str(path))
