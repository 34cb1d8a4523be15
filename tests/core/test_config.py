"""Tests for configuration loading and runtime settings."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from warden.config import (
    BackupFailurePolicy,
    BackupStrategy,
    NetworkMode,
    RestoreStrategy,
    SupervisorConfig,
    load_config,
)
from warden.core.errors import ConfigError, ErrorCategory
from warden.core.settings import WardenSettings
from warden.scheduling import DAILY, HOURLY, CronInterval

FULL_YAML = """
app:
  image: ghcr.io/example/wiki:latest
  args: ["--port", "80"]
  volumes: ["/srv/wiki:/data"]
  ports: ["8080:80"]
  network_mode: host
  cap_add: [NET_ADMIN]
  environments:
    TZ: Australia/Melbourne
    PORT: 8080
    DEBUG: true

backup:
  - repo: s3:https://s3.example.com/backups/wiki
    src: /srv/wiki
    interval: hourly
    strategy: live
    on_failure: retry_next
    environments:
      RESTIC_PASSWORD: hunter2
  - repo: /mnt/backups/db
    src: /srv/db
    interval: "0 3 * * *"

restore:
  repo: s3:https://s3.example.com/backups/wiki
  dst: /srv/wiki
  strategy: always
  snapshot: 4f1a2b3c

update:
  interval: daily
"""


class TestSupervisorConfig:
    """Parsing the YAML configuration."""

    def test_full_config(self):
        config = SupervisorConfig.from_yaml(FULL_YAML)

        assert config.app.image == "ghcr.io/example/wiki:latest"
        assert config.app.network_mode == NetworkMode.HOST
        assert config.app.environments == {
            "TZ": "Australia/Melbourne",
            "PORT": "8080",
            "DEBUG": "true",
        }

        live, nightly = config.backup
        assert live.interval is HOURLY
        assert live.strategy == BackupStrategy.LIVE
        assert live.on_failure == BackupFailurePolicy.RETRY_NEXT
        assert live.src == Path("/srv/wiki")
        assert isinstance(nightly.interval, CronInterval)
        assert nightly.strategy == BackupStrategy.STOP_APP
        assert nightly.on_failure == BackupFailurePolicy.FAIL_FAST

        (restore,) = config.restore
        assert restore.strategy == RestoreStrategy.ALWAYS
        assert restore.snapshot == "4f1a2b3c"
        assert config.update.interval is DAILY

    def test_minimal_config_defaults(self):
        config = SupervisorConfig.from_yaml("app:\n  image: nginx\n")

        assert config.backup == []
        assert config.restore == []
        assert config.update.interval is DAILY
        assert config.app.network_mode is None

    def test_restore_defaults(self):
        config = SupervisorConfig.from_yaml(
            "app: {image: nginx}\nrestore: {repo: /r, dst: /data}\n"
        )
        (restore,) = config.restore
        assert restore.strategy == RestoreStrategy.IF_MISSING
        assert restore.snapshot == "latest"

    def test_null_sections(self):
        config = SupervisorConfig.from_yaml("app: {image: nginx}\nbackup:\nupdate:\n")
        assert config.backup == []
        assert config.update.interval is DAILY

    def test_interval_serializes_as_text(self):
        config = SupervisorConfig.from_yaml(FULL_YAML)
        dumped = config.model_dump(mode="json")
        assert dumped["backup"][1]["interval"] == "0 3 * * *"
        assert dumped["update"]["interval"] == "daily"

    def test_frozen(self):
        config = SupervisorConfig.from_yaml("app: {image: nginx}\n")
        with pytest.raises(ValidationError):
            config.app.image = "other"

    @pytest.mark.parametrize(
        "text, fragment",
        [
            ("app: [unclosed", "Invalid YAML"),
            ("- just\n- a list\n", "must be a mapping"),
            ("", "must be a mapping"),
            ("backup: []\n", "Invalid configuration"),
            ("app: {image: nginx, imgae: typo}\n", "Invalid configuration"),
            ("app: {image: nginx}\nupdate: {interval: fortnightly}\n", "Invalid configuration"),
            ("app: {image: nginx}\nbackup: {repo: r, src: /s, interval: daily, strategy: pause}\n", "Invalid configuration"),
            ("app: {image: ''}\n", "Invalid configuration"),
        ],
    )
    def test_invalid_config(self, text, fragment):
        with pytest.raises(ConfigError) as exc_info:
            SupervisorConfig.from_yaml(text)
        assert fragment in exc_info.value.message
        assert exc_info.value.category == ErrorCategory.CONFIG


class TestLoadConfig:
    """Loading from a file."""

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "warden.yaml"
        path.write_text(FULL_YAML)
        assert load_config(path).app.image == "ghcr.io/example/wiki:latest"

    def test_missing_file(self, tmp_path):
        path = tmp_path / "missing.yaml"
        with pytest.raises(ConfigError) as exc_info:
            load_config(path)
        assert exc_info.value.context.path == str(path)
        assert isinstance(exc_info.value.__cause__, FileNotFoundError)

    def test_invalid_file_carries_path(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("app: {}\n")
        with pytest.raises(ConfigError) as exc_info:
            load_config(str(path))
        assert exc_info.value.context.path == str(path)


class TestWardenSettings:
    """Runtime settings from WARDEN_* environment variables."""

    def test_defaults(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        for name in ("LOG_LEVEL", "LOG_FORMAT", "TIMEZONE", "CONTAINER_RUNTIME", "RESTIC_BINARY", "GRACE_PERIOD_SECONDS"):
            monkeypatch.delenv(f"WARDEN_{name}", raising=False)

        settings = WardenSettings()

        assert settings.log_level == "INFO"
        assert settings.log_format == "console"
        assert settings.timezone == "UTC"
        assert settings.container_runtime == "docker"
        assert settings.restic_binary == "restic"
        assert settings.grace_period_seconds == 5.0

    def test_environment_overrides(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("WARDEN_CONTAINER_RUNTIME", "podman")
        monkeypatch.setenv("WARDEN_GRACE_PERIOD_SECONDS", "2.5")
        monkeypatch.setenv("WARDEN_TIMEZONE", "Australia/Melbourne")

        settings = WardenSettings()

        assert settings.container_runtime == "podman"
        assert settings.grace_period_seconds == 2.5
        assert settings.timezone == "Australia/Melbourne"

    def test_dotenv_file(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("WARDEN_RESTIC_BINARY", raising=False)
        (tmp_path / ".env").write_text("WARDEN_RESTIC_BINARY=/opt/restic\n")

        assert WardenSettings().restic_binary == "/opt/restic"

    def test_invalid_grace_period(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("WARDEN_GRACE_PERIOD_SECONDS", "0")
        with pytest.raises(ValueError):
            WardenSettings()
