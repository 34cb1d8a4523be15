"""Restore, backup and update workflows run by the supervisor."""

from warden.workflows.backup import run_backup
from warden.workflows.restore import needs_restore, restore_all
from warden.workflows.update import run_update

__all__ = ["needs_restore", "restore_all", "run_backup", "run_update"]
