"""Allow ``python -m warden``."""

from warden.cli.app import app

app(prog_name="warden")
