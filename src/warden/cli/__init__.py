"""
CLI layer for warden.

Provides a Typer application that loads settings and configuration, sets up
logging, and hands over to ``warden.supervisor``. This package handles only
terminal transport: argument parsing, coloured output, and exit codes.

Entry point::

    warden --help
"""

from warden.cli.app import app

__all__ = ["app"]
