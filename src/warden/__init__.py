"""
warden - supervisor for one containerized application.

Runs the application container, restores its data with restic on the first
start, backs it up on a schedule, keeps its image up to date, and shuts
everything down cleanly on SIGINT/SIGTERM.

Entry point::

    warden run warden.yaml
"""

__version__ = "0.1.0"
