"""Command descriptions for supervised child processes.

A ``CommandSpec`` is everything needed to spawn one external tool: the
program, its arguments, the environment overlay and a short label used to tag
its log lines. Builders in ``warden.tools`` produce them; ``SupervisedProcess``
consumes them.

Environment values often hold repository credentials, so ``display()`` only
ever renders the argv and the *names* of the overlaid variables.
"""

from __future__ import annotations

import os
import shlex
from collections.abc import Mapping
from dataclasses import dataclass, field


@dataclass(frozen=True)
class CommandSpec:
    """An external command to run under supervision."""

    label: str
    program: str
    args: tuple[str, ...] = ()
    env: Mapping[str, str] = field(default_factory=dict, repr=False)

    @property
    def argv(self) -> list[str]:
        return [self.program, *self.args]

    def build_env(self, base: Mapping[str, str] | None = None) -> dict[str, str]:
        """Merge the overlay over ``base`` (the supervisor's environment by default)."""
        env = dict(os.environ if base is None else base)
        env.update(self.env)
        return env

    def display(self) -> str:
        """Render for logs: argv plus the names of overlaid variables."""
        rendered = shlex.join(self.argv)
        if self.env:
            rendered += f" (env: {', '.join(sorted(self.env))})"
        return rendered

    def __str__(self) -> str:
        return f"{self.label}: {self.display()}"
