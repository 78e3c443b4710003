"""
Conda client — named environments and conda-managed packages.

Targets environments by name (``-n``) instead of relying on
``conda activate``, which only works inside an interactive shell.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

from forge_provision.adapters.shell.command import ShellRunner

logger = logging.getLogger(__name__)


class CondaClient:
    """Create and populate conda environments."""

    def __init__(self, shell: ShellRunner, conda: Path):
        self.shell = shell
        self.conda = conda

    def env_names(self) -> set[str]:
        """Names of all environments conda knows about."""
        result = self.shell.run_checked(str(self.conda), ["env", "list"])
        names = set()
        for line in result.stdout.splitlines():
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            names.add(line.split()[0])
        return names

    def env_exists(self, name: str) -> bool:
        return name in self.env_names()

    def create_env(self, name: str, python_version: str) -> None:
        logger.info("Creating conda environment %s (python=%s)", name, python_version)
        self.shell.run_checked(
            str(self.conda),
            ["create", "-y", "-n", name, f"python={python_version}"],
            capture=False,
        )

    def install(self, name: str, packages: Sequence[str]) -> None:
        logger.info("Installing %s via conda into %s", ", ".join(packages), name)
        self.shell.run_checked(
            str(self.conda),
            ["install", "-y", "-n", name, *packages],
            capture=False,
        )
