"""
Pip / uv installer — Python packages into one specific interpreter.

Every call names the interpreter explicitly (``<env>/bin/python -m pip``,
``uv pip --python <env>/bin/python``) so packages land in the conda
environment no matter which Python the provisioner itself runs on.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path

from forge_provision.adapters.shell.command import CommandResult, ShellRunner

logger = logging.getLogger(__name__)


class PipInstaller:
    """Install packages into the interpreter at ``python``.

    Args:
        shell: Runner for the pip/uv processes.
        python: Target interpreter.
        env: Overrides applied to every call (activated-environment
            PATH, CONDA_PREFIX).
        stream: Let installer output go straight to the terminal.
    """

    def __init__(
        self,
        shell: ShellRunner,
        python: Path,
        env: Mapping[str, str] | None = None,
        stream: bool = True,
    ):
        self.shell = shell
        self.python = python
        self.env = dict(env or {})
        self.stream = stream

    def install(
        self,
        *args: str,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        """``python -m pip install <args>``; raises CommandError on failure."""
        return self.shell.run_checked(
            str(self.python),
            ["-m", "pip", "install", *args],
            cwd=cwd,
            env={**self.env, **(env or {})},
            capture=not self.stream,
        )

    def upgrade(self, *packages: str) -> CommandResult:
        return self.install("-U", *packages)

    def uninstall(self, *packages: str) -> CommandResult:
        """Remove packages; a package that is not installed is not an error."""
        result = self.shell.execute(
            str(self.python),
            ["-m", "pip", "uninstall", "-y", *packages],
            env=self.env,
        )
        if not result.ok:
            logger.info("pip uninstall %s: %s", " ".join(packages), result.describe())
        return result

    def uv_install(
        self,
        *args: str,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        """``uv pip install --python <python> <args>``."""
        return self.shell.run_checked(
            "uv",
            ["pip", "install", "--python", str(self.python), *args],
            cwd=cwd,
            env={**self.env, **(env or {})},
            capture=not self.stream,
        )

    def query(self, code: str) -> CommandResult:
        """Run a snippet in the target interpreter, capturing its output."""
        return self.shell.execute(str(self.python), ["-c", code], env=self.env)
