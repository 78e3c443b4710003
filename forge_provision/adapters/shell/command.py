"""
Shell runner — the single gateway for external commands.

Every external effect the provisioner has (conda, pip, uv, git, curl,
rustup, sudo, hf) goes through ShellRunner.execute. It runs a command,
waits for it, and reports the exit status. Interpreting a non-zero
status is the caller's job; ``run_checked`` is the shorthand for
callers that treat any failure as fatal.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
import time
from collections.abc import Mapping, Sequence
from pathlib import Path

from pydantic import BaseModel, Field

from forge_provision.core.errors import CommandError

logger = logging.getLogger(__name__)

# Shell convention for "executable not found"
EXIT_NOT_FOUND = 127


class CommandResult(BaseModel):
    """Exit status and captured output of one external command."""

    command: list[str]
    cwd: str | None = None
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0
    env_overrides: dict[str, str] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def signalled(self) -> bool:
        """Whether the process was terminated by a signal."""
        return self.returncode < 0

    @property
    def command_line(self) -> str:
        return shlex.join(self.command)

    def describe(self) -> str:
        """One-line summary suitable for a failure message."""
        if self.signalled:
            status = f"killed by signal {-self.returncode}"
        else:
            status = f"exited with code {self.returncode}"
        message = f"`{self.command_line}` {status}"
        tail = (self.stderr or self.stdout).strip().splitlines()
        if tail:
            message += f": {tail[-1]}"
        return message


class ShellRunner:
    """Run external commands synchronously.

    Args:
        base_env: Variables exported to every child process on top of
            the inherited environment (e.g. accelerator build flags).
    """

    def __init__(
        self,
        base_env: Mapping[str, str] | None = None,
    ):
        self._base_env = dict(base_env or {})

    @property
    def base_env(self) -> dict[str, str]:
        return dict(self._base_env)

    def execute(
        self,
        command: str,
        args: Sequence[str] = (),
        cwd: Path | str | None = None,
        env: Mapping[str, str] | None = None,
        capture: bool = True,
        input: str | None = None,
        redact: Sequence[str] = (),
    ) -> CommandResult:
        """Run ``command`` with ``args`` and wait for it to exit.

        Args:
            command: Executable name or path.
            args: Arguments.
            cwd: Working directory (default: current).
            env: Per-call overrides, applied on top of ``base_env``.
            capture: Capture stdout/stderr. When False the child writes
                straight to the terminal (long builds, interactive login).
            input: Text fed to the child's stdin.
            redact: Secret argument values, shown as ``***`` in logs and
                in the returned result.

        Returns:
            CommandResult. A missing executable yields return code 127;
            nothing is raised for a failing command.
        """
        argv = [str(command), *(str(a) for a in args)]
        shown = redacted(argv, redact)
        overrides = {**self._base_env, **(env or {})}
        cwd_str = str(cwd) if cwd is not None else None

        logger.info("(%s) %s", cwd_str or ".", shlex.join(shown))
        start = time.monotonic()
        try:
            proc = subprocess.run(
                argv,
                cwd=cwd_str,
                env={**os.environ, **overrides},
                capture_output=capture,
                text=True,
                input=input,
            )
        except FileNotFoundError as e:
            if e.filename is not None and str(e.filename) == cwd_str:
                reason = f"{cwd_str}: no such directory"
            else:
                reason = f"{argv[0]}: command not found"
            return CommandResult(
                command=shown,
                cwd=cwd_str,
                returncode=EXIT_NOT_FOUND,
                stderr=reason,
                env_overrides=overrides,
            )

        result = CommandResult(
            command=shown,
            cwd=cwd_str,
            returncode=proc.returncode,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
            duration_ms=int((time.monotonic() - start) * 1000),
            env_overrides=overrides,
        )
        if result.stdout:
            logger.debug("stdout: %s", result.stdout.strip())
        if result.stderr:
            logger.debug("stderr: %s", result.stderr.strip())
        return result

    def run_checked(
        self,
        command: str,
        args: Sequence[str] = (),
        cwd: Path | str | None = None,
        env: Mapping[str, str] | None = None,
        capture: bool = True,
        input: str | None = None,
        redact: Sequence[str] = (),
    ) -> CommandResult:
        """Like execute, but raise CommandError on a non-zero exit."""
        result = self.execute(
            command, args, cwd=cwd, env=env, capture=capture, input=input, redact=redact
        )
        if not result.ok:
            raise CommandError(result)
        return result

    def which(self, tool: str, env: Mapping[str, str] | None = None) -> str | None:
        """Resolve ``tool`` against the PATH children would see."""
        overrides = {**self._base_env, **(env or {})}
        search_path = overrides.get("PATH", os.environ.get("PATH"))
        return shutil.which(tool, path=search_path)


def redacted(argv: list[str], secrets: Sequence[str]) -> list[str]:
    hidden = {s for s in secrets if s}
    return ["***" if a in hidden else a for a in argv]
