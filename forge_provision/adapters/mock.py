"""
Mock shell runner — recording test double for ShellRunner.

Returns success for every command unless a response is scripted for a
matching argument prefix. Every call is recorded so tests can assert on
which external commands ran, in what order, and how often.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from pathlib import Path

from forge_provision.adapters.shell.command import CommandResult, ShellRunner, redacted

Effect = Callable[[CommandResult], None]


class MockShellRunner(ShellRunner):
    """ShellRunner that never starts a process.

    Responses are matched on a prefix of the argument vector. The first
    element may be given as a bare executable name; it then matches any
    path ending in that name. Longer prefixes win; among equal lengths
    the most recently scripted response wins.
    """

    def __init__(
        self,
        base_env: Mapping[str, str] | None = None,
        available: Iterable[str] | None = None,
    ):
        super().__init__(base_env=base_env)
        self._available = set(available) if available is not None else None
        self._unavailable: set[str] = set()
        self._responses: list[tuple[tuple[str, ...], CommandResult, Effect | None]] = []
        self._call_log: list[CommandResult] = []

    @property
    def call_log(self) -> list[CommandResult]:
        """Every command this mock has received, in order."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def calls(self, *prefix: str) -> list[CommandResult]:
        """Recorded calls whose argument vector starts with ``prefix``."""
        return [c for c in self._call_log if _matches(prefix, c.command)]

    def set_response(
        self,
        *prefix: str,
        stdout: str = "",
        stderr: str = "",
        returncode: int = 0,
        effect: Effect | None = None,
    ) -> None:
        """Script the result for commands starting with ``prefix``.

        ``effect`` runs on each matching call, e.g. to create the files a
        real command would have produced.
        """
        template = CommandResult(
            command=list(prefix),
            returncode=returncode,
            stdout=stdout,
            stderr=stderr,
        )
        self._responses.append((tuple(prefix), template, effect))

    def set_failure(self, *prefix: str, stderr: str = "Mock failure", returncode: int = 1) -> None:
        """Make commands starting with ``prefix`` exit non-zero."""
        self.set_response(*prefix, stderr=stderr, returncode=returncode)

    def set_available(self, *tools: str) -> None:
        """Declare executables ``which`` can find."""
        self._unavailable.difference_update(tools)
        if self._available is not None:
            self._available.update(tools)

    def set_unavailable(self, *tools: str) -> None:
        """Declare executables ``which`` cannot find."""
        self._unavailable.update(tools)

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
        argv = [str(command), *(str(a) for a in args)]
        result = CommandResult(
            command=redacted(argv, redact),
            cwd=str(cwd) if cwd is not None else None,
            env_overrides={**self.base_env, **(env or {})},
        )

        match = self._lookup(argv)
        if match is not None:
            template, effect = match
            result.returncode = template.returncode
            result.stdout = template.stdout
            result.stderr = template.stderr
            if effect is not None:
                effect(result)

        self._call_log.append(result)
        return result

    def which(self, tool: str, env: Mapping[str, str] | None = None) -> str | None:
        if tool in self._unavailable:
            return None
        if self._available is None or tool in self._available:
            return f"/usr/bin/{tool}"
        return None

    def reset(self) -> None:
        """Clear call log and scripted responses."""
        self._call_log.clear()
        self._responses.clear()

    def _lookup(self, argv: list[str]) -> tuple[CommandResult, Effect | None] | None:
        best: tuple[CommandResult, Effect | None] | None = None
        best_len = -1
        for prefix, template, effect in self._responses:
            if _matches(prefix, argv) and len(prefix) >= best_len:
                best = (template, effect)
                best_len = len(prefix)
        return best


def _matches(prefix: Sequence[str], argv: Sequence[str]) -> bool:
    if len(prefix) > len(argv):
        return False
    if not prefix:
        return True
    head = prefix[0]
    if head != argv[0] and Path(argv[0]).name != head:
        return False
    return list(prefix[1:]) == list(argv[1 : len(prefix)])
