"""
Error taxonomy — every fatal condition a provisioning step can hit.

Adapters and services raise these. The step runner is the only place
that catches them: it turns each into a failed StepOutcome and stops
the run. Nothing here is retried or rolled back.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

    from forge_provision.adapters.shell.command import CommandResult


class ProvisionError(Exception):
    """Base class for all provisioning failures."""


class EnvironmentProblem(ProvisionError):
    """A required tool, account, group or privilege is missing."""


class CommandError(ProvisionError):
    """An external tool exited with a non-zero status."""

    def __init__(self, result: CommandResult, message: str | None = None):
        self.result = result
        super().__init__(message or result.describe())


class ReconciliationConflict(ProvisionError):
    """A local clone cannot reach its reference without discarding history."""


class PatchError(ProvisionError):
    """A source patch could not be applied safely."""


class PatchPreconditionError(PatchError):
    """The patch target exists but lacks the content the patch anchors on."""

    def __init__(self, path: Path, anchor: str):
        self.path = path
        self.anchor = anchor
        super().__init__(f"{path}: {anchor}")
