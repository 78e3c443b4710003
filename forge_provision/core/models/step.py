"""
Step and outcome models — the provisioning execution contract.

A ProvisioningStep is a named, zero-argument action. A StepOutcome is
what the runner records after attempting it. Actions report failure by
raising; outcomes never do.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class StepStatus(str, Enum):
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class Skip:
    """Returned by an action whose goal state already holds."""

    reason: str = ""


StepAction = Callable[[], str | Skip | None]


@dataclass(frozen=True)
class ProvisioningStep:
    """A named unit of desired state.

    ``action`` re-derives the current state on every call and only acts
    on the delta. It returns ``None`` or a detail string when it did
    work, ``Skip(reason)`` when there was nothing to do, and raises
    when it cannot reach its goal.
    """

    name: str
    action: StepAction
    description: str = ""


class StepOutcome(BaseModel):
    """Result of running one step."""

    step: str
    status: StepStatus

    started_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    detail: str = ""
    error: str | None = None

    @property
    def ok(self) -> bool:
        """Whether the step left its goal state in place."""
        return self.status != StepStatus.FAILED

    @property
    def failed(self) -> bool:
        return self.status == StepStatus.FAILED

    @classmethod
    def success(cls, step: str, detail: str = "", **kwargs) -> StepOutcome:
        """Create a success outcome."""
        return cls(step=step, status=StepStatus.SUCCEEDED, detail=detail, **kwargs)

    @classmethod
    def skip(cls, step: str, reason: str = "", **kwargs) -> StepOutcome:
        """Create a skip outcome."""
        return cls(step=step, status=StepStatus.SKIPPED, detail=reason, **kwargs)

    @classmethod
    def failure(cls, step: str, error: str, **kwargs) -> StepOutcome:
        """Create a failure outcome."""
        return cls(step=step, status=StepStatus.FAILED, error=error, **kwargs)
