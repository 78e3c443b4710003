"""
Step runner — ordered execution with stop-on-first-failure.

Steps run strictly in declaration order. The first failure is recorded
and nothing after it runs, because later steps assume earlier ones
reached their goal. There is no rollback: every step re-derives its own
state, so re-running the whole sequence resumes where it stopped.

Flow:
    step → action() → outcome → (failed? stop) → next step
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field

from forge_provision.core.errors import ProvisionError
from forge_provision.core.models.step import (
    ProvisioningStep,
    Skip,
    StepOutcome,
    StepStatus,
)

logger = logging.getLogger(__name__)

_MARKERS = {
    StepStatus.SUCCEEDED: "✓",
    StepStatus.SKIPPED: "⊘",
    StepStatus.FAILED: "✗",
}


@dataclass
class RunReport:
    """Ordered outcomes of one run. Steps after a failure have none."""

    outcomes: list[StepOutcome] = field(default_factory=list)
    planned: int = 0

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.status == StepStatus.SUCCEEDED)

    @property
    def skipped(self) -> int:
        return sum(1 for o in self.outcomes if o.status == StepStatus.SKIPPED)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.failed)

    @property
    def not_run(self) -> int:
        return self.planned - self.total

    @property
    def ok(self) -> bool:
        return self.failed == 0

    @property
    def failed_step(self) -> StepOutcome | None:
        return next((o for o in self.outcomes if o.failed), None)

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    def outcome(self, step: str) -> StepOutcome | None:
        return next((o for o in self.outcomes if o.step == step), None)

    def to_dict(self) -> dict:
        return {
            "status": "ok" if self.ok else "failed",
            "planned": self.planned,
            "succeeded": self.succeeded,
            "skipped": self.skipped,
            "failed": self.failed,
            "not_run": self.not_run,
            "outcomes": [o.model_dump(mode="json") for o in self.outcomes],
        }


class StepRunner:
    """Run provisioning steps in order, stopping at the first failure."""

    def run(self, steps: Sequence[ProvisioningStep]) -> RunReport:
        report = RunReport(planned=len(steps))

        for step in steps:
            outcome = self.run_step(step)
            report.outcomes.append(outcome)
            logger.info("%s %s → %s", _MARKERS[outcome.status], step.name, outcome.status.value)

            if outcome.failed:
                logger.error("Step '%s' failed: %s", step.name, outcome.error)
                remaining = len(steps) - report.total
                if remaining:
                    logger.error("Stopping; %d later step(s) not run", remaining)
                break

        return report

    def run_step(self, step: ProvisioningStep) -> StepOutcome:
        """Run one step and translate its result into an outcome."""
        logger.info("── %s", step.description or step.name)
        start = time.monotonic()

        def elapsed() -> int:
            return int((time.monotonic() - start) * 1000)

        try:
            result = step.action()
        except ProvisionError as e:
            return StepOutcome.failure(step.name, str(e), duration_ms=elapsed())
        except KeyboardInterrupt:
            return StepOutcome.failure(step.name, "interrupted", duration_ms=elapsed())
        except Exception as e:
            logger.exception("Step '%s' raised unexpectedly", step.name)
            return StepOutcome.failure(step.name, f"Unexpected error: {e}", duration_ms=elapsed())

        if isinstance(result, Skip):
            return StepOutcome.skip(step.name, result.reason, duration_ms=elapsed())
        return StepOutcome.success(step.name, result or "", duration_ms=elapsed())
