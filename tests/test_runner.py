"""
Tests for the step runner and run report.
"""

import logging
from pathlib import Path

from forge_provision.adapters.shell.command import CommandResult
from forge_provision.core.engine.runner import RunReport, StepRunner
from forge_provision.core.errors import CommandError, ProvisionError
from forge_provision.core.models.step import ProvisioningStep, Skip, StepOutcome, StepStatus


def _touch(path: Path):
    def action():
        path.write_text("done")
        return f"wrote {path.name}"

    return action


def _fail(message: str):
    def action():
        raise ProvisionError(message)

    return action


# ── Ordering and stop-on-failure ─────────────────────────────────────


class TestStopOnFirstFailure:
    def test_later_steps_do_not_run(self, tmp_path: Path):
        steps = [
            ProvisioningStep("S1", _touch(tmp_path / "s1")),
            ProvisioningStep("S2", _fail("boom")),
            ProvisioningStep("S3", _touch(tmp_path / "s3")),
        ]

        report = StepRunner().run(steps)

        assert [o.step for o in report.outcomes] == ["S1", "S2"]
        assert [o.status for o in report.outcomes] == [StepStatus.SUCCEEDED, StepStatus.FAILED]
        assert (tmp_path / "s1").exists()
        assert not (tmp_path / "s3").exists()
        assert report.exit_code == 1
        assert report.not_run == 1
        assert report.failed_step.step == "S2"
        assert report.failed_step.error == "boom"

    def test_all_steps_run_in_order(self):
        seen: list[str] = []
        steps = [ProvisioningStep(n, lambda n=n: seen.append(n)) for n in ("a", "b", "c")]

        report = StepRunner().run(steps)

        assert seen == ["a", "b", "c"]
        assert report.ok
        assert report.exit_code == 0
        assert report.succeeded == 3
        assert report.not_run == 0

    def test_empty_plan(self):
        report = StepRunner().run([])
        assert report.ok
        assert report.total == 0

    def test_failure_is_logged_with_remaining_count(self, caplog):
        steps = [
            ProvisioningStep("first", _fail("nope")),
            ProvisioningStep("second", lambda: None),
            ProvisioningStep("third", lambda: None),
        ]
        with caplog.at_level(logging.INFO):
            StepRunner().run(steps)

        assert "Step 'first' failed: nope" in caplog.text
        assert "2 later step(s) not run" in caplog.text


# ── Result translation ───────────────────────────────────────────────


class TestStepOutcomes:
    def test_skip_result(self):
        step = ProvisioningStep("miniforge", lambda: Skip("already installed"))
        outcome = StepRunner().run_step(step)
        assert outcome.status == StepStatus.SKIPPED
        assert outcome.detail == "already installed"
        assert outcome.ok

    def test_skip_does_not_stop_the_run(self):
        steps = [
            ProvisioningStep("a", lambda: Skip("present")),
            ProvisioningStep("b", lambda: "did it"),
        ]
        report = StepRunner().run(steps)
        assert report.skipped == 1
        assert report.succeeded == 1
        assert report.outcome("b").detail == "did it"

    def test_none_result_is_success(self):
        outcome = StepRunner().run_step(ProvisioningStep("quiet", lambda: None))
        assert outcome.status == StepStatus.SUCCEEDED
        assert outcome.detail == ""

    def test_command_error_message(self):
        result = CommandResult(command=["git", "fetch", "origin"], returncode=128, stderr="fatal: no remote\n")

        def action():
            raise CommandError(result)

        outcome = StepRunner().run_step(ProvisioningStep("vllm", action))
        assert outcome.failed
        assert "git fetch origin" in outcome.error
        assert "128" in outcome.error
        assert "fatal: no remote" in outcome.error

    def test_unexpected_exception_is_contained(self):
        def action():
            raise ZeroDivisionError("division by zero")

        outcome = StepRunner().run_step(ProvisioningStep("oops", action))
        assert outcome.failed
        assert outcome.error == "Unexpected error: division by zero"

    def test_interrupt_becomes_failure(self, tmp_path: Path):
        def action():
            raise KeyboardInterrupt

        steps = [
            ProvisioningStep("long", action),
            ProvisioningStep("after", _touch(tmp_path / "after")),
        ]
        report = StepRunner().run(steps)

        assert report.outcome("long").error == "interrupted"
        assert report.outcome("after") is None
        assert not (tmp_path / "after").exists()

    def test_duration_recorded(self):
        outcome = StepRunner().run_step(ProvisioningStep("fast", lambda: None))
        assert outcome.duration_ms >= 0
        assert outcome.started_at


# ── Report ───────────────────────────────────────────────────────────


class TestRunReport:
    def test_to_dict(self):
        report = RunReport(
            outcomes=[
                StepOutcome.success("a", "done"),
                StepOutcome.skip("b", "present"),
                StepOutcome.failure("c", "broken"),
            ],
            planned=5,
        )
        data = report.to_dict()

        assert data["status"] == "failed"
        assert data["planned"] == 5
        assert (data["succeeded"], data["skipped"], data["failed"], data["not_run"]) == (1, 1, 1, 2)
        assert [o["status"] for o in data["outcomes"]] == ["succeeded", "skipped", "failed"]
        assert data["outcomes"][2]["error"] == "broken"

    def test_ok_report(self):
        report = RunReport(outcomes=[StepOutcome.skip("a")], planned=1)
        assert report.to_dict()["status"] == "ok"
        assert report.failed_step is None
        assert report.exit_code == 0
