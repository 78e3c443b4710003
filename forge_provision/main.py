"""
forge-provision — CLI entrypoint.

Usage:
    forge-provision --help
    forge-provision plan
    forge-provision config
    forge-provision run
"""

from __future__ import annotations

import json
import os
import sys

import click
import yaml

from forge_provision import __version__
from forge_provision.core.config.settings import ConfigError, ProvisionConfig
from forge_provision.core.models.step import StepStatus
from forge_provision.core.observability.logging_config import resolve_level, setup_logging

EXIT_CONFIG_ERROR = 2


@click.group()
@click.version_option(version=__version__, prog_name="forge-provision")
@click.option("--verbose", "-v", is_flag=True, help="Log every step and command (default).")
@click.option("--quiet", "-q", is_flag=True, help="Only log errors.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, quiet: bool, debug: bool) -> None:
    """Provision this host for the forge ROCm stack.

    Every setting is read from an environment variable of the same name
    (MINIFORGE_DIR, ENV_NAME, WORKSPACE, VLLM_REF, ...); run
    'forge-provision config' to see the resolved values.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(
        level=resolve_level(debug, verbose, quiet, os.environ.get("FORGE_LOG_LEVEL")),
        log_file=os.environ.get("FORGE_LOG_FILE"),
        log_file_level=os.environ.get("FORGE_LOG_FILE_LEVEL"),
    )

    # ── Configuration (once, from the environment) ──────────────
    try:
        ctx.obj["config"] = ProvisionConfig.from_env(os.environ)
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(EXIT_CONFIG_ERROR)


@cli.command()
@click.pass_context
def plan(ctx: click.Context) -> None:
    """List the provisioning steps in execution order."""
    from forge_provision.adapters.shell.command import ShellRunner
    from forge_provision.core.engine.orchestrator import Orchestrator

    config: ProvisionConfig = ctx.obj["config"]
    orchestrator = Orchestrator(config, ShellRunner(base_env=config.exported_env()))

    click.secho(f"\n📋 {len(orchestrator.steps)} steps", fg="cyan", bold=True)
    for i, step in enumerate(orchestrator.steps, start=1):
        click.echo(f"   {i:>2}. {step.name:<18} {step.description}")
    click.echo()


@cli.command("config")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def show_config(ctx: click.Context, as_json: bool) -> None:
    """Show the resolved configuration (token masked)."""
    config: ProvisionConfig = ctx.obj["config"]
    data = config.to_display_dict()

    if as_json:
        click.echo(json.dumps(data, indent=2))
        return
    click.echo(yaml.safe_dump(data, sort_keys=False), nl=False)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Print the report as JSON.")
@click.option("--yaml", "as_yaml", is_flag=True, help="Print the report as YAML.")
@click.pass_context
def run(ctx: click.Context, as_json: bool, as_yaml: bool) -> None:
    """Run every provisioning step, stopping at the first failure.

    Safe to re-run: each step checks what already holds and only does
    the rest.
    """
    from forge_provision.adapters.shell.command import ShellRunner
    from forge_provision.core.engine.orchestrator import Orchestrator

    config: ProvisionConfig = ctx.obj["config"]
    orchestrator = Orchestrator(config, ShellRunner(base_env=config.exported_env()))
    report = orchestrator.run()

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
        sys.exit(report.exit_code)
    if as_yaml:
        click.echo(yaml.safe_dump(report.to_dict(), sort_keys=False), nl=False)
        sys.exit(report.exit_code)

    click.echo()
    for outcome in report.outcomes:
        timing = f" ({outcome.duration_ms}ms)" if outcome.duration_ms else ""
        if outcome.failed:
            click.secho(f"   ✗ {outcome.step}", fg="red", nl=False)
            click.echo(timing)
            for line in (outcome.error or "").split("\n")[:5]:
                click.echo(f"     │ {line}")
        elif outcome.status == StepStatus.SKIPPED:
            click.secho(f"   ⊘ {outcome.step} ", fg="yellow", nl=False)
            click.echo(f"({outcome.detail})" if outcome.detail else "")
        else:
            click.secho(f"   ✓ {outcome.step}", fg="green", nl=False)
            click.echo(timing)
            if ctx.obj.get("verbose") and outcome.detail:
                click.echo(f"     │ {outcome.detail}")

    for step in orchestrator.steps[report.total:]:
        click.secho(f"   · {step.name} (not run)", dim=True)

    click.echo()
    status_color = "green" if report.ok else "red"
    click.secho(
        f"   Result: {report.succeeded} succeeded, {report.skipped} skipped, "
        f"{report.failed} failed, {report.not_run} not run",
        fg=status_color,
        bold=True,
    )
    click.echo()
    sys.exit(report.exit_code)


if __name__ == "__main__":
    cli()
