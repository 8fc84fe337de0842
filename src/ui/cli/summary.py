"""
Terminal output for workflow progress and the final summary.
"""

from __future__ import annotations

import click

from src.core.context import WorkflowState
from src.core.engine.orchestrator import WorkflowOutcome
from src.core.models.step import ExecutionResult, StepStatus
from src.core.observability.logging_config import redact

_PHASE_TITLES = {
    WorkflowState.PREFLIGHT: "Checking the host",
    WorkflowState.DEPENDENCY_INSTALL: "Installing dependencies",
    WorkflowState.SOURCE_ACQUISITION: "Downloading the application",
    WorkflowState.DATABASE_PROVISION: "Setting up the database",
    WorkflowState.CONFIG_RENDER: "Writing configuration",
    WorkflowState.APPLICATION_BOOTSTRAP: "Bootstrapping the application",
    WorkflowState.SERVICE_ACTIVATION: "Activating services",
    WorkflowState.NETWORK_EXPOSURE: "Configuring the web server",
    WorkflowState.SUMMARY: "Finishing up",
    WorkflowState.VERIFY_INSTALLED: "Checking the existing install",
    WorkflowState.INVOKE_APPLICATION_UPGRADE: "Running the application upgrade",
}


def show_state(state: WorkflowState) -> None:
    title = _PHASE_TITLES.get(state)
    if title:
        click.secho(f"\n▸ {title}", fg="blue", bold=True)


def show_result(result: ExecutionResult) -> None:
    """One line per step as it finishes."""
    if result.status == StepStatus.SUCCESS:
        click.secho(f"  ✓ {result.step_name}", fg="green")
    elif result.status == StepStatus.SKIPPED:
        click.secho(f"  ⊘ {result.step_name} (already done)", fg="bright_black")
    else:
        click.secho(f"  ✗ {result.step_name}: {redact(result.error_detail or '')}", fg="red")
    if result.warning:
        click.secho(f"    ⚠ {redact(result.warning)}", fg="yellow")


def show_outcome(outcome: WorkflowOutcome, display_name: str) -> None:
    """Final banner. Never prints the database password."""
    click.echo()
    if outcome.ok:
        verb = "installation" if outcome.flow == "install" else "upgrade"
        click.secho("=" * 60, fg="green")
        click.secho(f" {display_name} {verb} completed!", fg="green", bold=True)
        click.echo()
        for line in outcome.summary_lines():
            click.echo(f" {line}")
        click.secho("=" * 60, fg="green")
    else:
        error = outcome.error
        step = error.step_name if error else "unknown"
        click.secho(f"✗ {outcome.flow.capitalize()} aborted at step '{step}'", fg="red", bold=True, err=True)
        if error is not None:
            click.secho(f"  {redact(error.message)}", fg="red", err=True)
        if outcome.context.log_path:
            click.echo(f"  Execution log: {outcome.context.log_path}", err=True)
        click.echo("  Fix the problem and re-run: completed steps are skipped.", err=True)

    warnings = outcome.warnings
    if warnings:
        click.echo()
        click.secho(f" Warnings ({len(warnings)}):", fg="yellow", bold=True)
        for line in warnings:
            click.secho(f"   ⚠ {redact(line)}", fg="yellow")
