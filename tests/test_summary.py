"""
Tests for terminal progress and summary output.
"""

from pathlib import Path

from src.core.context import WorkflowContext, WorkflowState
from src.core.engine.orchestrator import WorkflowOutcome
from src.core.errors import WorkflowError
from src.core.models.step import ExecutionResult, StepStatus
from src.core.observability.logging_config import MASK, register_secret
from src.ui.cli.summary import show_outcome, show_result

SECRET = "hunter2-db-pw"


class TestProgress:
    def test_failed_step_line_redacted(self, capsys):
        register_secret(SECRET)
        show_result(ExecutionResult(
            step_name="provision-database",
            status=StepStatus.FAILED,
            error_detail=f"mysql rejected {SECRET}",
            warning=f"retried with {SECRET}",
        ))
        out = capsys.readouterr().out
        assert SECRET not in out
        assert f"✗ provision-database: mysql rejected {MASK}" in out
        assert f"⚠ retried with {MASK}" in out

    def test_skipped_step(self, capsys):
        show_result(ExecutionResult(step_name="download-release", status=StepStatus.SKIPPED))
        assert "⊘ download-release (already done)" in capsys.readouterr().out


class TestOutcome:
    def _aborted(self, message: str) -> WorkflowOutcome:
        ctx = WorkflowContext(target_directory=Path("/var/www/paymenter"), log_path=Path("/tmp/install.log"))
        ctx.transition(WorkflowState.ABORTED)
        return WorkflowOutcome(
            flow="install",
            state=ctx.state,
            context=ctx,
            results=[ExecutionResult(step_name="provision-database", status=StepStatus.FAILED, error_detail=message)],
            error=WorkflowError("provision-database", message),
        )

    def test_abort_banner_redacted(self, capsys):
        register_secret(SECRET)
        show_outcome(self._aborted(f"access denied for {SECRET}"), "Paymenter")
        err = capsys.readouterr().err
        assert SECRET not in err
        assert "aborted at step 'provision-database'" in err
        assert f"access denied for {MASK}" in err
        assert "/tmp/install.log" in err

    def test_completed_banner(self, capsys):
        ctx = WorkflowContext(target_directory=Path("/var/www/paymenter"), domain_name="panel.example.com")
        ctx.final_url = "http://panel.example.com"
        ctx.transition(WorkflowState.COMPLETED)
        show_outcome(WorkflowOutcome(flow="upgrade", state=ctx.state, context=ctx), "Paymenter")
        out = capsys.readouterr().out
        assert "Paymenter upgrade completed!" in out
