"""
Step runner — executes an ordered list of steps against one context.

For each step:

    repeatable      → run
    check() true    → skipped   (or: ledger says completed, when no check)
    otherwise       → run the action
        ok          → success (+ warning), ledger updated
        raises      → failed; required → stop and raise WorkflowError
                              optional → log a warning and continue

Every result goes to the execution log and to the ``on_result`` callback.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from pathlib import Path

from src.core.context import WorkflowContext
from src.core.errors import ProvisionError, WorkflowError
from src.core.models.step import ExecutionResult, Step, StepStatus
from src.core.persistence.execution_log import ExecutionLog
from src.core.persistence.step_ledger import StepLedger

logger = logging.getLogger(__name__)

# Failures a step may raise; anything else is a bug and propagates.
# UnicodeError covers host files that are not valid UTF-8.
STEP_ERRORS = (ProvisionError, OSError, UnicodeError)


class StepRunner:
    """Run steps in order, recording one ExecutionResult per step.

    Args:
        ledger: Completion record for steps without a ``check``.
        log: Execution log receiving every result.
        on_result: Called with each result as soon as it is recorded.
    """

    def __init__(
        self,
        ledger: StepLedger | None = None,
        log: ExecutionLog | None = None,
        on_result: Callable[[ExecutionResult], None] | None = None,
    ):
        self._ledger = ledger
        self._log = log
        self._on_result = on_result
        self._results: list[ExecutionResult] = []
        self._last_error: BaseException | None = None

    @property
    def results(self) -> list[ExecutionResult]:
        """Every result recorded by this runner, across all ``run`` calls."""
        return list(self._results)

    @property
    def log_path(self) -> Path | None:
        return self._log.path if self._log else None

    def run(self, steps: Sequence[Step], ctx: WorkflowContext) -> list[ExecutionResult]:
        """Execute ``steps`` in order.

        Returns:
            Results of this call, one per step.

        Raises:
            ValueError: Two steps share a name (nothing is run).
            WorkflowError: A required step failed.
        """
        names = [step.name for step in steps]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"duplicate step names: {', '.join(duplicates)}")

        batch: list[ExecutionResult] = []
        for step in steps:
            result = self._run_one(step, ctx)
            batch.append(result)
            self.record(result)

            if result.status == StepStatus.FAILED:
                if step.required:
                    raise WorkflowError(
                        step.name,
                        result.error_detail or "failed",
                        cause=self._last_error,
                        log_path=self.log_path,
                        results=self._results,
                    )
                logger.warning("Optional step %s failed: %s", step.name, result.error_detail)
        return batch

    def _is_done(self, step: Step, ctx: WorkflowContext) -> bool:
        if step.repeatable:
            return False
        if step.check is not None:
            return bool(step.check(ctx))
        return self._ledger is not None and self._ledger.is_completed(step.name)

    def _run_one(self, step: Step, ctx: WorkflowContext) -> ExecutionResult:
        self._last_error = None
        start = time.monotonic()
        try:
            if self._is_done(step, ctx):
                logger.info("Step %s: already done", step.name)
                return ExecutionResult(step_name=step.name, status=StepStatus.SKIPPED)

            logger.info("Step %s: running", step.name)
            warning = step.action(ctx)
        except STEP_ERRORS as e:
            self._last_error = e
            logger.error("Step %s failed: %s", step.name, e)
            return ExecutionResult(
                step_name=step.name,
                status=StepStatus.FAILED,
                error_detail=str(e),
                duration_ms=int((time.monotonic() - start) * 1000),
            )

        if step.check is None and not step.repeatable and self._ledger is not None:
            self._ledger.mark_completed(step.name)
        if warning:
            logger.warning("Step %s: %s", step.name, warning)
        return ExecutionResult(
            step_name=step.name,
            status=StepStatus.SUCCESS,
            warning=warning or None,
            duration_ms=int((time.monotonic() - start) * 1000),
        )

    def record(self, result: ExecutionResult) -> None:
        """Append a result (also used for checks run outside a step list)."""
        self._results.append(result)
        if self._log is not None:
            self._log.record(result)
        if self._on_result is not None:
            self._on_result(result)
