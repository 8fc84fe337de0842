"""
Step and ExecutionResult — the unit of a workflow and its outcome.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from src.core.context import WorkflowContext


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class StepStatus(StrEnum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class Step:
    """One named unit of the install or upgrade sequence.

    Attributes:
        name:       Unique within a workflow.
        action:     Performs the mutation. Raises ``ProvisionError`` on
                    failure; may return a warning string.
        check:      Side-effect-free predicate; True means the step is
                    already done and will be skipped. When None, the step
                    ledger decides.
        required:   A failed required step aborts the workflow.
        repeatable: Never skipped (e.g. the application upgrade).
    """

    name: str
    action: Callable[[WorkflowContext], str | None]
    check: Callable[[WorkflowContext], bool] | None = None
    required: bool = True
    repeatable: bool = False


class ExecutionResult(BaseModel):
    """Outcome of one step. Immutable once recorded."""

    model_config = ConfigDict(frozen=True)

    step_name: str
    status: StepStatus
    error_detail: str | None = None
    warning: str | None = None
    duration_ms: int = 0
    recorded_at: str = Field(default_factory=_now_iso)

    @property
    def ok(self) -> bool:
        return self.status != StepStatus.FAILED
