"""
Error taxonomy — every failure the provisioner can report.

All errors derive from ``ProvisionError`` and carry a ``kind`` so callers
can branch on the failure class without parsing messages. Messages are
meant for humans and must never contain secret values.

    ProvisionError
    ├── PreflightError   — environment unfit, nothing was mutated
    ├── MutationError    — a system mutation action failed
    ├── ConfigError      — a configuration artifact could not be installed
    └── WorkflowError    — a workflow step failed (wraps one of the above)
"""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.core.models.step import ExecutionResult


class PreflightErrorKind(StrEnum):
    INSUFFICIENT_PRIVILEGE = "insufficient_privilege"
    INSUFFICIENT_DISK_SPACE = "insufficient_disk_space"
    UNSUPPORTED_OS = "unsupported_os"
    DEPENDENCY_UNREACHABLE = "dependency_unreachable"
    ALREADY_RUNNING = "already_running"


class MutationErrorKind(StrEnum):
    PACKAGE_MANAGER_FAILURE = "package_manager_failure"
    SERVICE_ACTIVATION_FAILURE = "service_activation_failure"
    FILE_WRITE_FAILURE = "file_write_failure"
    COMMAND_FAILURE = "command_failure"


class ConfigErrorKind(StrEnum):
    VALIDATION_FAILED = "validation_failed"
    ATOMIC_REPLACE_FAILED = "atomic_replace_failed"
    UNREADABLE = "unreadable"


class WorkflowErrorKind(StrEnum):
    STEP_FAILED = "step_failed"
    NOT_INSTALLED = "not_installed"


class ProvisionError(Exception):
    """Base class for all provisioning failures."""

    def __init__(self, kind: StrEnum, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __str__(self) -> str:
        return self.message


class PreflightError(ProvisionError):
    """The host failed a pre-mutation check."""

    kind: PreflightErrorKind


class MutationError(ProvisionError):
    """A system mutation action returned a failed receipt."""

    kind: MutationErrorKind

    def __init__(self, kind: MutationErrorKind, message: str, action_id: str = ""):
        super().__init__(kind, message)
        self.action_id = action_id


class ConfigError(ProvisionError):
    """A configuration artifact failed validation or replacement."""

    kind: ConfigErrorKind

    def __init__(self, kind: ConfigErrorKind, message: str, path: Path | None = None):
        super().__init__(kind, message)
        self.path = path


class WorkflowError(ProvisionError):
    """A workflow stopped on a failed step.

    Carries the exact step name, the underlying cause (if any), the
    location of the execution log and the results recorded so far.
    """

    kind: WorkflowErrorKind

    def __init__(
        self,
        step_name: str,
        message: str,
        *,
        kind: WorkflowErrorKind = WorkflowErrorKind.STEP_FAILED,
        cause: BaseException | None = None,
        log_path: Path | None = None,
        results: list[ExecutionResult] | None = None,
    ):
        super().__init__(kind, message)
        self.step_name = step_name
        self.cause = cause
        self.log_path = log_path
        self.results = list(results or [])

    @property
    def diagnostic(self) -> str:
        """One-line description suitable for the terminal."""
        return f"step '{self.step_name}' failed: {self.message}"


class SettingsError(Exception):
    """Raised when the provisioner settings file is invalid or missing."""
