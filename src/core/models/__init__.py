"""
Domain models — Pydantic types for the provisioner.

All models are re-exported here for convenient access:

    from src.core.models import ProcessExecute, Receipt, Step, ConfigArtifact
"""

from src.core.models.action import (
    Action,
    DirectoryCreate,
    FileWrite,
    LinkCreate,
    PackageInstall,
    PathRemove,
    ProcessExecute,
    Receipt,
    Repository,
    ServiceControl,
    ServiceEnable,
)
from src.core.models.artifact import ArtifactKind, ConfigArtifact
from src.core.models.settings import ProvisionSettings
from src.core.models.step import ExecutionResult, Step, StepStatus

__all__ = [
    # action.py
    "Action",
    # artifact.py
    "ArtifactKind",
    "ConfigArtifact",
    "DirectoryCreate",
    # step.py
    "ExecutionResult",
    "FileWrite",
    "LinkCreate",
    "PackageInstall",
    "PathRemove",
    "ProcessExecute",
    # settings.py
    "ProvisionSettings",
    "Receipt",
    "Repository",
    "ServiceControl",
    "ServiceEnable",
    "Step",
    "StepStatus",
]
