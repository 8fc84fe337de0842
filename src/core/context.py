"""
Workflow context — the mutable record threaded through every step.

One context is created per run by the CLI (from the collected answers)
and handed to the orchestrator, which owns it until the run ends. Steps
read their inputs from it and write discovered facts back into it
(detected OS, PHP binary, certificate paths, final URL).

Design notes:
    - Explicit object, no module-level state.  Two runs never share one.
    - Never persisted.  What survives a run is the artifacts it wrote.
    - Secrets are ``SecretStr``; dumping the context never reveals them.
"""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, Field, SecretStr


class WorkflowState(StrEnum):
    INIT = "init"
    PREFLIGHT = "preflight"
    DEPENDENCY_INSTALL = "dependency_install"
    SOURCE_ACQUISITION = "source_acquisition"
    DATABASE_PROVISION = "database_provision"
    CONFIG_RENDER = "config_render"
    APPLICATION_BOOTSTRAP = "application_bootstrap"
    SERVICE_ACTIVATION = "service_activation"
    NETWORK_EXPOSURE = "network_exposure"
    SUMMARY = "summary"
    VERIFY_INSTALLED = "verify_installed"
    INVOKE_APPLICATION_UPGRADE = "invoke_application_upgrade"
    COMPLETED = "completed"
    ABORTED = "aborted"


class OSIdentity(BaseModel):
    """Parsed from /etc/os-release."""

    id: str
    version: str
    codename: str = ""

    def __str__(self) -> str:
        return f"{self.id} {self.version}"


class DatabaseCredentials(BaseModel):
    database: str
    username: str
    password: SecretStr


class CertificatePaths(BaseModel):
    fullchain: Path
    privkey: Path


class ScheduledTask(BaseModel):
    """One line of the managed cron file."""

    name: str
    schedule: str
    user: str
    command: str

    @property
    def line(self) -> str:
        return f"{self.schedule} {self.user} {self.command}"


class WorkflowContext(BaseModel):
    """Everything a run knows about the host and the user's choices."""

    target_directory: Path
    domain_name: str = ""
    use_tls: bool = False
    auto_update: bool = False
    interactive: bool = True

    detected_os: OSIdentity | None = None
    database_credentials: DatabaseCredentials | None = None

    php_binary: str = "/usr/bin/php"
    fpm_socket_path: str = ""
    fpm_service: str = ""
    certificate: CertificatePaths | None = None
    scheduled_tasks: dict[str, ScheduledTask | None] = Field(default_factory=dict)

    final_url: str = ""
    log_path: Path | None = None

    state: WorkflowState = WorkflowState.INIT
    history: list[WorkflowState] = Field(default_factory=lambda: [WorkflowState.INIT])

    @property
    def base_url(self) -> str:
        """Externally visible URL: HTTPS once a certificate is in place."""
        scheme = "https" if self.certificate else "http"
        return f"{scheme}://{self.domain_name}"

    def transition(self, state: WorkflowState) -> None:
        """Move the state machine forward and remember the path taken."""
        self.state = state
        self.history.append(state)

    def artisan(self, *args: str) -> list[str]:
        """Command line for the application's own CLI."""
        return [self.php_binary, str(self.target_directory / "artisan"), *args]
