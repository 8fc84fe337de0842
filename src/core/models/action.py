"""
Action and Receipt models — the system mutation contract.

Actions describe one change against the host (install packages, enable a
service, write a file, run a command). Receipts describe what happened.
The orchestrator sends Actions through the adapter registry, adapters
return Receipts. Never exceptions.

Every action kind is safe to re-run: adapters check whether the change is
already in place before making it.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any, ClassVar, Literal, Union

from pydantic import BaseModel, Field, SecretStr


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


# ── Package manager ─────────────────────────────────────────────────


class Repository(BaseModel):
    """An extra package repository.

    The repository counts as present when ``marker`` exists on disk;
    otherwise its ``commands`` run in order before the package install.
    """

    name: str
    marker: str
    commands: list[list[str]] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)


class PackageInstall(BaseModel):
    kind: Literal["package_install"] = "package_install"
    adapter: ClassVar[str] = "packages"

    id: str = "packages"
    packages: list[str] = Field(default_factory=list)
    repositories: list[Repository] = Field(default_factory=list)


# ── Service manager ─────────────────────────────────────────────────


class ServiceEnable(BaseModel):
    kind: Literal["service_enable"] = "service_enable"
    adapter: ClassVar[str] = "service"

    id: str = ""
    name: str
    start: bool = True


class ServiceControl(BaseModel):
    kind: Literal["service_control"] = "service_control"
    adapter: ClassVar[str] = "service"

    id: str = ""
    name: str = ""                  # empty for daemon-reload
    operation: Literal["start", "stop", "restart", "reload", "daemon-reload"]
    only_if_active: bool = False    # skipped unless the unit is running


# ── Filesystem ──────────────────────────────────────────────────────


class FileWrite(BaseModel):
    kind: Literal["file_write"] = "file_write"
    adapter: ClassVar[str] = "filesystem"

    id: str = ""
    path: str
    content: str = Field(repr=False)
    mode: int = 0o644
    owner: str | None = None
    group: str | None = None


class DirectoryCreate(BaseModel):
    kind: Literal["directory_create"] = "directory_create"
    adapter: ClassVar[str] = "filesystem"

    id: str = ""
    path: str
    mode: int = 0o755
    owner: str | None = None
    group: str | None = None


class LinkCreate(BaseModel):
    kind: Literal["link_create"] = "link_create"
    adapter: ClassVar[str] = "filesystem"

    id: str = ""
    path: str                       # the symlink
    target: str                     # what it points to


class PathRemove(BaseModel):
    kind: Literal["path_remove"] = "path_remove"
    adapter: ClassVar[str] = "filesystem"

    id: str = ""
    path: str


# ── Processes ───────────────────────────────────────────────────────


class ProcessExecute(BaseModel):
    """Run an external command.

    ``stdin`` carries payloads that must not appear on the command line
    (SQL with credentials). ``interactive`` attaches the command to the
    terminal instead of capturing its output.
    """

    kind: Literal["process_execute"] = "process_execute"
    adapter: ClassVar[str] = "shell"

    id: str = ""
    command: list[str]
    working_dir: str | None = None
    allowed_to_fail: bool = False
    env: dict[str, str] = Field(default_factory=dict)
    stdin: SecretStr | None = None
    interactive: bool = False


Action = Annotated[
    Union[
        PackageInstall,
        ServiceEnable,
        ServiceControl,
        FileWrite,
        DirectoryCreate,
        LinkCreate,
        PathRemove,
        ProcessExecute,
    ],
    Field(discriminator="kind"),
]


def action_id(action: Any) -> str:
    """Stable identifier for logs: explicit id, else kind + target."""
    if action.id:
        return action.id
    for attr in ("name", "path"):
        value = getattr(action, attr, "")
        if value:
            return f"{action.kind}:{value}"
    if isinstance(action, ProcessExecute):
        return f"{action.kind}:{action.command[0]}"
    return action.kind


# ── Receipts ────────────────────────────────────────────────────────


class Receipt(BaseModel):
    """Result of an adapter execution.

    The adapter NEVER raises exceptions — failures are captured here.
    ``warning`` is set when a tolerated failure happened (for example
    a command marked ``allowed_to_fail`` exiting non-zero).
    """

    adapter: str
    action_id: str
    status: Literal["ok", "skipped", "failed"] = "ok"

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    output: str = ""
    error: str | None = None
    warning: str | None = None

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether the action succeeded (or had nothing to do)."""
        return self.status != "failed"

    @property
    def failed(self) -> bool:
        """Whether the action failed."""
        return self.status == "failed"

    @classmethod
    def success(
        cls,
        adapter: str,
        action_id: str,
        output: str = "",
        **kwargs: Any,
    ) -> Receipt:
        """Create a success receipt."""
        return cls(
            adapter=adapter,
            action_id=action_id,
            status="ok",
            output=output,
            **kwargs,
        )

    @classmethod
    def failure(
        cls,
        adapter: str,
        action_id: str,
        error: str,
        **kwargs: Any,
    ) -> Receipt:
        """Create a failure receipt."""
        return cls(
            adapter=adapter,
            action_id=action_id,
            status="failed",
            error=error,
            **kwargs,
        )

    @classmethod
    def skip(
        cls,
        adapter: str,
        action_id: str,
        reason: str = "",
        **kwargs: Any,
    ) -> Receipt:
        """Create a skip receipt (already satisfied)."""
        return cls(
            adapter=adapter,
            action_id=action_id,
            status="skipped",
            output=reason,
            **kwargs,
        )
