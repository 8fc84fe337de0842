"""
Workflow orchestrator — the install and upgrade state machines.

Install:
    INIT → PREFLIGHT → DEPENDENCY_INSTALL → SOURCE_ACQUISITION
         → DATABASE_PROVISION → CONFIG_RENDER → APPLICATION_BOOTSTRAP
         → SERVICE_ACTIVATION → (auto-update toggle) → NETWORK_EXPOSURE
         → SUMMARY → COMPLETED

Upgrade:
    INIT → VERIFY_INSTALLED → INVOKE_APPLICATION_UPGRADE → COMPLETED

Any failed required step moves the run to ABORTED. There is no retry and
no rollback: the host keeps whatever the completed steps produced, and
re-running the install skips everything already in place.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

from src.adapters.registry import AdapterRegistry
from src.core.context import (
    CertificatePaths,
    DatabaseCredentials,
    ScheduledTask,
    WorkflowContext,
    WorkflowState,
)
from src.core.engine.runner import StepRunner
from src.core.errors import (
    ConfigError,
    MutationError,
    MutationErrorKind,
    ProvisionError,
    WorkflowError,
    WorkflowErrorKind,
)
from src.core.models.action import (
    DirectoryCreate,
    FileWrite,
    PackageInstall,
    PathRemove,
    ProcessExecute,
    ServiceControl,
    ServiceEnable,
)
from src.core.models.artifact import ArtifactKind
from src.core.models.settings import ProvisionSettings
from src.core.models.step import ExecutionResult, Step, StepStatus
from src.core.persistence.execution_log import ExecutionLog
from src.core.persistence.step_ledger import StepLedger
from src.core.reliability.run_lock import RunLock
from src.core.services.config_writer import ConfigWriter
from src.core.services.database import provisioning_sql
from src.core.services.env_file import read_env_values
from src.core.services.host_probe import HostProbe
from src.core.services.platform import PlatformProvisioner, platform_for
from src.core.services.preflight import PreflightChecker
from src.core.services.secret_provisioner import provide_database_password

logger = logging.getLogger(__name__)

DEFAULT_PHP_BINARY = "/usr/bin/php"
RENEWAL_COMMAND = (
    "certbot renew --quiet "
    "--pre-hook 'systemctl stop nginx' --post-hook 'systemctl start nginx'"
)


# ── Outcome ─────────────────────────────────────────────────────────


@dataclass
class WorkflowOutcome:
    """What a finished (or aborted) run hands back to the CLI."""

    flow: str
    state: WorkflowState
    context: WorkflowContext
    results: list[ExecutionResult] = field(default_factory=list)
    error: WorkflowError | None = None

    @property
    def ok(self) -> bool:
        return self.state == WorkflowState.COMPLETED

    @property
    def counts(self) -> dict[str, int]:
        counts = {status.value: 0 for status in StepStatus}
        for result in self.results:
            counts[result.status.value] += 1
        return counts

    @property
    def warnings(self) -> list[str]:
        lines = [f"{r.step_name}: {r.warning}" for r in self.results if r.warning]
        lines += [
            f"{r.step_name}: {r.error_detail}"
            for r in self.results
            if r.status == StepStatus.FAILED and (self.error is None or r.step_name != self.error.step_name)
        ]
        return lines

    def summary_lines(self) -> list[str]:
        """Plain-text summary. Never includes the database password."""
        ctx = self.context
        c = self.counts
        lines: list[str] = []
        if self.flow == "install" and self.ok:
            creds = ctx.database_credentials
            lines.append(f"URL:        {ctx.final_url}")
            if creds is not None:
                lines.append(f"DB name:    {creds.database}")
                lines.append(f"DB user:    {creds.username}")
                lines.append(f"DB password: stored in {ctx.target_directory / '.env'} (DB_PASSWORD)")
        lines.append(f"Directory:  {ctx.target_directory}")
        if ctx.log_path:
            lines.append(f"Log:        {ctx.log_path}")
        lines.append(
            f"Steps:      {c['success']} done, {c['skipped']} already in place, {c['failed']} failed"
        )
        if self.error is not None:
            lines.append(f"Failed at:  {self.error.step_name}")
        return lines


# ── Orchestrator ────────────────────────────────────────────────────


class WorkflowOrchestrator:
    """Builds the step sequences and drives them through a StepRunner.

    Args:
        settings: Provisioner settings.
        registry: Applies every host mutation.
        probe: Read-only host inspection.
        writer: Config artifact writer (default built from settings).
        preflight: Preflight checker (default built from settings).
        lock: Host-wide run lock (default at ``settings.lock_path``).
        on_result: Progress callback, one call per step result.
        on_state: Progress callback, one call per state transition.
    """

    def __init__(
        self,
        settings: ProvisionSettings,
        registry: AdapterRegistry,
        *,
        probe: HostProbe | None = None,
        writer: ConfigWriter | None = None,
        preflight: PreflightChecker | None = None,
        lock: RunLock | None = None,
        on_result: Callable[[ExecutionResult], None] | None = None,
        on_state: Callable[[WorkflowState], None] | None = None,
    ):
        self.settings = settings
        self.registry = registry
        self.probe = probe or HostProbe()
        self.writer = writer or ConfigWriter(settings, registry)
        self.preflight = preflight or PreflightChecker(settings, self.probe)
        self.lock = lock or RunLock(settings.lock_path)
        self._on_result = on_result
        self._on_state = on_state

    # ── Entry points ─────────────────────────────────────────────

    def install(self, ctx: WorkflowContext) -> WorkflowOutcome:
        return self._execute("install", ctx, self._install)

    def upgrade(self, ctx: WorkflowContext) -> WorkflowOutcome:
        return self._execute("upgrade", ctx, self._upgrade)

    def _execute(
        self,
        flow: str,
        ctx: WorkflowContext,
        body: Callable[[WorkflowContext, StepRunner, StepLedger], None],
    ) -> WorkflowOutcome:
        log = ExecutionLog(self.settings.log_dir, flow).open()
        ctx.log_path = log.path
        ledger = StepLedger(self.settings.state_dir, ctx.target_directory)
        runner = StepRunner(ledger=ledger, log=log, on_result=self._on_result)
        logger.info("Starting %s for %s", flow, ctx.target_directory)

        error: WorkflowError | None = None
        try:
            body(ctx, runner, ledger)
            self._transition(ctx, WorkflowState.COMPLETED)
            logger.info("%s completed", flow.capitalize())
        except WorkflowError as e:
            e.log_path = log.path
            e.results = runner.results
            error = e
            logger.error("%s aborted: %s", flow.capitalize(), e.diagnostic)
            logger.error("Execution log: %s", log.path)
            self._transition(ctx, WorkflowState.ABORTED)
        finally:
            self.lock.release()
            log.close(state=ctx.state.value)

        return WorkflowOutcome(
            flow=flow,
            state=ctx.state,
            context=ctx,
            results=runner.results,
            error=error,
        )

    def _transition(self, ctx: WorkflowContext, state: WorkflowState) -> None:
        ctx.transition(state)
        logger.debug("State → %s", state.value)
        if self._on_state is not None:
            self._on_state(state)

    @contextmanager
    def _as_step(self, name: str, runner: StepRunner) -> Iterator[None]:
        """Report a failure outside the step list as a failed step."""
        try:
            yield
        except WorkflowError:
            raise
        except (ProvisionError, OSError, UnicodeError) as e:
            runner.record(ExecutionResult(step_name=name, status=StepStatus.FAILED, error_detail=str(e)))
            raise WorkflowError(name, str(e), cause=e) from e

    # ── Install ──────────────────────────────────────────────────

    def _install(self, ctx: WorkflowContext, runner: StepRunner, ledger: StepLedger) -> None:
        self._transition(ctx, WorkflowState.PREFLIGHT)
        with self._as_step("preflight", runner):
            self.preflight.check(ctx, include_dependencies=False)
            self.lock.acquire()
            platform = platform_for(self.settings, ctx.detected_os)

        self._transition(ctx, WorkflowState.DEPENDENCY_INSTALL)
        runner.run(self._dependency_steps(platform), ctx)
        ctx.php_binary = self.probe.which("php") or DEFAULT_PHP_BINARY
        ctx.fpm_socket_path = platform.detect_runtime_socket()
        ctx.fpm_service = platform.php_fpm_service()

        self._transition(ctx, WorkflowState.SOURCE_ACQUISITION)
        runner.run(self._source_steps(ledger), ctx)

        self._transition(ctx, WorkflowState.DATABASE_PROVISION)
        with self._as_step("verify-database-reachable", runner):
            self.preflight.check_dependencies(ctx)
        with self._as_step("resolve-credentials", runner):
            self._resolve_credentials(ctx)
        runner.run(self._database_steps(), ctx)

        self._transition(ctx, WorkflowState.CONFIG_RENDER)
        if ctx.use_tls and ctx.certificate is None:
            ctx.certificate = self._existing_certificate(ctx)
        runner.run(self._config_steps(), ctx)

        self._transition(ctx, WorkflowState.APPLICATION_BOOTSTRAP)
        runner.run(self._bootstrap_steps(), ctx)

        self._transition(ctx, WorkflowState.SERVICE_ACTIVATION)
        ctx.scheduled_tasks["scheduler"] = ScheduledTask(
            name="scheduler",
            schedule=self.settings.scheduler_schedule,
            user=self.settings.cron_user,
            command=f"{ctx.php_binary} {ctx.target_directory}/artisan schedule:run >> /dev/null 2>&1",
        )
        runner.run(self._service_steps(platform), ctx)

        ctx.scheduled_tasks["auto-update"] = (
            ScheduledTask(
                name="auto-update",
                schedule=self.settings.auto_update_schedule,
                user=self.settings.cron_user,
                command=(
                    f"cd {ctx.target_directory} && {ctx.php_binary} artisan app:upgrade "
                    f">> {self.settings.upgrade_log} 2>&1"
                ),
            )
            if ctx.auto_update
            else None
        )
        runner.run([self._schedule_step("schedule-auto-update", required=False)], ctx)

        self._transition(ctx, WorkflowState.NETWORK_EXPOSURE)
        if ctx.use_tls:
            ctx.scheduled_tasks["certificate-renewal"] = ScheduledTask(
                name="certificate-renewal",
                schedule=self.settings.renewal_schedule,
                user=self.settings.cron_user,
                command=RENEWAL_COMMAND,
            )
            runner.run(self._https_steps(platform), ctx)
        else:
            ctx.scheduled_tasks["certificate-renewal"] = None
            runner.run(
                [
                    self._proxy_step(),
                    self._schedule_step("unschedule-certificate-renewal", required=False),
                ],
                ctx,
            )

        self._transition(ctx, WorkflowState.SUMMARY)
        ctx.final_url = ctx.base_url
        runner.run([self._permissions_step("fix-permissions-final")], ctx)

    # ── Step builders ────────────────────────────────────────────

    def _apply(self, action) -> str | None:
        """Apply one action; return its warning, if any."""
        return self.registry.apply(action).warning

    def _apply_all(self, actions: list) -> str | None:
        warnings = [w for w in (self._apply(a) for a in actions) if w]
        return "; ".join(warnings) or None

    def _dependencies_present(self, actions: list) -> bool:
        for action in actions:
            if isinstance(action, PackageInstall):
                if action.packages and self.probe.missing_packages(action.packages):
                    return False
                if not all(self.probe.repository_present(r.marker) for r in action.repositories):
                    return False
            elif isinstance(action, FileWrite):
                if not _file_has(Path(action.path), action.content):
                    return False
        return True

    def _dependency_steps(self, platform: PlatformProvisioner) -> list[Step]:
        actions = platform.dependency_actions()
        return [
            Step(
                "install-dependencies",
                action=lambda ctx: self._apply_all(actions),
                check=lambda ctx: self._dependencies_present(actions),
            )
        ]

    def _source_steps(self, ledger: StepLedger) -> list[Step]:
        s = self.settings

        def download(ctx: WorkflowContext) -> str | None:
            tarball = ctx.target_directory / f"{s.app_name}.tar.gz"
            self._apply(ProcessExecute(
                id="download-release",
                command=["curl", "-fL", "-o", str(tarball), s.release_url],
            ))
            self._apply(ProcessExecute(
                id="extract-release",
                command=["tar", "-xzf", str(tarball), "-C", str(ctx.target_directory)],
            ))
            self._apply(PathRemove(path=str(tarball)))
            # A new release invalidates everything recorded after extraction
            ledger.reset()
            ledger.mark_completed("download-release")
            return None

        def release_present(ctx: WorkflowContext) -> bool:
            return (
                ledger.is_completed("download-release")
                and (ctx.target_directory / "artisan").is_file()
            )

        def writable_dirs(ctx: WorkflowContext) -> str | None:
            target = ctx.target_directory
            return self._apply(ProcessExecute(
                command=["chmod", "-R", "755", str(target / "storage"), str(target / "bootstrap" / "cache")],
                allowed_to_fail=True,
            ))

        return [
            Step(
                "create-install-directory",
                action=lambda ctx: self._apply(DirectoryCreate(path=str(ctx.target_directory))),
                check=lambda ctx: ctx.target_directory.is_dir(),
            ),
            Step("download-release", action=download, check=release_present),
            Step("prepare-writable-directories", action=writable_dirs),
        ]

    def _resolve_credentials(self, ctx: WorkflowContext) -> None:
        supplied = ctx.database_credentials.password if ctx.database_credentials else None
        existing = read_env_values(ctx.target_directory / ".env").get("DB_PASSWORD")
        ctx.database_credentials = DatabaseCredentials(
            database=self.settings.db_name,
            username=self.settings.db_user,
            password=provide_database_password(supplied, existing=existing),
        )

    def _database_steps(self) -> list[Step]:
        s = self.settings

        def provision(ctx: WorkflowContext) -> str | None:
            return self._apply(ProcessExecute(
                id="provision-database",
                command=["mysql"],
                stdin=provisioning_sql(ctx.database_credentials, client_host=s.db_host),
            ))

        return [
            Step(
                "provision-database",
                action=provision,
                check=lambda ctx: self.probe.database_login_ok(
                    ctx.database_credentials, s.db_host, s.db_port
                ),
            )
        ]

    def _artifact_step(self, name: str, kind: ArtifactKind, required: bool = True) -> Step:
        def write(ctx: WorkflowContext) -> str | None:
            self.writer.write(kind, ctx)
            return None

        return Step(
            name,
            action=write,
            check=lambda ctx: self.writer.is_current(self.writer.render(kind, ctx)),
            required=required,
        )

    def _schedule_step(self, name: str, required: bool = True) -> Step:
        return self._artifact_step(name, ArtifactKind.SCHEDULE, required=required)

    def _proxy_step(self) -> Step:
        step = self._artifact_step("write-proxy-config", ArtifactKind.PROXY)
        content_current = step.check
        step.check = lambda ctx: content_current(ctx) and self.settings.site_link.is_symlink()
        return step

    def _config_steps(self) -> list[Step]:
        return [
            self._artifact_step("write-environment-file", ArtifactKind.ENV),
            self._artifact_step("write-queue-worker-unit", ArtifactKind.UNIT),
        ]

    def _artisan(self, ctx: WorkflowContext, *args: str, **kwargs) -> str | None:
        return self._apply(ProcessExecute(
            command=ctx.artisan(*args),
            working_dir=str(ctx.target_directory),
            **kwargs,
        ))

    def _bootstrap_steps(self) -> list[Step]:
        def seed(ctx: WorkflowContext) -> str | None:
            warnings = [
                self._artisan(ctx, "db:seed", f"--class={cls}", "--force")
                for cls in self.settings.seed_classes
            ]
            return "; ".join(w for w in warnings if w) or None

        def initialize(ctx: WorkflowContext) -> str | None:
            if ctx.interactive:
                return self._artisan(ctx, "app:init", interactive=True)
            return self._artisan(ctx, "app:init", "--no-interaction")

        return [
            Step(
                "generate-app-key",
                action=lambda ctx: self._artisan(ctx, "key:generate", "--force"),
                check=lambda ctx: bool(read_env_values(ctx.target_directory / ".env").get("APP_KEY")),
            ),
            Step(
                "link-storage",
                action=lambda ctx: self._artisan(ctx, "storage:link", allowed_to_fail=True),
                check=lambda ctx: (ctx.target_directory / "public" / "storage").is_symlink(),
            ),
            Step("migrate-database", action=lambda ctx: self._artisan(ctx, "migrate", "--force", "--seed")),
            Step("seed-reference-data", action=seed, required=False),
            Step("initialize-application", action=initialize),
        ]

    def _permissions_step(self, name: str) -> Step:
        s = self.settings

        def chown(ctx: WorkflowContext) -> str | None:
            return self._apply(ProcessExecute(
                command=["chown", "-R", f"{s.web_user}:{s.web_group}", str(ctx.target_directory)],
            ))

        return Step(
            name,
            action=chown,
            check=lambda ctx: not s.apply_ownership
            or self.probe.tree_owned_by(ctx.target_directory, s.web_user),
        )

    def _service_steps(self, platform: PlatformProvisioner) -> list[Step]:
        services = [self.settings.unit_name, "redis-server", platform.php_fpm_service()]
        return [
            self._schedule_step("schedule-task-runner"),
            Step(
                "enable-services",
                action=lambda ctx: self._apply_all([ServiceEnable(name=n) for n in services]),
                check=lambda ctx: all(self.probe.service_running(n) for n in services),
            ),
            self._permissions_step("fix-permissions"),
        ]

    # ── HTTPS ────────────────────────────────────────────────────

    def _certificate_paths(self, ctx: WorkflowContext) -> CertificatePaths:
        live = self.settings.letsencrypt_live_dir / ctx.domain_name
        return CertificatePaths(fullchain=live / "fullchain.pem", privkey=live / "privkey.pem")

    def _existing_certificate(self, ctx: WorkflowContext) -> CertificatePaths | None:
        paths = self._certificate_paths(ctx)
        if paths.fullchain.is_file() and paths.privkey.is_file():
            logger.info("Found existing certificate for %s", ctx.domain_name)
            return paths
        return None

    def _https_steps(self, platform: PlatformProvisioner) -> list[Step]:
        s = self.settings

        def acquire(ctx: WorkflowContext) -> str | None:
            if self.probe.port_in_use(80):
                raise MutationError(
                    MutationErrorKind.COMMAND_FAILURE,
                    "port 80 is in use; stop the service listening on it and re-run",
                    action_id="certbot",
                )
            command = [
                "certbot", "certonly", "--standalone",
                "-d", ctx.domain_name,
                "--non-interactive", "--agree-tos",
            ]
            if s.certbot_email:
                command += ["--email", s.certbot_email]
            else:
                command.append("--register-unsafely-without-email")
            return self._apply(ProcessExecute(id="certbot", command=command))

        def verify(ctx: WorkflowContext) -> str | None:
            paths = self._existing_certificate(ctx)
            if paths is None:
                expected = self._certificate_paths(ctx)
                raise MutationError(
                    MutationErrorKind.COMMAND_FAILURE,
                    f"certificate files missing after acquisition: {expected.fullchain}, {expected.privkey}",
                    action_id="certbot",
                )
            ctx.certificate = paths
            return None

        def have_cert(ctx: WorkflowContext) -> bool:
            return self._existing_certificate(ctx) is not None

        return [
            Step(
                "install-certificate-client",
                action=lambda ctx: self._apply(platform.certificate_client_action()),
                check=lambda ctx: self.probe.which("certbot") is not None,
            ),
            Step(
                "stop-web-server",
                action=lambda ctx: self._apply(ServiceControl(name="nginx", operation="stop")),
                check=have_cert,
            ),
            Step("acquire-certificate", action=acquire, check=have_cert),
            Step("verify-certificate", action=verify, check=lambda ctx: ctx.certificate is not None),
            self._artifact_step("update-base-url", ArtifactKind.ENV),
            self._proxy_step(),
            self._schedule_step("schedule-certificate-renewal"),
        ]

    # ── Upgrade ──────────────────────────────────────────────────

    def _upgrade(self, ctx: WorkflowContext, runner: StepRunner, ledger: StepLedger) -> None:
        self._transition(ctx, WorkflowState.VERIFY_INSTALLED)
        with self._as_step("verify-installed", runner):
            self.preflight.check_privilege()
            self.lock.acquire()

        if not (ctx.target_directory / "artisan").is_file():
            message = f"{self.settings.display_name} does not appear to be installed in {ctx.target_directory}"
            runner.record(ExecutionResult(
                step_name="verify-installed", status=StepStatus.FAILED, error_detail=message,
            ))
            raise WorkflowError("verify-installed", message, kind=WorkflowErrorKind.NOT_INSTALLED)

        ctx.php_binary = self.probe.which("php") or DEFAULT_PHP_BINARY
        self._transition(ctx, WorkflowState.INVOKE_APPLICATION_UPGRADE)
        runner.run(
            [
                Step(
                    "upgrade-application",
                    action=lambda c: self._artisan(c, "app:upgrade", interactive=c.interactive),
                    repeatable=True,
                )
            ],
            ctx,
        )
        try:
            ctx.final_url = read_env_values(ctx.target_directory / ".env").get("APP_URL", "")
        except ConfigError as e:
            logger.warning("Could not read the application URL: %s", e)


def _file_has(path: Path, content: str) -> bool:
    try:
        return path.read_text(encoding="utf-8") == content
    except (OSError, UnicodeError):
        return False
