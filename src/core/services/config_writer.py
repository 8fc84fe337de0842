"""
ConfigWriter — render configuration artifacts and install them atomically.

Install sequence for every artifact:

    1. write a temp file beside the live one (0600 at creation)
    2. apply mode and ownership
    3. validate the temp file for its kind
    4. ``os.replace`` it over the live file
    5. run the artifact's post-install actions (link, reload, restart)

A validation failure removes the temp file and leaves the live file
byte-identical. Rendering only reads the host, so ``render`` +
``is_current`` doubles as the idempotency check of the steps that
write these files.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from collections.abc import Callable
from pathlib import Path

from src.adapters.registry import AdapterRegistry
from src.core.context import WorkflowContext
from src.core.errors import ConfigError, ConfigErrorKind
from src.core.models.action import LinkCreate, PathRemove, ServiceControl
from src.core.models.artifact import ArtifactKind, ConfigArtifact
from src.core.models.settings import ProvisionSettings
from src.core.persistence.atomic_file import write_temp_sibling
from src.core.services import templates
from src.core.services.env_file import env_problems, read_env_text, render_env
from src.core.services.subprocess_runner import describe_failure, run_subprocess

logger = logging.getLogger(__name__)

# Checks a candidate file; returns problems (empty = valid).
Validator = Callable[[ConfigArtifact, Path], list[str]]

_CRON_FIELD_RE = re.compile(r"^[0-9A-Za-z*/,\-]+$")
_CRON_SPECIAL_RE = re.compile(r"^@(reboot|yearly|annually|monthly|weekly|daily|hourly)$")
_CRON_ENV_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*\s*=")


# ── Validators ──────────────────────────────────────────────────────


def validate_env(artifact: ConfigArtifact, candidate: Path) -> list[str]:
    return env_problems(candidate.read_text(encoding="utf-8"))


def validate_unit(artifact: ConfigArtifact, candidate: Path) -> list[str]:
    text = candidate.read_text(encoding="utf-8")
    lines = [line.strip() for line in text.splitlines()]
    problems = [
        f"missing section {section}"
        for section in ("[Unit]", "[Service]", "[Install]")
        if section not in lines
    ]
    if not any(line.startswith("ExecStart=") and len(line) > len("ExecStart=") for line in lines):
        problems.append("missing ExecStart=")
    return problems


def validate_schedule(artifact: ConfigArtifact, candidate: Path) -> list[str]:
    problems: list[str] = []
    for lineno, raw in enumerate(candidate.read_text(encoding="utf-8").splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#") or _CRON_ENV_RE.match(line):
            continue
        fields = line.split()
        if _CRON_SPECIAL_RE.match(fields[0]):
            time_fields, rest = [], fields[1:]
        else:
            time_fields, rest = fields[:5], fields[5:]
            if len(time_fields) < 5 or not all(_CRON_FIELD_RE.match(f) for f in time_fields):
                problems.append(f"line {lineno}: invalid schedule")
                continue
        if len(rest) < 2:
            problems.append(f"line {lineno}: expected a user and a command")
    if not _ends_with_newline(candidate):
        problems.append("file must end with a newline")
    return problems


def _ends_with_newline(path: Path) -> bool:
    data = path.read_bytes()
    return not data or data.endswith(b"\n")


def nginx_validator(nginx_dir: Path) -> Validator:
    """``nginx -t`` against a throwaway main config including only the candidate.

    The wrapper lives in ``nginx_dir`` so relative includes such as
    ``fastcgi_params`` resolve the way they do for the live config.
    """

    def _validate(artifact: ConfigArtifact, candidate: Path) -> list[str]:
        fd, wrapper_name = tempfile.mkstemp(dir=nginx_dir, prefix=".provisioner-check.", suffix=".conf")
        wrapper = Path(wrapper_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(templates.render_template(
                    templates.NGINX_CHECK_WRAPPER, {"candidate": candidate},
                ))
            result = run_subprocess(["nginx", "-t", "-q", "-c", str(wrapper)])
        finally:
            wrapper.unlink(missing_ok=True)
        if result["ok"]:
            return []
        return [f"nginx -t: {describe_failure(result)}"]

    return _validate


# ── Writer ──────────────────────────────────────────────────────────


class ConfigWriter:
    """Renders and installs the env, proxy, unit and schedule files.

    Args:
        settings: Provisioner settings (paths, users, names).
        registry: Runs post-install actions.
        validators: Per-kind overrides (tests swap out ``nginx -t``).
    """

    def __init__(
        self,
        settings: ProvisionSettings,
        registry: AdapterRegistry,
        validators: dict[ArtifactKind, Validator] | None = None,
    ):
        self._settings = settings
        self._registry = registry
        self._validators: dict[ArtifactKind, Validator] = {
            ArtifactKind.ENV: validate_env,
            ArtifactKind.PROXY: nginx_validator(settings.nginx_dir),
            ArtifactKind.UNIT: validate_unit,
            ArtifactKind.SCHEDULE: validate_schedule,
        }
        if validators:
            self._validators.update(validators)

    # ── Rendering ────────────────────────────────────────────────

    def render(self, kind: ArtifactKind, ctx: WorkflowContext) -> ConfigArtifact:
        """Build the artifact of ``kind`` from the context. Reads only."""
        renderers = {
            ArtifactKind.ENV: self._render_env,
            ArtifactKind.PROXY: self._render_proxy,
            ArtifactKind.UNIT: self._render_unit,
            ArtifactKind.SCHEDULE: self._render_schedule,
        }
        return renderers[kind](ctx)

    def _render_env(self, ctx: WorkflowContext) -> ConfigArtifact:
        s = self._settings
        creds = ctx.database_credentials
        if creds is None:
            raise ValueError("database credentials must be provisioned before the env file")

        env_path = ctx.target_directory / ".env"
        example = ctx.target_directory / ".env.example"
        if env_path.is_file():
            base = read_env_text(env_path)
        elif example.is_file():
            base = read_env_text(example)
        else:
            base = ""

        updates = {
            "APP_URL": ctx.base_url,
            "DB_CONNECTION": "mysql",
            "DB_HOST": s.db_host,
            "DB_PORT": str(s.db_port),
            "DB_DATABASE": creds.database,
            "DB_USERNAME": creds.username,
            "DB_PASSWORD": creds.password.get_secret_value(),
            "REDIS_HOST": s.redis_host,
            "REDIS_PORT": str(s.redis_port),
            "CACHE_STORE": s.cache_store,
            "QUEUE_CONNECTION": s.queue_connection,
        }
        return ConfigArtifact(
            name="environment file",
            kind=ArtifactKind.ENV,
            path=env_path,
            content=render_env(base, updates),
            mode=0o640,
            owner=s.web_user if s.apply_ownership else None,
            group=s.web_group if s.apply_ownership else None,
            post_install=self._env_consumers(ctx),
        )

    def _env_consumers(self, ctx: WorkflowContext) -> list[ServiceControl]:
        """Running processes that read the env file at start-up."""
        actions = [
            ServiceControl(name=self._settings.unit_name, operation="restart", only_if_active=True),
        ]
        if ctx.fpm_service:
            actions.append(ServiceControl(name=ctx.fpm_service, operation="reload", only_if_active=True))
        return actions

    def _render_proxy(self, ctx: WorkflowContext) -> ConfigArtifact:
        s = self._settings
        values: dict[str, object] = {
            "domain": ctx.domain_name,
            "public_dir": ctx.target_directory / "public",
            "fpm_socket": ctx.fpm_socket_path,
        }
        if ctx.certificate:
            template = templates.NGINX_HTTPS
            values["tls_lines"] = templates.render_template(
                templates.NGINX_TLS_LINES,
                {"fullchain": ctx.certificate.fullchain, "privkey": ctx.certificate.privkey},
            )
        else:
            template = templates.NGINX_HTTP
            values["tls_lines"] = ""

        return ConfigArtifact(
            name="web server site",
            kind=ArtifactKind.PROXY,
            path=s.site_file,
            content=templates.render_template(template, values),
            post_install=[
                LinkCreate(path=str(s.site_link), target=str(s.site_file)),
                PathRemove(path=str(s.nginx_sites_enabled / "default")),
                ServiceControl(name="nginx", operation="restart"),
            ],
        )

    def _render_unit(self, ctx: WorkflowContext) -> ConfigArtifact:
        s = self._settings
        content = templates.render_template(templates.QUEUE_WORKER_UNIT, {
            "display_name": s.display_name,
            "user": s.web_user,
            "group": s.web_group,
            "php_binary": ctx.php_binary,
            "install_dir": ctx.target_directory,
        })
        return ConfigArtifact(
            name="queue worker unit",
            kind=ArtifactKind.UNIT,
            path=s.systemd_dir / s.unit_name,
            content=content,
            post_install=[
                ServiceControl(operation="daemon-reload"),
                ServiceControl(name=s.unit_name, operation="restart", only_if_active=True),
            ],
        )

    def _render_schedule(self, ctx: WorkflowContext) -> ConfigArtifact:
        path = self._settings.cron_file
        entries = read_schedule_entries(path)
        for name, task in ctx.scheduled_tasks.items():
            if task is None:
                entries.pop(name, None)
            else:
                entries[name] = task.line

        body = "".join(
            f"\n{templates.CRON_TASK_MARKER}{name}\n{line}\n"
            for name, line in entries.items()
        )
        return ConfigArtifact(
            name="scheduled tasks",
            kind=ArtifactKind.SCHEDULE,
            path=path,
            content=templates.CRON_HEADER + body,
        )

    # ── Installing ───────────────────────────────────────────────

    def is_current(self, artifact: ConfigArtifact) -> bool:
        """Whether the live file already has exactly this content."""
        try:
            return artifact.path.read_text(encoding="utf-8") == artifact.content
        except (OSError, UnicodeError):
            return False

    def install(self, artifact: ConfigArtifact) -> None:
        """Validate, atomically replace, then run post-install actions.

        Raises:
            ConfigError: Validation failed or the file could not be
                replaced. The live file is untouched either way.
            MutationError: A post-install action failed.
        """
        try:
            tmp = write_temp_sibling(
                artifact.path,
                artifact.content,
                mode=artifact.mode,
                owner=artifact.owner,
                group=artifact.group,
            )
        except OSError as e:
            raise ConfigError(
                ConfigErrorKind.ATOMIC_REPLACE_FAILED,
                f"cannot write {artifact.name} next to {artifact.path}: {e}",
                path=artifact.path,
            ) from e

        try:
            problems = self._validators[artifact.kind](artifact, tmp)
        except OSError as e:
            problems = [f"validator could not run: {e}"]
        if problems:
            tmp.unlink(missing_ok=True)
            logger.error("%s failed validation: %s", artifact.name, "; ".join(problems))
            raise ConfigError(
                ConfigErrorKind.VALIDATION_FAILED,
                f"{artifact.name} ({artifact.path}) failed validation: {'; '.join(problems)}",
                path=artifact.path,
            )

        try:
            os.replace(tmp, artifact.path)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            raise ConfigError(
                ConfigErrorKind.ATOMIC_REPLACE_FAILED,
                f"cannot replace {artifact.path}: {e}",
                path=artifact.path,
            ) from e
        logger.info("Installed %s at %s", artifact.name, artifact.path)

        for action in artifact.post_install:
            self._registry.apply(action)

    def write(self, kind: ArtifactKind, ctx: WorkflowContext) -> ConfigArtifact:
        """Render and install in one go."""
        artifact = self.render(kind, ctx)
        self.install(artifact)
        return artifact


def read_schedule_entries(path: Path) -> dict[str, str]:
    """Named entries of a managed cron file, in file order."""
    entries: dict[str, str] = {}
    if not path.is_file():
        return entries
    pending: str | None = None
    for line in path.read_text(encoding="utf-8").splitlines():
        if line.startswith(templates.CRON_TASK_MARKER):
            pending = line[len(templates.CRON_TASK_MARKER):].strip()
        elif pending and line.strip():
            entries[pending] = line.strip()
            pending = None
    return entries
