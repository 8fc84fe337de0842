"""
Preflight checks — decide whether the host can be provisioned at all.

Checks run in a fixed order and stop at the first failure:

    1. privilege      effective uid 0
    2. disk space     free space on the target's volume
    3. OS identity    /etc/os-release in the supported table
    4. dependencies   database server answers an admin login

Nothing is mutated; the only output besides the raised error is
``context.detected_os``.
"""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Callable
from pathlib import Path

from src.core.context import OSIdentity, WorkflowContext
from src.core.errors import PreflightError, PreflightErrorKind
from src.core.models.settings import ProvisionSettings
from src.core.services.host_probe import HostProbe

logger = logging.getLogger(__name__)

_MB = 1024 * 1024


def read_os_release(path: Path) -> dict[str, str]:
    """Parse an os-release file into a dict (quotes stripped)."""
    values: dict[str, str] = {}
    with open(path, encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, _, value = line.partition("=")
            values[key.strip()] = value.strip().strip('"').strip("'")
    return values


def _nearest_existing(path: Path) -> Path:
    current = path
    while not current.exists() and current != current.parent:
        current = current.parent
    return current


class PreflightChecker:
    """Run the pre-mutation host checks.

    ``geteuid`` and ``disk_usage`` are injectable so tests can run
    unprivileged on any filesystem.
    """

    def __init__(
        self,
        settings: ProvisionSettings,
        probe: HostProbe,
        *,
        geteuid: Callable[[], int] = os.geteuid,
        disk_usage: Callable[[Path], object] = shutil.disk_usage,
    ):
        self._settings = settings
        self._probe = probe
        self._geteuid = geteuid
        self._disk_usage = disk_usage

    def check(self, ctx: WorkflowContext, include_dependencies: bool = True) -> None:
        """Run all checks in order.

        Raises:
            PreflightError: The first failed check.
        """
        self.check_privilege()
        self.check_disk_space(ctx.target_directory)
        ctx.detected_os = self.check_os()
        if include_dependencies:
            self.check_dependencies(ctx)
        logger.info("Preflight passed on %s", ctx.detected_os)

    def check_privilege(self) -> None:
        if self._geteuid() != 0:
            raise PreflightError(
                PreflightErrorKind.INSUFFICIENT_PRIVILEGE,
                "must run as root (try: sudo provisioner ...)",
            )

    def check_disk_space(self, target: Path) -> None:
        volume = _nearest_existing(target)
        free_mb = self._disk_usage(volume).free // _MB
        logger.debug("Free space on %s: %d MB", volume, free_mb)
        if free_mb < self._settings.min_free_mb:
            raise PreflightError(
                PreflightErrorKind.INSUFFICIENT_DISK_SPACE,
                f"{free_mb} MB free on {volume}, need at least {self._settings.min_free_mb} MB",
            )

    def check_os(self) -> OSIdentity:
        path = self._settings.os_release_path
        try:
            release = read_os_release(path)
        except OSError as e:
            raise PreflightError(
                PreflightErrorKind.UNSUPPORTED_OS,
                f"cannot identify the OS ({path}: {e})",
            ) from e

        identity = OSIdentity(
            id=release.get("ID", "").lower(),
            version=release.get("VERSION_ID", ""),
            codename=release.get("VERSION_CODENAME", ""),
        )
        supported = self._settings.supported_os
        if identity.version not in supported.get(identity.id, []):
            table = "; ".join(f"{name} {', '.join(vs)}" for name, vs in supported.items())
            raise PreflightError(
                PreflightErrorKind.UNSUPPORTED_OS,
                f"unsupported OS {identity.id or 'unknown'} {identity.version} (supported: {table})",
            )
        return identity

    def check_dependencies(self, ctx: WorkflowContext) -> None:
        if not self._probe.database_reachable():
            raise PreflightError(
                PreflightErrorKind.DEPENDENCY_UNREACHABLE,
                "database server not reachable with administrative credentials "
                "(is mariadb running?)",
            )
