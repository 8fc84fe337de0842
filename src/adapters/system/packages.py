"""
Package adapter — apt repositories and package sets.

Installs only what is missing: repositories whose marker file is absent
are added, packages already reported installed by dpkg are left alone,
and a fully satisfied action returns a skip receipt without touching apt.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Callable
from pathlib import Path

from src.adapters.base import Adapter
from src.core.models.action import PackageInstall, Receipt, Repository, action_id
from src.core.services.host_probe import missing_packages
from src.core.services.subprocess_runner import describe_failure, run_subprocess

logger = logging.getLogger(__name__)

_APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}


class AptPackageAdapter(Adapter):
    """Apply ``PackageInstall`` actions with apt-get.

    Args:
        check_missing: Returns the packages not yet installed.
            Defaults to a dpkg-query probe.
    """

    def __init__(self, check_missing: Callable[[list[str]], list[str]] | None = None):
        self._check_missing = check_missing or missing_packages

    @property
    def name(self) -> str:
        return "packages"

    def is_available(self) -> bool:
        return shutil.which("apt-get") is not None

    def validate(self, action: PackageInstall) -> tuple[bool, str]:
        if not isinstance(action, PackageInstall):
            return False, f"Unsupported action kind: {action.kind}"
        if not action.packages and not action.repositories:
            return False, "Nothing to install: no packages and no repositories"
        for repo in action.repositories:
            if not repo.commands:
                return False, f"Repository '{repo.name}' has no setup commands"
        return True, ""

    def execute(self, action: PackageInstall) -> Receipt:
        aid = action_id(action)
        pending_repos = [r for r in action.repositories if not _repo_present(r)]
        missing = self._check_missing(action.packages) if action.packages else []

        if not pending_repos and not missing:
            return Receipt.skip(
                adapter=self.name,
                action_id=aid,
                reason="All packages already installed",
            )

        for repo in pending_repos:
            logger.info("Adding repository %s", repo.name)
            for cmd in repo.commands:
                result = run_subprocess(cmd, env_overrides={**_APT_ENV, **repo.env})
                if not result["ok"]:
                    return Receipt.failure(
                        adapter=self.name,
                        action_id=aid,
                        error=f"Adding repository '{repo.name}' failed: {describe_failure(result)}",
                        metadata={"repository": repo.name},
                    )

        result = run_subprocess(["apt-get", "update"], env_overrides=_APT_ENV)
        if not result["ok"]:
            return Receipt.failure(
                adapter=self.name,
                action_id=aid,
                error=f"apt-get update failed: {describe_failure(result)}",
            )

        if missing:
            logger.info("Installing %d package(s): %s", len(missing), " ".join(missing))
            result = run_subprocess(
                ["apt-get", "install", "-y", *missing],
                env_overrides=_APT_ENV,
            )
            if not result["ok"]:
                return Receipt.failure(
                    adapter=self.name,
                    action_id=aid,
                    error=f"apt-get install failed: {describe_failure(result)}",
                    metadata={"missing": missing},
                )

        return Receipt.success(
            adapter=self.name,
            action_id=aid,
            output=f"Installed {len(missing)} package(s), added {len(pending_repos)} repository(ies)",
            metadata={
                "installed": missing,
                "repositories": [r.name for r in pending_repos],
            },
        )


def _repo_present(repo: Repository) -> bool:
    return Path(repo.marker).exists()
