"""
Host probe — read-only questions about the host.

Used by preflight checks and by step idempotency checks. Nothing here
mutates the host; tests replace the probe with a fake.
"""

from __future__ import annotations

import logging
import os
import pwd
import shutil
import socket
import subprocess
from pathlib import Path

from src.core.context import DatabaseCredentials
from src.core.services.subprocess_runner import run_subprocess

logger = logging.getLogger(__name__)


def is_package_installed(pkg: str) -> bool:
    """Check if a single dpkg package is installed.

    Returns:
        True if installed, False if not installed or check failed.
    """
    try:
        r = subprocess.run(
            ["dpkg-query", "-W", "-f=${Status}", pkg],
            capture_output=True, text=True, timeout=10,
        )
        return "install ok installed" in r.stdout
    except FileNotFoundError:
        logger.warning("dpkg-query not found (checking %s)", pkg)
    except subprocess.TimeoutExpired:
        logger.warning("Timeout checking package %s", pkg)
    except OSError as exc:
        logger.warning("OS error checking package %s: %s", pkg, exc)
    return False


def missing_packages(packages: list[str]) -> list[str]:
    """Return the subset of ``packages`` that is not installed."""
    return [pkg for pkg in packages if not is_package_installed(pkg)]


class HostProbe:
    """Read-only host inspection."""

    def missing_packages(self, packages: list[str]) -> list[str]:
        return missing_packages(packages)

    def repository_present(self, marker: str) -> bool:
        return Path(marker).exists()

    def which(self, binary: str) -> str | None:
        return shutil.which(binary)

    def service_running(self, name: str) -> bool:
        """Enabled at boot and active right now."""
        enabled = run_subprocess(["systemctl", "is-enabled", "--quiet", name])
        active = run_subprocess(["systemctl", "is-active", "--quiet", name])
        return enabled["ok"] and active["ok"]

    def database_reachable(self) -> bool:
        """Administrative login over the local socket (no password)."""
        return run_subprocess(["mysql", "-e", "SELECT 1"])["ok"]

    def database_login_ok(self, credentials: DatabaseCredentials, host: str, port: int) -> bool:
        """Whether the application account logs in with this password."""
        result = run_subprocess(
            [
                "mysql",
                f"--user={credentials.username}",
                f"--host={host}",
                f"--port={port}",
                "-e", "SELECT 1",
                credentials.database,
            ],
            secret_env={"MYSQL_PWD": credentials.password},
        )
        return result["ok"]

    def port_in_use(self, port: int, host: str = "127.0.0.1") -> bool:
        try:
            with socket.create_connection((host, port), timeout=1):
                return True
        except OSError:
            return False

    def tree_owned_by(self, path: Path, user: str) -> bool:
        """Whether every entry under ``path`` belongs to ``user``."""
        try:
            uid = pwd.getpwnam(user).pw_uid
        except KeyError:
            return False
        if not path.exists():
            return False
        for root, dirs, files in os.walk(path):
            for entry in [root, *(os.path.join(root, n) for n in dirs + files)]:
                try:
                    if os.lstat(entry).st_uid != uid:
                        return False
                except OSError:
                    return False
        return True
