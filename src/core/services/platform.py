"""
Platform provisioners — distribution-specific dependency installation.

Ubuntu and Debian need different repositories for current PHP builds
(ondrej PPA vs. the sury apt repository) and differ on when the MariaDB
vendor repository is required. Everything else (package set, FPM socket
layout, certificate client) is shared.
"""

from __future__ import annotations

import logging
import shlex
from pathlib import Path

from src.core.context import OSIdentity
from src.core.errors import PreflightError, PreflightErrorKind
from src.core.models.action import FileWrite, PackageInstall, Repository
from src.core.models.settings import ProvisionSettings

logger = logging.getLogger(__name__)

SURY_KEY_URL = "https://packages.sury.org/php/apt.gpg"
SURY_KEYRING = "/etc/apt/trusted.gpg.d/sury-keyring.gpg"


def _version_tuple(version: str) -> tuple[int, ...]:
    try:
        return tuple(int(part) for part in version.split("."))
    except ValueError:
        return ()


class PlatformProvisioner:
    """Shared behaviour; subclasses supply the repositories."""

    os_id = ""
    prerequisites: list[str] = []

    def __init__(self, settings: ProvisionSettings, identity: OSIdentity):
        self.settings = settings
        self.identity = identity

    # ── Repositories ─────────────────────────────────────────────

    def mariadb_repository(self) -> Repository:
        s = self.settings
        pipeline = (
            f"curl -sSL {shlex.quote(s.mariadb_repo_script)} | "
            f"bash -s -- --mariadb-server-version=mariadb-{shlex.quote(s.mariadb_version)}"
        )
        return Repository(
            name="mariadb",
            marker=str(s.apt_sources_dir / "mariadb.list"),
            commands=[["sh", "-c", pipeline]],
        )

    def repository_actions(self) -> list:
        raise NotImplementedError

    # ── Actions ──────────────────────────────────────────────────

    def dependency_actions(self) -> list:
        """Everything ``install-dependencies`` applies, in order."""
        s = self.settings
        return [
            PackageInstall(id="prerequisites", packages=list(self.prerequisites)),
            *self.repository_actions(),
            PackageInstall(
                id="packages",
                packages=[*s.php_packages, *s.extra_packages],
                repositories=self.package_repositories(),
            ),
        ]

    def package_repositories(self) -> list[Repository]:
        return [self.mariadb_repository()]

    def certificate_client_action(self) -> PackageInstall:
        return PackageInstall(id="certificate-client", packages=["certbot"])

    # ── Runtime layout ───────────────────────────────────────────

    def php_fpm_service(self) -> str:
        return f"php{self.settings.php_version}-fpm"

    def detect_runtime_socket(self) -> str:
        """FPM socket path; ``/run`` unless only the legacy path exists."""
        name = f"php{self.settings.php_version}-fpm.sock"
        primary = Path("/run/php") / name
        legacy = Path("/var/run/php") / name
        if not primary.exists() and legacy.exists():
            return str(legacy)
        return str(primary)


class UbuntuProvisioner(PlatformProvisioner):
    os_id = "ubuntu"
    prerequisites = [
        "software-properties-common", "curl", "apt-transport-https",
        "ca-certificates", "gnupg",
    ]

    def _ppa_marker(self) -> str:
        # add-apt-repository writes deb822 .sources files from 24.04 on
        suffix = ".sources" if _version_tuple(self.identity.version) >= (24, 4) else ".list"
        codename = self.identity.codename or "unknown"
        return str(self.settings.apt_sources_dir / f"ondrej-ubuntu-php-{codename}{suffix}")

    def repository_actions(self) -> list:
        return []

    def package_repositories(self) -> list[Repository]:
        repos = [
            Repository(
                name="ondrej-php",
                marker=self._ppa_marker(),
                commands=[["add-apt-repository", "-y", "ppa:ondrej/php"]],
                env={"LC_ALL": "C.UTF-8"},
            )
        ]
        # 24.04 ships a recent enough MariaDB
        if self.identity.version != "24.04":
            repos.append(self.mariadb_repository())
        return repos


class DebianProvisioner(PlatformProvisioner):
    os_id = "debian"
    prerequisites = [
        "software-properties-common", "curl", "ca-certificates", "gnupg2", "lsb-release",
    ]

    def repository_actions(self) -> list:
        codename = self.identity.codename or {"11": "bullseye", "12": "bookworm"}.get(
            self.identity.version, ""
        )
        fetch_key = (
            f"curl -fsSL {SURY_KEY_URL} | gpg --dearmor --yes -o {SURY_KEYRING}"
        )
        return [
            PackageInstall(
                id="php-repository-key",
                repositories=[
                    Repository(name="sury-keyring", marker=SURY_KEYRING, commands=[["sh", "-c", fetch_key]])
                ],
            ),
            FileWrite(
                id="php-repository",
                path=str(self.settings.apt_sources_dir / "sury-php.list"),
                content=f"deb https://packages.sury.org/php/ {codename} main\n",
            ),
        ]


_PLATFORMS: dict[str, type[PlatformProvisioner]] = {
    UbuntuProvisioner.os_id: UbuntuProvisioner,
    DebianProvisioner.os_id: DebianProvisioner,
}


def platform_for(settings: ProvisionSettings, identity: OSIdentity) -> PlatformProvisioner:
    """Provisioner for the detected OS.

    Raises:
        PreflightError: No provisioner for this distribution.
    """
    cls = _PLATFORMS.get(identity.id)
    if cls is None:
        raise PreflightError(
            PreflightErrorKind.UNSUPPORTED_OS,
            f"no platform provisioner for {identity.id or 'unknown OS'}",
        )
    logger.debug("Platform provisioner: %s", cls.__name__)
    return cls(settings, identity)
