"""
Shared test fixtures and configuration.

Nothing here touches the real host: packages, services and commands go
to mock adapters, files are written under ``tmp_path``, and host
inspection goes through ``FakeProbe``.
"""

from collections import namedtuple
from pathlib import Path

import pytest

from src.adapters.mock import MockAdapter
from src.adapters.registry import AdapterRegistry
from src.adapters.shell.filesystem import FilesystemAdapter
from src.core.context import WorkflowContext
from src.core.engine.orchestrator import WorkflowOrchestrator
from src.core.models.artifact import ArtifactKind
from src.core.models.settings import ProvisionSettings
from src.core.observability.logging_config import clear_secrets
from src.core.services.config_writer import ConfigWriter
from src.core.services.host_probe import HostProbe
from src.core.services.preflight import PreflightChecker

DiskUsage = namedtuple("DiskUsage", "total used free")

UBUNTU_2204 = 'ID=ubuntu\nVERSION_ID="22.04"\nVERSION_CODENAME=jammy\n'

ENV_EXAMPLE = """\
APP_NAME=Paymenter
APP_KEY=
APP_URL=http://localhost

DB_CONNECTION=mysql
DB_HOST=127.0.0.1
DB_PORT=3306
DB_DATABASE=laravel
DB_USERNAME=root
DB_PASSWORD=

CACHE_STORE=file
QUEUE_CONNECTION=sync
"""


class FakeProbe(HostProbe):
    """HostProbe answering from attributes instead of the host."""

    def __init__(self):
        self.packages_installed = False
        self.db_reachable = True
        self.login_ok = False
        self.ports_in_use: set[int] = set()
        self.running: set[str] = set()
        self.owned = False
        self.binaries = {"php": "/usr/bin/php"}

    def missing_packages(self, packages):
        return [] if self.packages_installed else list(packages)

    def repository_present(self, marker):
        return self.packages_installed

    def which(self, binary):
        return self.binaries.get(binary)

    def service_running(self, name):
        return name in self.running

    def database_reachable(self):
        return self.db_reachable

    def database_login_ok(self, credentials, host, port):
        return self.login_ok

    def port_in_use(self, port, host="127.0.0.1"):
        return port in self.ports_in_use

    def tree_owned_by(self, path, user):
        return self.owned


class FakeHost:
    """One mock adapter per host-facing adapter name."""

    def __init__(self):
        self.packages = MockAdapter(adapter_name="packages")
        self.service = MockAdapter(adapter_name="service")
        self.shell = MockAdapter(adapter_name="shell")

    @property
    def commands(self) -> list[list[str]]:
        return self.shell.commands

    def ran(self, *fragment: str) -> bool:
        """Whether any shell command contains ``fragment`` as a sub-sequence."""
        n = len(fragment)
        return any(
            list(fragment) == cmd[i:i + n]
            for cmd in self.commands
            for i in range(len(cmd) - n + 1)
        )


@pytest.fixture(autouse=True)
def _forget_secrets():
    yield
    clear_secrets()


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def tmp_state_dir(tmp_path: Path) -> Path:
    """Return a temporary directory for state files."""
    state_dir = tmp_path / "state"
    state_dir.mkdir()
    return state_dir


@pytest.fixture
def settings(tmp_path: Path) -> ProvisionSettings:
    """Settings with every host path redirected under tmp_path."""
    etc = tmp_path / "etc"
    os_release = etc / "os-release"
    os_release.parent.mkdir(parents=True)
    os_release.write_text(UBUNTU_2204)
    return ProvisionSettings(
        install_dir=tmp_path / "var" / "www" / "paymenter",
        nginx_dir=etc / "nginx",
        nginx_sites_available=etc / "nginx" / "sites-available",
        nginx_sites_enabled=etc / "nginx" / "sites-enabled",
        systemd_dir=etc / "systemd" / "system",
        cron_dir=etc / "cron.d",
        letsencrypt_live_dir=etc / "letsencrypt" / "live",
        apt_sources_dir=etc / "apt" / "sources.list.d",
        os_release_path=os_release,
        log_dir=tmp_path / "log",
        state_dir=tmp_path / "state",
        lock_path=tmp_path / "run" / "provisioner.lock",
        upgrade_log=tmp_path / "log" / "upgrade.log",
        apply_ownership=False,
    )


@pytest.fixture
def host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def registry(host: FakeHost) -> AdapterRegistry:
    """Mocks for packages/services/commands, real filesystem under tmp_path."""
    reg = AdapterRegistry()
    reg.register(host.packages)
    reg.register(host.service)
    reg.register(host.shell)
    reg.register(FilesystemAdapter())
    return reg


@pytest.fixture
def probe() -> FakeProbe:
    return FakeProbe()


@pytest.fixture
def preflight(settings, probe) -> PreflightChecker:
    return PreflightChecker(
        settings,
        probe,
        geteuid=lambda: 0,
        disk_usage=lambda path: DiskUsage(total=10**12, used=0, free=10**12),
    )


@pytest.fixture
def writer(settings, registry) -> ConfigWriter:
    return ConfigWriter(settings, registry, validators={ArtifactKind.PROXY: lambda a, c: []})


@pytest.fixture
def ctx(settings) -> WorkflowContext:
    return WorkflowContext(
        target_directory=settings.install_dir,
        domain_name="panel.example.com",
        interactive=False,
    )


@pytest.fixture
def fake_release(settings, host):
    """Make the mocked ``tar`` extraction produce a minimal release."""

    def extract(action):
        target = settings.install_dir
        (target / "public").mkdir(parents=True, exist_ok=True)
        (target / "storage").mkdir(exist_ok=True)
        (target / "artisan").write_text("<?php\n")
        (target / ".env.example").write_text(ENV_EXAMPLE)

    host.shell.set_side_effect("extract-release", extract)


@pytest.fixture
def fake_certbot(settings, host):
    """Make the mocked certificate client leave certificate files behind."""

    def issue(action):
        domain = action.command[action.command.index("-d") + 1]
        live = settings.letsencrypt_live_dir / domain
        live.mkdir(parents=True, exist_ok=True)
        (live / "fullchain.pem").write_text("CERT\n")
        (live / "privkey.pem").write_text("KEY\n")

    host.shell.set_side_effect("certbot", issue)


@pytest.fixture
def orchestrator(settings, registry, probe, writer, preflight) -> WorkflowOrchestrator:
    return WorkflowOrchestrator(
        settings,
        registry,
        probe=probe,
        writer=writer,
        preflight=preflight,
    )
