"""
Tests for the distribution-specific dependency plans.
"""

from pathlib import Path

import pytest

from src.core.context import OSIdentity
from src.core.errors import PreflightError, PreflightErrorKind
from src.core.models.action import FileWrite, PackageInstall
from src.core.services.platform import (
    SURY_KEYRING,
    DebianProvisioner,
    UbuntuProvisioner,
    platform_for,
)


def _ubuntu(settings, version="22.04", codename="jammy"):
    return platform_for(settings, OSIdentity(id="ubuntu", version=version, codename=codename))


def _repo_names(action: PackageInstall) -> list[str]:
    return [r.name for r in action.repositories]


class TestPlatformFor:
    def test_dispatch(self, settings):
        assert isinstance(_ubuntu(settings), UbuntuProvisioner)
        assert isinstance(platform_for(settings, OSIdentity(id="debian", version="12")), DebianProvisioner)

    def test_unknown(self, settings):
        with pytest.raises(PreflightError) as exc:
            platform_for(settings, OSIdentity(id="arch", version="rolling"))
        assert exc.value.kind == PreflightErrorKind.UNSUPPORTED_OS


class TestUbuntu:
    def test_plan_shape(self, settings):
        actions = _ubuntu(settings).dependency_actions()
        assert [a.id for a in actions] == ["prerequisites", "packages"]
        assert "software-properties-common" in actions[0].packages

    def test_packages(self, settings):
        packages = _ubuntu(settings).dependency_actions()[-1].packages
        for name in ("php8.3", "php8.3-fpm", "php8.3-redis", "mariadb-server", "nginx", "redis-server"):
            assert name in packages

    def test_ppa_and_mariadb_repositories(self, settings):
        final = _ubuntu(settings).dependency_actions()[-1]
        assert _repo_names(final) == ["ondrej-php", "mariadb"]
        ppa = final.repositories[0]
        assert ppa.commands == [["add-apt-repository", "-y", "ppa:ondrej/php"]]
        assert ppa.env == {"LC_ALL": "C.UTF-8"}
        assert ppa.marker.endswith("ondrej-ubuntu-php-jammy.list")

    def test_noble_skips_mariadb_repository(self, settings):
        final = _ubuntu(settings, "24.04", "noble").dependency_actions()[-1]
        assert _repo_names(final) == ["ondrej-php"]
        assert final.repositories[0].marker.endswith("ondrej-ubuntu-php-noble.sources")

    def test_mariadb_setup_command(self, settings):
        repo = _ubuntu(settings).mariadb_repository()
        assert repo.marker == str(settings.apt_sources_dir / "mariadb.list")
        shell = repo.commands[0]
        assert shell[:2] == ["sh", "-c"]
        assert "mariadb_repo_setup | bash -s -- --mariadb-server-version=mariadb-10.11" in shell[2]


class TestDebian:
    def test_sury_repository(self, settings):
        actions = platform_for(
            settings, OSIdentity(id="debian", version="12", codename="bookworm"),
        ).dependency_actions()
        assert [a.id for a in actions] == ["prerequisites", "php-repository-key", "php-repository", "packages"]

        key = actions[1]
        assert key.repositories[0].marker == SURY_KEYRING
        assert "gpg --dearmor" in key.repositories[0].commands[0][2]

        source = actions[2]
        assert isinstance(source, FileWrite)
        assert Path(source.path) == settings.apt_sources_dir / "sury-php.list"
        assert source.content == "deb https://packages.sury.org/php/ bookworm main\n"

        assert _repo_names(actions[3]) == ["mariadb"]

    def test_codename_from_version(self, settings):
        actions = platform_for(settings, OSIdentity(id="debian", version="11")).dependency_actions()
        assert "bullseye" in actions[2].content


class TestRuntime:
    def test_fpm_service(self, settings):
        assert _ubuntu(settings).php_fpm_service() == "php8.3-fpm"

    def test_fpm_socket_path(self, settings):
        socket = _ubuntu(settings).detect_runtime_socket()
        assert socket.endswith("/php/php8.3-fpm.sock")

    def test_certificate_client(self, settings):
        action = _ubuntu(settings).certificate_client_action()
        assert action.id == "certificate-client"
        assert action.packages == ["certbot"]
