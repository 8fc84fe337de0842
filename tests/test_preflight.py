"""
Tests for the preflight checks.
"""

import pytest

from src.core.errors import PreflightError, PreflightErrorKind
from src.core.services.preflight import PreflightChecker, read_os_release

from tests.conftest import DiskUsage


def _checker(settings, probe, *, euid=0, free_mb=10_000):
    return PreflightChecker(
        settings,
        probe,
        geteuid=lambda: euid,
        disk_usage=lambda path: DiskUsage(total=0, used=0, free=free_mb * 1024 * 1024),
    )


class TestOsRelease:
    def test_parses_quoted_values(self, tmp_path):
        path = tmp_path / "os-release"
        path.write_text('# comment\nNAME="Debian GNU/Linux"\nID=debian\nVERSION_ID="12"\n\nbroken line\n')
        assert read_os_release(path) == {"NAME": "Debian GNU/Linux", "ID": "debian", "VERSION_ID": "12"}


class TestChecks:
    def test_all_pass(self, settings, probe, ctx):
        _checker(settings, probe).check(ctx)
        assert ctx.detected_os.id == "ubuntu"
        assert ctx.detected_os.version == "22.04"
        assert ctx.detected_os.codename == "jammy"

    def test_not_root(self, settings, probe, ctx):
        with pytest.raises(PreflightError) as exc:
            _checker(settings, probe, euid=1000).check(ctx)
        assert exc.value.kind == PreflightErrorKind.INSUFFICIENT_PRIVILEGE
        assert ctx.detected_os is None

    def test_low_disk(self, settings, probe, ctx):
        with pytest.raises(PreflightError) as exc:
            _checker(settings, probe, free_mb=100).check(ctx)
        assert exc.value.kind == PreflightErrorKind.INSUFFICIENT_DISK_SPACE
        assert "100 MB free" in exc.value.message

    def test_disk_checked_on_nearest_existing_parent(self, settings, probe, ctx):
        seen = []

        def usage(path):
            seen.append(path)
            return DiskUsage(total=0, used=0, free=10**12)

        PreflightChecker(settings, probe, geteuid=lambda: 0, disk_usage=usage).check(ctx)
        assert seen[0].exists()
        assert ctx.target_directory.is_relative_to(seen[0])

    @pytest.mark.parametrize("release", [
        'ID=debian\nVERSION_ID="10"\n',
        'ID=ubuntu\nVERSION_ID="18.04"\n',
        'ID=fedora\nVERSION_ID="40"\n',
    ])
    def test_unsupported_os(self, settings, probe, ctx, release):
        settings.os_release_path.write_text(release)
        with pytest.raises(PreflightError) as exc:
            _checker(settings, probe).check(ctx)
        assert exc.value.kind == PreflightErrorKind.UNSUPPORTED_OS
        assert "ubuntu 20.04, 22.04, 24.04" in exc.value.message

    def test_missing_os_release(self, settings, probe, ctx):
        settings.os_release_path.unlink()
        with pytest.raises(PreflightError) as exc:
            _checker(settings, probe).check(ctx)
        assert exc.value.kind == PreflightErrorKind.UNSUPPORTED_OS

    def test_debian_supported(self, settings, probe, ctx):
        settings.os_release_path.write_text('ID=debian\nVERSION_ID="12"\nVERSION_CODENAME=bookworm\n')
        _checker(settings, probe).check(ctx)
        assert str(ctx.detected_os) == "debian 12"

    def test_database_unreachable(self, settings, probe, ctx):
        probe.db_reachable = False
        with pytest.raises(PreflightError) as exc:
            _checker(settings, probe).check(ctx)
        assert exc.value.kind == PreflightErrorKind.DEPENDENCY_UNREACHABLE

    def test_dependencies_can_be_deferred(self, settings, probe, ctx):
        probe.db_reachable = False
        _checker(settings, probe).check(ctx, include_dependencies=False)
        assert ctx.detected_os is not None

    def test_first_failure_wins(self, settings, probe, ctx):
        settings.os_release_path.write_text("ID=fedora\n")
        probe.db_reachable = False
        with pytest.raises(PreflightError) as exc:
            _checker(settings, probe, euid=1000, free_mb=1).check(ctx)
        assert exc.value.kind == PreflightErrorKind.INSUFFICIENT_PRIVILEGE
