"""
Tests for the CLI — global options, menu, install and upgrade commands.
"""

import logging
from pathlib import Path

import pytest
from click.testing import CliRunner

from src.core.context import WorkflowContext, WorkflowState
from src.core.engine.orchestrator import WorkflowOutcome
from src.core.errors import WorkflowError
from src.core.models.step import ExecutionResult, StepStatus
from src.main import cli


class FakeOrchestrator:
    """Records the context it was given and returns a canned outcome."""

    def __init__(self, fail_at: str | None = None):
        self.fail_at = fail_at
        self.contexts: list[WorkflowContext] = []
        self.settings = None

    def _outcome(self, flow: str, ctx: WorkflowContext) -> WorkflowOutcome:
        self.contexts.append(ctx)
        ctx.log_path = Path("/var/log/prov/run.log")
        if self.fail_at:
            ctx.transition(WorkflowState.ABORTED)
            error = WorkflowError(self.fail_at, "mysql: access denied")
            results = [ExecutionResult(step_name=self.fail_at, status=StepStatus.FAILED, error_detail="x")]
            return WorkflowOutcome(flow=flow, state=ctx.state, context=ctx, results=results, error=error)
        ctx.final_url = f"http://{ctx.domain_name}"
        ctx.transition(WorkflowState.COMPLETED)
        return WorkflowOutcome(flow=flow, state=ctx.state, context=ctx)

    def install(self, ctx):
        return self._outcome("install", ctx)

    def upgrade(self, ctx):
        return self._outcome("upgrade", ctx)


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch, tmp_path):
    monkeypatch.setattr("src.core.config.loader.SYSTEM_SETTINGS_FILE", tmp_path / "absent.yml")
    for var in ("PROV_CONFIG", "PROV_DB_PASSWORD", "PROV_LOG_FILE", "PROV_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    # The CLI reconfigures the root logger
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def fake(monkeypatch):
    orch = FakeOrchestrator()

    def build(settings, quiet=False):
        orch.settings = settings
        return orch

    monkeypatch.setattr("src.main.build_orchestrator", build)
    return orch


class TestCLIGlobal:
    def test_help(self):
        result = CliRunner().invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "Paymenter panel" in result.output
        assert "install" in result.output
        assert "upgrade" in result.output

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "provisioner, version 0.1.0" in result.output

    def test_bad_settings_file(self, tmp_path):
        bad = tmp_path / "bad.yml"
        bad.write_text("no_such_key: 1\n")
        result = CliRunner().invoke(cli, ["--config", str(bad), "upgrade"])
        assert result.exit_code == 2
        assert "no_such_key" in result.output


class TestMenu:
    def test_exit_option(self):
        result = CliRunner().invoke(cli, [], input="3\n")
        assert result.exit_code == 0
        assert "1) Install Paymenter" in result.output
        assert "Exiting." in result.output

    def test_invalid_choice_reprompted(self):
        result = CliRunner().invoke(cli, [], input="7\n3\n")
        assert result.exit_code == 0
        assert "not in the range" in result.output

    def test_upgrade_option(self, fake):
        result = CliRunner().invoke(cli, [], input="2\n")
        assert result.exit_code == 0
        assert len(fake.contexts) == 1
        assert "upgrade completed" in result.output


class TestInstallCommand:
    def test_non_interactive(self, fake):
        result = CliRunner().invoke(cli, ["install", "--domain", "panel.example.com", "--non-interactive"])
        assert result.exit_code == 0, result.output
        ctx = fake.contexts[0]
        assert ctx.domain_name == "panel.example.com"
        assert ctx.use_tls is False
        assert ctx.interactive is False
        assert ctx.database_credentials is None
        assert "installation completed" in result.output
        assert "http://panel.example.com" in result.output

    def test_missing_domain(self, fake):
        result = CliRunner().invoke(cli, ["install", "--non-interactive"])
        assert result.exit_code == 2
        assert fake.contexts == []

    def test_password_passed_not_printed(self, fake):
        result = CliRunner().invoke(cli, [
            "install", "--domain", "panel.example.com", "--non-interactive",
            "--db-password", "Sup3r-Secret!",
        ])
        assert result.exit_code == 0
        creds = fake.contexts[0].database_credentials
        assert creds.password.get_secret_value() == "Sup3r-Secret!"
        assert creds.username == "paymenter"
        assert "Sup3r-Secret!" not in result.output

    def test_password_from_environment(self, fake, monkeypatch):
        monkeypatch.setenv("PROV_DB_PASSWORD", "env-secret")
        CliRunner().invoke(cli, ["install", "--domain", "panel.example.com", "--non-interactive"])
        assert fake.contexts[0].database_credentials.password.get_secret_value() == "env-secret"

    def test_flags(self, fake):
        CliRunner().invoke(cli, [
            "install", "--domain", "panel.example.com", "--non-interactive",
            "--tls", "--auto-update", "--email", "ops@example.com",
        ])
        ctx = fake.contexts[0]
        assert ctx.use_tls is True
        assert ctx.auto_update is True
        assert fake.settings.certbot_email == "ops@example.com"

    def test_interactive_prompts(self, fake):
        result = CliRunner().invoke(cli, ["install"], input="panel.example.com\n\ny\nn\n")
        assert result.exit_code == 0, result.output
        ctx = fake.contexts[0]
        assert ctx.use_tls is True
        assert ctx.interactive is True

    def test_failure_reported(self, fake):
        fake.fail_at = "provision-database"
        result = CliRunner().invoke(cli, ["install", "--domain", "panel.example.com", "--non-interactive"])
        assert result.exit_code == 1
        assert "aborted at step 'provision-database'" in result.output
        assert "mysql: access denied" in result.output
        assert "/var/log/prov/run.log" in result.output

    def test_settings_file_applied(self, fake, tmp_path):
        path = tmp_path / "p.yml"
        path.write_text("install_dir: /srv/panel\n")
        CliRunner().invoke(cli, ["-c", str(path), "install", "--domain", "panel.example.com", "--non-interactive"])
        assert fake.contexts[0].target_directory == Path("/srv/panel")


class TestUpgradeCommand:
    def test_success(self, fake):
        result = CliRunner().invoke(cli, ["upgrade", "--non-interactive"])
        assert result.exit_code == 0
        assert fake.contexts[0].interactive is False
        assert "upgrade completed" in result.output

    def test_not_installed(self, fake):
        fake.fail_at = "verify-installed"
        result = CliRunner().invoke(cli, ["upgrade"])
        assert result.exit_code == 1
        assert "Upgrade aborted at step 'verify-installed'" in result.output
