"""
Tests for the install prompts.
"""

import click
import pytest
from click.testing import CliRunner

from src.ui.cli.prompt import collect, is_valid_domain

captured = {}


@click.command()
@click.option("--domain", default=None)
@click.option("--tls/--no-tls", "use_tls", default=None)
@click.option("--non-interactive", is_flag=True)
def ask(domain, use_tls, non_interactive):
    captured["answers"] = collect(domain=domain, use_tls=use_tls, interactive=not non_interactive)


@pytest.fixture(autouse=True)
def _reset():
    captured.clear()


class TestDomainValidation:
    @pytest.mark.parametrize("value", ["panel.example.com", "a.b", "my-panel.example.co.uk"])
    def test_valid(self, value):
        assert is_valid_domain(value)

    @pytest.mark.parametrize("value", [
        "localhost", "https://panel.example.com", "panel.example.com/x",
        "-bad.example.com", "panel..example.com", "has space.com", "",
    ])
    def test_invalid(self, value):
        assert not is_valid_domain(value)


class TestCollect:
    def test_prompts_for_everything(self):
        result = CliRunner().invoke(ask, input="Panel.Example.com\nsecret-pw\ny\nn\n")
        assert result.exit_code == 0, result.output
        answers = captured["answers"]
        assert answers.domain == "panel.example.com"
        assert answers.db_password.get_secret_value() == "secret-pw"
        assert answers.use_tls is True
        assert answers.auto_update is False
        assert "secret-pw" not in result.output

    def test_blank_password_means_generate(self):
        CliRunner().invoke(ask, input="panel.example.com\n\nn\nn\n")
        assert captured["answers"].db_password is None

    def test_invalid_domain_reprompted(self):
        result = CliRunner().invoke(ask, input="not a domain\npanel.example.com\n\nn\nn\n")
        assert result.exit_code == 0
        assert "is not a domain name" in result.output
        assert captured["answers"].domain == "panel.example.com"

    def test_command_line_values_not_asked(self):
        result = CliRunner().invoke(ask, ["--domain", "panel.example.com", "--tls"], input="\nn\n")
        assert result.exit_code == 0
        assert "Enter your domain" not in result.output
        assert "Let's Encrypt" not in result.output
        assert captured["answers"].use_tls is True

    def test_non_interactive_defaults(self):
        result = CliRunner().invoke(ask, ["--domain", "panel.example.com", "--non-interactive"])
        assert result.exit_code == 0
        answers = captured["answers"]
        assert answers.db_password is None
        assert answers.use_tls is False
        assert answers.auto_update is False

    def test_non_interactive_requires_domain(self):
        result = CliRunner().invoke(ask, ["--non-interactive"])
        assert result.exit_code == 2
        assert "--domain is required" in result.output

    def test_bad_domain_on_command_line(self):
        result = CliRunner().invoke(ask, ["--domain", "http://x", "--non-interactive"])
        assert result.exit_code == 2
        assert "is not a domain name" in result.output
