"""
Tests for settings loading — YAML parsing and validation.
"""

import textwrap
from pathlib import Path

import pytest

from src.core.config import loader
from src.core.config.loader import find_settings_file, load_settings
from src.core.errors import SettingsError


@pytest.fixture(autouse=True)
def _no_system_settings(monkeypatch, tmp_path):
    monkeypatch.setattr(loader, "SYSTEM_SETTINGS_FILE", tmp_path / "absent.yml")
    monkeypatch.delenv("PROV_CONFIG", raising=False)


@pytest.fixture
def settings_yml(tmp_path: Path) -> Path:
    content = textwrap.dedent("""\
        app_name: billing
        install_dir: /srv/billing
        php_version: "8.2"
        db_port: 3307
        supported_os:
          debian: ["12"]
    """)
    path = tmp_path / "provisioner.yml"
    path.write_text(content)
    return path


class TestLoadSettings:
    def test_defaults_without_file(self):
        settings = load_settings()
        assert settings.app_name == "paymenter"
        assert settings.install_dir == Path("/var/www/paymenter")

    def test_flat_file(self, settings_yml: Path):
        settings = load_settings(settings_yml)
        assert settings.app_name == "billing"
        assert settings.install_dir == Path("/srv/billing")
        assert settings.db_port == 3307
        assert settings.supported_os == {"debian": ["12"]}
        assert settings.unit_name == "billing.service"
        assert settings.php_packages[:2] == ["php8.2", "php8.2-common"]

    def test_wrapped_file(self, tmp_path: Path):
        path = tmp_path / "p.yml"
        path.write_text("provisioner:\n  db_name: panel\n")
        assert load_settings(path).db_name == "panel"

    def test_empty_file(self, tmp_path: Path):
        path = tmp_path / "p.yml"
        path.write_text("")
        assert load_settings(path).app_name == "paymenter"

    def test_env_var(self, settings_yml: Path, monkeypatch):
        monkeypatch.setenv("PROV_CONFIG", str(settings_yml))
        assert load_settings().app_name == "billing"

    def test_system_file(self, settings_yml: Path, monkeypatch):
        monkeypatch.setattr(loader, "SYSTEM_SETTINGS_FILE", settings_yml)
        assert find_settings_file() == settings_yml
        assert load_settings().app_name == "billing"


class TestInvalidSettings:
    def test_missing_explicit_file(self, tmp_path: Path):
        with pytest.raises(SettingsError, match="not found"):
            load_settings(tmp_path / "nope.yml")

    def test_missing_env_file(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("PROV_CONFIG", str(tmp_path / "nope.yml"))
        with pytest.raises(SettingsError, match="not found"):
            load_settings()

    def test_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "p.yml"
        path.write_text("app_name: [unclosed\n")
        with pytest.raises(SettingsError, match="Invalid YAML"):
            load_settings(path)

    def test_not_a_mapping(self, tmp_path: Path):
        path = tmp_path / "p.yml"
        path.write_text("- a\n- b\n")
        with pytest.raises(SettingsError, match="mapping"):
            load_settings(path)

    def test_unknown_key(self, tmp_path: Path):
        path = tmp_path / "p.yml"
        path.write_text("no_such_setting: 1\n")
        with pytest.raises(SettingsError, match="no_such_setting"):
            load_settings(path)

    def test_wrong_type(self, tmp_path: Path):
        path = tmp_path / "p.yml"
        path.write_text("db_port: lots\n")
        with pytest.raises(SettingsError, match="db_port"):
            load_settings(path)
