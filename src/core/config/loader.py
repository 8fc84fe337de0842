"""
Settings loader — reads the provisioner YAML into ``ProvisionSettings``.

Lookup order:
    explicit path  >  PROV_CONFIG env var  >  /etc/panel-provisioner.yml
    >  built-in defaults

The YAML may wrap everything under a ``provisioner`` key or be flat.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from src.core.errors import SettingsError
from src.core.models.settings import ProvisionSettings

logger = logging.getLogger(__name__)

SYSTEM_SETTINGS_FILE = Path("/etc/panel-provisioner.yml")
ENV_VAR = "PROV_CONFIG"


def find_settings_file(path: Path | None = None) -> Path | None:
    """Resolve which settings file to load, if any.

    An explicit path or ``PROV_CONFIG`` must exist; the system-wide file
    is optional.
    """
    if path is not None:
        return path
    env_path = os.environ.get(ENV_VAR)
    if env_path:
        return Path(env_path)
    if SYSTEM_SETTINGS_FILE.is_file():
        return SYSTEM_SETTINGS_FILE
    return None


def load_settings(path: Path | None = None) -> ProvisionSettings:
    """Load and validate provisioner settings.

    Args:
        path: Explicit settings file. If None, see the lookup order above.

    Returns:
        Validated settings (defaults when no file applies).

    Raises:
        SettingsError: If the file is missing, unreadable or invalid.
    """
    path = find_settings_file(path)
    if path is None:
        logger.debug("No settings file, using defaults")
        return ProvisionSettings()

    if not path.is_file():
        raise SettingsError(f"Settings file not found: {path}")

    logger.debug("Loading settings from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SettingsError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise SettingsError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise SettingsError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    if "provisioner" in data:
        data = data["provisioner"] or {}
        if not isinstance(data, dict):
            raise SettingsError(f"'provisioner' in {path} must be a mapping")

    try:
        settings = ProvisionSettings.model_validate(data)
    except ValidationError as e:
        raise SettingsError(f"Invalid settings in {path}: {e}") from e

    logger.info("Loaded settings for '%s' from %s", settings.app_name, path)
    return settings
