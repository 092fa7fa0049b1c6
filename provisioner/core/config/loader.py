"""
Configuration loader — reads config.yml into ProvisionerConfig.

Lookup order:
    --config flag  >  PROVISIONER_CONFIG env var  >  ~/.config/provisioner/config.yml

A missing default file is not an error: every setting has a default.
An explicitly requested file that is missing or invalid is.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "PROVISIONER_CONFIG"
DEFAULT_CONFIG_PATH = Path("~/.config/provisioner/config.yml")

DEFAULT_SHELL_CONFIG_FILES = [
    "~/.bashrc",
    "~/.bash_profile",
    "~/.zshrc",
    "~/.profile",
]


class ConfigError(Exception):
    """Raised when configuration or a recipe is invalid or missing."""


class ProvisionerConfig(BaseModel):
    """Tool-wide settings."""

    confirmation_phrase: str = "CONFIRM"
    shell_config_files: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SHELL_CONFIG_FILES)
    )
    recipes_dir: str | None = None
    network_check_url: str = "https://deb.debian.org/"
    network_timeout: int = 10
    command_timeout: int = 1800
    backup_suffix: str = ".backup.%Y%m%d_%H%M%S"


def find_config_file(explicit: Path | None = None) -> Path | None:
    """Resolve which config file applies, if any.

    Returns the explicit path as-is (existence is checked by the
    loader), otherwise the env var path, otherwise the default path
    when it exists.
    """
    if explicit is not None:
        return explicit

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()

    default = DEFAULT_CONFIG_PATH.expanduser()
    if default.is_file():
        return default
    return None


def load_config(path: Path | None = None) -> ProvisionerConfig:
    """Load and validate provisioner configuration.

    Args:
        path: Explicit path to config.yml. If None, env var then default.

    Returns:
        Validated ProvisionerConfig (defaults when no file applies).

    Raises:
        ConfigError: If the selected file is missing or invalid.
    """
    path = find_config_file(path)
    if path is None:
        logger.debug("No config file found, using defaults")
        return ProvisionerConfig()

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return ProvisionerConfig()

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # Allow everything to sit under a top-level "provisioner" key
    if "provisioner" in data and isinstance(data["provisioner"], dict):
        data = data["provisioner"]

    try:
        config = ProvisionerConfig.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

    if not config.confirmation_phrase.strip():
        raise ConfigError("Invalid configuration: confirmation_phrase must not be blank")

    logger.info("Loaded config from %s", path)
    return config
