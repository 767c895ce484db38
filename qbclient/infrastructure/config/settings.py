"""Provides functions for loading and accessing configuration settings.

Supports loading from .env files, environment variables, and a YAML
configuration file (``~/.qbclient/config.yaml``). ``load_client_settings``
turns the merged configuration into the ``ClientSettings`` used to build a
client.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

import yaml
from dotenv import load_dotenv

from qbclient.domain.models.common import (
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_INITIAL_DELAY_S,
    DEFAULT_MAX_DELAY_S,
    DEFAULT_MAX_RETRIES,
    DEFAULT_REQUEST_TIMEOUT_S,
    RetryPolicy,
)

logger = logging.getLogger(__name__)

# --- Configuration Constants ---
DEFAULT_CONFIG_DIR = Path.home() / ".qbclient"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"
ENV_FILE_NAME = ".env"
DEFAULT_BASE_URL = "https://api.quickbase.com/v1"

# --- Global Configuration Store ---
_config: Dict[str, Any] = {}
_test_config: Dict[str, Any] = {}
_loaded = False


def load_configuration(config_file: Optional[Path] = None, env_file: Optional[Path] = None,
                       force: bool = False) -> None:
    """Loads configuration from environment, .env file, and YAML file.

    Priority order (highest to lowest):
    1. Environment Variables
    2. .env file
    3. YAML configuration file
    4. Default values

    Args:
        config_file: Path to the YAML configuration file (defaults to
            ~/.qbclient/config.yaml).
        env_file: Path to the .env file (searches upwards from cwd if None).
        force: Reload even if configuration was already loaded.
    """
    global _config, _loaded
    if _loaded and not force:
        logger.debug("Configuration already loaded.")
        return

    config_file = config_file or DEFAULT_CONFIG_FILE
    _config = {}

    # 1. YAML file (lowest priority)
    if config_file.exists():
        try:
            with open(config_file, "r", encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load or parse YAML config {config_file}: {e}")
        else:
            if isinstance(yaml_config, dict):
                _config.update(yaml_config)
                logger.info(f"Loaded configuration from YAML: {config_file}")
            elif yaml_config is not None:
                logger.warning(f"YAML config file {config_file} did not contain a dictionary.")
    else:
        logger.debug(f"YAML config file not found: {config_file}")

    # 2. .env file; override=False keeps real environment variables on top
    dotenv_path = env_file or find_dotenv_path()
    if dotenv_path:
        if load_dotenv(dotenv_path=dotenv_path, override=False):
            logger.info(f"Loaded environment variables from: {dotenv_path}")
    else:
        logger.debug("No .env file found at or above the current directory.")

    # 3. Environment variables are read on demand by get_config
    _loaded = True


def _coerce(value: str) -> Any:
    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False
    try:
        if "." in value:
            return float(value)
        return int(value)
    except (ValueError, TypeError):
        return value


def _lookup(config: Mapping[str, Any], key: str) -> Any:
    """Finds `key` as a flat key first, then as a dotted path into nested dicts."""
    if key in config:
        return config[key]
    node: Any = config
    for part in key.split("."):
        if not isinstance(node, Mapping) or part not in node:
            return None
        node = node[part]
    return node


def get_config(key: str, default: Any = None) -> Any:
    """Get a configuration value by key.

    Priority:
    1. Test configuration
    2. Environment variable (key upper-cased)
    3. YAML config (flat or dotted nested key)
    4. Default value
    """
    if key in _test_config:
        return _test_config[key]

    env_key = key.upper()
    if env_key in os.environ:
        return _coerce(os.environ[env_key])

    if not _loaded:
        load_configuration()

    value = _lookup(_config, key)
    if value is not None:
        return value

    logger.debug(f"Config key '{key}' not found. Returning default: {default}")
    return default


def find_dotenv_path() -> Optional[Path]:
    """Searches for the .env file upwards from the current directory."""
    cwd = Path.cwd()
    for path in [cwd] + list(cwd.parents):
        env_path = path / ENV_FILE_NAME
        if env_path.is_file():
            return env_path
    return None


def set_config_for_testing(config_dict: Dict[str, Any]) -> None:
    """Overrides configuration values; used by tests."""
    _test_config.update(config_dict)
    logger.debug(f"Set testing configuration: {config_dict}")


def clear_test_config() -> None:
    """Clear all testing configuration values."""
    _test_config.clear()


# --- Client Settings ---

@dataclass(frozen=True)
class ClientSettings:
    """Everything needed to build a Client."""
    realm: Optional[str] = None
    user_token: Optional[str] = None
    base_url: str = DEFAULT_BASE_URL
    max_retries: int = DEFAULT_MAX_RETRIES
    initial_delay: float = DEFAULT_INITIAL_DELAY_S
    max_delay: float = DEFAULT_MAX_DELAY_S
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT_S
    throttle_limit: Optional[int] = None  # requests per 10 s; None disables throttling
    read_only: bool = False
    auto_paginate: bool = False
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            initial_delay=self.initial_delay,
            max_delay=self.max_delay,
            backoff_multiplier=self.backoff_multiplier,
        )


def _first_config(env_key: str, yaml_key: str, default: Any = None) -> Any:
    value = get_config(env_key)
    if value is None:
        value = get_config(yaml_key)
    return default if value is None else value


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _optional(converter: Callable[[Any], Any]) -> Callable[[Any], Any]:
    def convert(value: Any) -> Any:
        if value is None or value == "":
            return None
        return converter(value)
    return convert


# (field, env key, yaml key, converter)
_SETTINGS_KEYS = (
    ("realm", "QB_REALM", "realm", _optional(str)),
    ("user_token", "QB_USER_TOKEN", "auth.user_token", _optional(str)),
    ("base_url", "QB_BASE_URL", "base_url", str),
    ("max_retries", "QB_MAX_RETRIES", "retry.max_retries", int),
    ("initial_delay", "QB_INITIAL_DELAY", "retry.initial_delay", float),
    ("max_delay", "QB_MAX_DELAY", "retry.max_delay", float),
    ("backoff_multiplier", "QB_BACKOFF_MULTIPLIER", "retry.backoff_multiplier", float),
    ("request_timeout", "QB_REQUEST_TIMEOUT", "request_timeout", float),
    ("throttle_limit", "QB_THROTTLE_LIMIT", "throttle.limit", _optional(int)),
    ("read_only", "QB_READ_ONLY", "read_only", _as_bool),
    ("auto_paginate", "QB_AUTO_PAGINATE", "auto_paginate", _as_bool),
    ("log_level", "QB_LOG_LEVEL", "logging.level", str),
    ("log_file", "QB_LOG_FILE", "logging.file", _optional(str)),
)


def load_client_settings(**overrides: Any) -> ClientSettings:
    """Builds ClientSettings from configuration, with keyword overrides on top."""
    defaults = ClientSettings()
    values: Dict[str, Any] = {}
    for field_name, env_key, yaml_key, converter in _SETTINGS_KEYS:
        raw = _first_config(env_key, yaml_key, getattr(defaults, field_name))
        try:
            values[field_name] = converter(raw)
        except (TypeError, ValueError):
            logger.warning(f"Invalid value {raw!r} for {env_key}; using default {getattr(defaults, field_name)!r}.")
            values[field_name] = getattr(defaults, field_name)
    values.update({k: v for k, v in overrides.items() if v is not None})
    return ClientSettings(**values)
