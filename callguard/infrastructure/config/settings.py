"""Provides functions for loading and accessing configuration settings.

Supports loading from .env files, environment variables, and a dedicated
YAML configuration file (e.g., ~/.callguard/config.yaml). Also builds the
per-upstream ResilienceSettings consumed by the gateway.
"""

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# --- Configuration Constants ---
DEFAULT_CONFIG_DIR = Path.home() / ".callguard"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"
ENV_FILE_NAME = ".env"

DEFAULT_CLAUDE_API_URL = "https://api.anthropic.com/v1/messages"
DEFAULT_CLAUDE_API_VERSION = "2023-06-01"
DEFAULT_CLAUDE_MODEL = "claude-3-5-sonnet-20240620"
DEFAULT_MONDAY_API_URL = "https://api.monday.com/v2"

# --- Global Configuration Store ---
_config: Dict[str, Any] = {}
_test_config: Dict[str, Any] = {}
_loaded = False


def _flatten(data: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    """Flattens nested YAML mappings into dotted keys ('claude.api_url')."""
    flat: Dict[str, Any] = {}
    for key, value in data.items():
        dotted = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.update(_flatten(value, prefix=f"{dotted}."))
        else:
            flat[dotted] = value
    return flat


def load_configuration(config_file: Path = DEFAULT_CONFIG_FILE, env_file: Optional[Path] = None) -> None:
    """Loads configuration from environment, .env file, and YAML file.

    Priority order (highest to lowest):
    1. Environment Variables
    2. .env file
    3. YAML configuration file
    4. Default values

    Args:
        config_file: Path to the YAML configuration file.
        env_file: Path to the .env file (searches upwards from cwd if None).
    """
    global _config, _loaded
    if _loaded:
        logger.debug("Configuration already loaded.")
        return

    _config = {}

    # 1. Load from YAML file (Lowest priority)
    if config_file.exists():
        try:
            with open(config_file, 'r') as f:
                yaml_config = yaml.safe_load(f)
            if isinstance(yaml_config, dict):
                _config.update(_flatten(yaml_config))
                logger.info(f"Loaded configuration from YAML: {config_file}")
            elif yaml_config is not None:
                logger.warning(f"YAML config file {config_file} did not contain a dictionary.")
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load or parse YAML config {config_file}: {e}")
    else:
        logger.debug(f"YAML config file not found: {config_file}")

    # 2. Load from .env file (Medium priority)
    dotenv_path = env_file or find_dotenv_path()
    if dotenv_path:
        # override=False: ENV VARS take precedence
        if load_dotenv(dotenv_path=dotenv_path, override=False):
            logger.info(f"Loaded environment variables from: {dotenv_path}")
    else:
        logger.debug("Skipping .env file loading (no file found).")

    # 3. Environment Variables (Highest priority) are handled in get_config
    _loaded = True
    logger.info("Configuration loading process completed.")


def env_key_for(key: str) -> str:
    """Maps a dotted config key to its environment variable name."""
    return key.upper().replace('.', '_').replace('-', '_')


def _coerce(value: str) -> Any:
    if value.lower() == 'true':
        return True
    if value.lower() == 'false':
        return False
    try:
        if '.' in value:
            return float(value)
        return int(value)
    except (ValueError, TypeError):
        return value


def get_config(key: str, default: Any = None) -> Any:
    """
    Get a configuration value by key.

    Priority:
    1. Test configuration (if in testing mode)
    2. Environment variable
    3. YAML config
    4. Default value

    Args:
        key: The configuration key, e.g. 'claude.rate_limit_max_requests'
        default: Default value if the key is not found

    Returns:
        The configuration value
    """
    if key in _test_config:
        return _test_config[key]

    env_key = env_key_for(key)
    if env_key in os.environ:
        return _coerce(os.environ[env_key])

    if key in _config:
        return _config[key]

    return default


def find_dotenv_path() -> Optional[Path]:
    """Searches for the .env file upwards from the current directory."""
    cwd = Path.cwd()
    for path in [cwd] + list(cwd.parents):
        env_path = path / ENV_FILE_NAME
        if env_path.is_file():
            return env_path
    return None


# --- Resilience Settings ---

@dataclass(frozen=True)
class ResilienceSettings:
    """Every tunable of one upstream's gateway."""
    rate_limit_max_requests: int = 10
    rate_limit_window_s: float = 60.0
    breaker_failure_threshold: int = 3
    breaker_cooldown_s: float = 60.0
    queue_capacity: int = 100
    queue_concurrency: int = 1
    queue_cooldown_s: float = 0.2
    queue_timeout_grace_s: float = 5.0
    max_retries: int = 3
    backoff_base_s: float = 1.0
    backoff_max_s: float = 60.0
    shrink_ratio: float = 0.8
    shrink_floor: int = 100
    request_timeout_s: float = 30.0

    def __post_init__(self) -> None:
        positive = (
            "rate_limit_max_requests", "rate_limit_window_s", "breaker_failure_threshold",
            "breaker_cooldown_s", "queue_capacity", "queue_concurrency", "backoff_base_s",
            "backoff_max_s", "shrink_floor", "request_timeout_s",
        )
        for name in positive:
            if getattr(self, name) <= 0:
                raise ValueError(f"Resilience setting '{name}' must be positive.")
        if self.max_retries < 0 or self.queue_cooldown_s < 0 or self.queue_timeout_grace_s < 0:
            raise ValueError("Retry count, queue cooldown and grace cannot be negative.")
        if not 0 < self.shrink_ratio < 1:
            raise ValueError("Shrink ratio must be between 0 and 1.")


# Per-upstream defaults that differ from ResilienceSettings()
UPSTREAM_DEFAULTS: Dict[str, Dict[str, Any]] = {
    "monday": {
        "backoff_base_s": 0.1,
        "backoff_max_s": 5.0,
        "request_timeout_s": 10.0,
    },
}


def load_resilience_settings(upstream: str) -> ResilienceSettings:
    """Builds the ResilienceSettings for an upstream.

    Each knob is looked up as '<upstream>.<knob>', then 'resilience.<knob>',
    then falls back to the upstream default.
    """
    base = replace(ResilienceSettings(), **UPSTREAM_DEFAULTS.get(upstream, {}))
    overrides: Dict[str, Any] = {}
    for f in fields(ResilienceSettings):
        value = get_config(f"{upstream}.{f.name}", get_config(f"resilience.{f.name}"))
        if value is not None:
            overrides[f.name] = type(getattr(base, f.name))(value)
    settings = replace(base, **overrides)
    logger.debug(f"Resilience settings for '{upstream}': {settings}")
    return settings


# --- Convenience Functions ---

def get_claude_api_key() -> Optional[str]:
    key = get_config('claude.api_key')
    return str(key) if key is not None else None


def get_monday_api_token() -> Optional[str]:
    token = get_config('monday.api_token')
    return str(token) if token is not None else None


def set_config_for_testing(config_dict: Dict[str, Any]) -> None:
    """
    Set configuration values for testing purposes.
    These values will override any existing configuration.
    """
    _test_config.update(config_dict)
    logger.debug(f"Set testing configuration: {config_dict}")


def clear_test_config() -> None:
    """Clear all testing configuration values."""
    _test_config.clear()
    logger.debug("Cleared testing configuration")
