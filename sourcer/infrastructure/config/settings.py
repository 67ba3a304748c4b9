"""Provides functions for loading and accessing configuration settings.

Supports loading from .env files, environment variables, and a dedicated
configuration file (~/.sourcer/config.yaml), and assembles the typed
ClientConfig consumed by the marketplace API client.
"""

import logging
import os
from pathlib import Path
from typing import Any, Optional, Dict

import yaml
from dotenv import load_dotenv

from sourcer.domain.models.api import Credentials
from sourcer.domain.models.errors import ConfigurationValueError
from sourcer.infrastructure.config.client_config import (
    ClientConfig, TimeoutConfig, RetryConfig, CacheConfig, RateLimitConfig,
    DEFAULT_BASE_URL, DEFAULT_CACHE_DIR,
)

logger = logging.getLogger(__name__)

# --- Configuration Constants ---
DEFAULT_CONFIG_DIR = Path.home() / ".sourcer"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"
ENV_FILE_NAME = ".env"
ENV_PREFIX = "SOURCER_"

# Environment names used by the existing marketplace deployment
ENV_ALIASES: Dict[str, str] = {
    'credentials.access_key': 'COUPANG_ACCESS_KEY',
    'credentials.secret_key': 'COUPANG_SECRET_KEY',
    'base_url': 'COUPANG_API_BASE_URL',
    'timeouts.read': 'COUPANG_API_TIMEOUT',
    'timeouts.connect': 'COUPANG_API_CONNECT_TIMEOUT',
    'retry.max_attempts': 'COUPANG_API_RETRY_MAX',
    'retry.delay_ms': 'COUPANG_API_RETRY_DELAY',
    'retry.multiplier': 'COUPANG_API_RETRY_MULTIPLIER',
    'cache.enabled': 'COUPANG_CACHE_ENABLED',
    'cache.ttl_seconds': 'COUPANG_CACHE_TTL',
    'cache.key_prefix': 'COUPANG_CACHE_PREFIX',
    'rate_limit.enabled': 'COUPANG_RATE_LIMIT_ENABLED',
    'rate_limit.max_requests': 'COUPANG_RATE_LIMIT_MAX',
    'rate_limit.window_seconds': 'COUPANG_RATE_LIMIT_WINDOW',
}

# --- Global Configuration Store (read-only after startup) ---
_config: Dict[str, Any] = {}
_test_config: Dict[str, Any] = {}  # For testing purposes
_loaded = False

def load_configuration(
    config_file: Path = DEFAULT_CONFIG_FILE,
    env_file: Optional[Path] = None,
    force: bool = False,
) -> None:
    """Loads configuration from environment, .env file, and YAML file.

    Priority order (highest to lowest):
    1. Test overrides
    2. Environment Variables
    3. .env file
    4. YAML configuration file
    5. Default values

    Args:
        config_file: Path to the YAML configuration file.
        env_file: Path to the .env file (searches upwards from cwd if None).
        force: Reload even if configuration was already loaded.
    """
    global _config, _loaded
    if _loaded and not force:
        logger.debug("Configuration already loaded.")
        return

    _config = {}

    # 1. Load from YAML file (Lowest priority)
    if config_file.exists():
        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                yaml_config = yaml.safe_load(f)
            if isinstance(yaml_config, dict):
                _config.update(yaml_config)
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
        logger.debug("Skipping .env file loading (no .env found at or above current directory).")

    # 3. Environment Variables (Highest priority) are handled in get_config

    _loaded = True
    logger.info("Configuration loading process completed.")

def _coerce(value: str) -> Any:
    """Converts common string forms from the environment to Python types."""
    if value.lower() == 'true':
        return True
    elif value.lower() == 'false':
        return False
    try:
        if '.' in value:
            return float(value)
        return int(value)
    except (ValueError, TypeError):
        return value

def _env_names(key: str):
    yield ENV_PREFIX + key.upper().replace('.', '_')
    if key in ENV_ALIASES:
        yield ENV_ALIASES[key]

def _lookup_nested(key: str) -> Any:
    node: Any = _config
    for part in key.split('.'):
        if not isinstance(node, dict) or part not in node:
            raise KeyError(key)
        node = node[part]
    return node

def get_config(key: str, default: Any = None, coerce: bool = True) -> Any:
    """
    Get a configuration value by dotted key (e.g. 'retry.max_attempts').

    Priority:
    1. Test configuration (if in testing mode)
    2. Environment variable (SOURCER_RETRY_MAX_ATTEMPTS, or its legacy alias)
    3. YAML config (nested or flat dotted key)
    4. Default value

    Args:
        key: The configuration key
        default: Default value if the key is not found
        coerce: Convert environment strings to bool/int/float; pass False
            for values that must stay verbatim, such as keys

    Returns:
        The configuration value
    """
    if key in _test_config:
        return _test_config[key]

    for env_key in _env_names(key):
        if env_key in os.environ:
            value = os.environ[env_key]
            return _coerce(value) if coerce else value

    try:
        return _lookup_nested(key)
    except KeyError:
        pass
    if key in _config:
        return _config[key]

    logger.debug(f"Config key '{key}' not found in environment or loaded config. Returning default: {default}")
    return default

def find_dotenv_path() -> Optional[Path]:
    """Searches for the .env file upwards from the current directory."""
    cwd = Path.cwd()
    for path in [cwd] + list(cwd.parents):
        env_path = path / ENV_FILE_NAME
        if env_path.is_file():
            return env_path
    return None

# --- Typed accessors ---

def _as_bool(key: str, default: bool) -> bool:
    value = get_config(key, default)
    if isinstance(value, str):
        if value.lower() in ('true', '1', 'yes', 'on'):
            return True
        if value.lower() in ('false', '0', 'no', 'off', ''):
            return False
        raise ConfigurationValueError(f"Config '{key}' is not a boolean: '{value}'")
    return bool(value)

def _as_number(key: str, default: Any, cast=float) -> Any:
    value = get_config(key, default)
    if value is None:
        return None
    try:
        return cast(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationValueError(f"Config '{key}' is not a number: '{value}'") from e

def get_credentials() -> Credentials:
    """Convenience function to get the marketplace key pair."""
    access_key = get_config('credentials.access_key', coerce=False) or ''
    secret_key = get_config('credentials.secret_key', coerce=False) or ''
    return Credentials(access_key=str(access_key), secret_key=str(secret_key))

def build_client_config() -> ClientConfig:
    """Assembles the read-only ClientConfig from all configuration sources.

    Raises:
        ConfigurationValueError: If any value is malformed.
    """
    config = ClientConfig(
        credentials=get_credentials(),
        base_url=str(get_config('base_url', DEFAULT_BASE_URL)).rstrip('/'),
        timeouts=TimeoutConfig(
            connect=_as_number('timeouts.connect', 10.0),
            read=_as_number('timeouts.read', 30.0),
            deadline=_as_number('timeouts.deadline', None),
        ),
        retry=RetryConfig(
            max_attempts=_as_number('retry.max_attempts', 3, int),
            delay_ms=_as_number('retry.delay_ms', 1000.0),
            multiplier=_as_number('retry.multiplier', 2.0),
        ),
        cache=CacheConfig(
            enabled=_as_bool('cache.enabled', True),
            ttl_seconds=_as_number('cache.ttl_seconds', 3600, int),
            key_prefix=str(get_config('cache.key_prefix', 'coupang_api:')),
            backend=str(get_config('cache.backend', 'memory')).lower(),
            directory=Path(str(get_config('cache.directory', DEFAULT_CACHE_DIR))).expanduser(),
        ),
        rate_limit=RateLimitConfig(
            enabled=_as_bool('rate_limit.enabled', True),
            max_requests=_as_number('rate_limit.max_requests', 100, int),
            window_seconds=_as_number('rate_limit.window_seconds', 60.0),
        ),
    )
    logger.debug(
        f"Client config built: base_url={config.base_url}, credentials_configured={config.credentials.is_configured()}, "
        f"retry={config.retry}, cache={config.cache}, rate_limit={config.rate_limit}"
    )
    return config

def set_config_for_testing(config_dict: Dict[str, Any]) -> None:
    """
    Set configuration values for testing purposes.
    These values will override any existing configuration.

    Args:
        config_dict: Dictionary of configuration values to set
    """
    _test_config.update(config_dict)
    logger.debug(f"Set testing configuration: {config_dict}")

def clear_test_config() -> None:
    """Clear all testing configuration values."""
    _test_config.clear()
    logger.debug("Cleared testing configuration")
