"""
Configuration utilities for loading and managing config files.

This module provides centralized configuration loading with:
- YAML config file parsing
- Environment variable substitution (${VAR} syntax)
- Automatic .env file loading

Usage:
    from tribora.utils.config import load_config

    config = load_config()  # Loads config with env substitution
    retry_config = config.get('retry', {})
"""
from pathlib import Path
import os
import re
from typing import Dict, Optional, Any
import logging

import yaml
from dotenv import load_dotenv

# Use standard logging to avoid circular import
logger = logging.getLogger(__name__)

# Track if .env has been loaded
_env_loaded = False

_ENV_PATTERN = re.compile(r'\$\{([^}]+)\}')


def _ensure_env_loaded():
    """Ensure .env file is loaded (once)."""
    global _env_loaded
    if not _env_loaded:
        from .paths import get_env_path
        env_path = get_env_path()
        if env_path.exists():
            load_dotenv(env_path, override=False)
            logger.debug(f"Loaded environment from {env_path}")
        _env_loaded = True


def _substitute_env_vars(value: Any) -> Any:
    """Recursively substitute ${VAR} patterns with environment variables.

    A value that is exactly one unset ${VAR} becomes None so that callers can
    apply their own defaults.
    """
    if isinstance(value, str):
        matches = _ENV_PATTERN.findall(value)
        if not matches:
            return value
        if len(matches) == 1 and value == f'${{{matches[0]}}}':
            return os.getenv(matches[0]) or None
        for var_name in matches:
            value = value.replace(f'${{{var_name}}}', os.getenv(var_name, ''))
        return value
    elif isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_substitute_env_vars(item) for item in value]
    return value


def load_config(config_path: Optional[Path] = None, substitute_env: bool = True) -> Dict:
    """Load configuration from yaml file with optional env variable substitution.

    Args:
        config_path: Optional path to config file. If not provided, will look in default location.
        substitute_env: If True, substitute ${VAR} patterns with environment variables.

    Returns:
        Dict containing configuration settings with env vars substituted.
    """
    _ensure_env_loaded()

    if config_path is None:
        env_override = os.getenv('TRIBORA_CONFIG')
        if env_override:
            config_path = Path(env_override)
        else:
            from .paths import get_config_path
            config_path = get_config_path()

    with open(config_path) as f:
        config = yaml.safe_load(f) or {}

    if substitute_env:
        config = _substitute_env_vars(config)

    return config
