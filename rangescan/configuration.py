# rangescan/configuration.py

"""
Configuration loader for rangescan.

Settings come from a YAML file (rangescan.yaml by default). Values found in
the file are merged over DEFAULT_CONFIG; command-line options are applied
on top of the result by the CLI.
"""

import os
import yaml
from typing import Dict, Any, Optional

# This dictionary holds the default structure and values for our config.
# It is also what --write-config dumps as a starting point.
DEFAULT_CONFIG = {
    'parallelism': 64,
    'timeout_ms': 3000,
    'port': 443,
    # Hostnames sent as SNI/Host to every target. Empty means plain TCP connect.
    'test_identifiers': [],
    'ledger_file': 'rangescan.ledger',
    'output_file': None,
    'verify_tls': True,
    # Buffered input lines above which reading from the input is paused.
    'high_water_mark': 65535,
}

DEFAULT_CONFIG_PATH = "rangescan.yaml"


class ConfigError(ValueError):
    """Raised when a configuration file cannot be read or is invalid."""


def get_config_path(path: Optional[str] = None) -> str:
    """Returns the path to the config file."""
    return path or DEFAULT_CONFIG_PATH


def save_config(config: Dict[str, Any], path: Optional[str] = None) -> str:
    """Saves the provided configuration dictionary as YAML and returns the path."""
    config_path = get_config_path(path)
    try:
        with open(config_path, 'w') as f:
            f.write("# rangescan Configuration File\n")
            f.write("# Command-line options override these settings.\n\n")
            yaml.dump(config, f, sort_keys=False, default_flow_style=False, indent=2)
    except IOError as e:
        raise ConfigError(f"Could not write config file to '{config_path}': {e}") from e
    return config_path


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Loads configuration from a YAML file.

    Without an explicit path, a missing rangescan.yaml simply means defaults.
    An explicit path that doesn't exist, or any file that fails to parse,
    raises ConfigError.
    """
    config_path = get_config_path(path)
    config = DEFAULT_CONFIG.copy()
    if path is None and not os.path.exists(config_path):
        return config

    try:
        with open(config_path, 'r') as f:
            user_config = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigError(f"Configuration file '{config_path}' not found.") from None
    except IOError as e:
        raise ConfigError(f"Could not read '{config_path}': {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing '{config_path}': {e}") from e

    # Merge user config with defaults to ensure all keys are present
    if isinstance(user_config, dict):
        config.update(user_config)
    return validate_config(config)


def validate_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Checks value ranges; raises ConfigError on the first bad value."""
    def _int(key: str, low: int, high: Optional[int] = None) -> None:
        value = config.get(key)
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigError(f"'{key}' must be an integer, got {value!r}")
        if value < low or (high is not None and value > high):
            bounds = f"between {low} and {high}" if high is not None else f"at least {low}"
            raise ConfigError(f"'{key}' must be {bounds}, got {value}")

    _int('parallelism', 1)
    _int('timeout_ms', 1)
    _int('port', 1, 65535)
    _int('high_water_mark', 1)

    identifiers = config.get('test_identifiers') or []
    if isinstance(identifiers, str):
        identifiers = [identifiers]
    if not all(isinstance(i, str) and i for i in identifiers):
        raise ConfigError(f"'test_identifiers' must be a list of hostnames, got {identifiers!r}")
    config['test_identifiers'] = list(identifiers)
    config['verify_tls'] = bool(config.get('verify_tls', True))
    return config
