#!/usr/bin/env -S python3 -B -u
"""
Configuration loader for the IPBan Linux firewall.

Configuration file location precedence:
1. Environment variable IPBAN_FIREWALL_CONF (if set)
2. ~/ipban_firewall.yaml (user's home directory)
3. ./ipban_firewall.yaml (current directory)
4. /etc/ipban/ipban_firewall.yaml (installed location)

Only the ``firewall`` section of the file is read.
"""

import copy
import os
import yaml
import logging
from pathlib import Path
from typing import Dict, Any, Optional

from .exceptions import ConfigurationError


logger = logging.getLogger(__name__)

DEFAULT_RULE_PREFIX = 'IPBan_'


class FirewallConfig:
    """Configuration manager for the Linux firewall backend."""

    DEFAULT_CONFIG = {
        'rule_prefix': DEFAULT_RULE_PREFIX,
        'data_directory': '/var/lib/ipban',
        'chain': 'INPUT',
        'family': 'inet',
        'hash_size': 1024,
        'max_elements': {
            'block': 2097152,
            'allow': 65536,
            'block_ranges': 4194304
        },
        'commands': {
            'timeout': 60,
            'shell': '/bin/bash'
        },
        'files': {
            'table_file': 'ipban.tbl',
            'set_suffix': '.set'
        },
        'delete_retry': {
            'attempts': 10,
            'delay': 0.02
        }
    }

    def __init__(self, config_path: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None):
        """
        Initialize configuration.

        Args:
            config_path: Optional path to configuration file
            overrides: Optional values merged last, after file and environment
        """
        self.config = copy.deepcopy(self.DEFAULT_CONFIG)
        self.config_path = config_path

        if config_path:
            self._load_from_file(config_path)
        else:
            self._load_from_standard_locations()

        self._apply_env_overrides()

        if overrides:
            self._merge_config(overrides)

        logger.debug(f"Firewall config loaded: prefix={self.rule_prefix}, "
                     f"data_directory={self.data_directory}, timeout={self.command_timeout}")

    def _load_from_file(self, config_path: str):
        """Load configuration from specified file."""
        path = Path(config_path)
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {config_path}", config_file=config_path)

        try:
            with open(path, 'r') as f:
                full_config = yaml.safe_load(f) or {}
        except (yaml.YAMLError, IOError) as e:
            logger.error(f"Failed to load config from {config_path}: {e}")
            raise ConfigurationError(f"Invalid configuration file: {e}",
                                     config_file=config_path, cause=e)

        if not isinstance(full_config, dict):
            raise ConfigurationError("Configuration file must contain a mapping",
                                     config_file=config_path)

        section = full_config.get('firewall', {})
        if not isinstance(section, dict):
            raise ConfigurationError("The 'firewall' section must be a mapping",
                                     config_file=config_path)

        self._merge_config(section)
        logger.info(f"Loaded firewall config from {config_path}")

    def _load_from_standard_locations(self):
        """Load configuration from the first standard location that parses."""
        config_locations = []

        if 'IPBAN_FIREWALL_CONF' in os.environ:
            config_locations.append(os.environ['IPBAN_FIREWALL_CONF'])

        for candidate in (Path.home() / 'ipban_firewall.yaml',
                          Path('ipban_firewall.yaml'),
                          Path('/etc/ipban/ipban_firewall.yaml')):
            if candidate.exists():
                config_locations.append(str(candidate))

        for config_path in config_locations:
            try:
                self._load_from_file(config_path)
                self.config_path = config_path
                break
            except ConfigurationError as e:
                logger.warning(f"Skipping config {config_path}: {e.message}")
                continue

    def _merge_config(self, new_config: Dict[str, Any]):
        """Recursively merge new configuration into existing."""
        def merge_dict(base: dict, update: dict):
            for key, value in update.items():
                if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                    merge_dict(base[key], value)
                else:
                    base[key] = value

        merge_dict(self.config, new_config)

    def _apply_env_overrides(self):
        """Apply environment variable overrides."""
        env_mappings = {
            'IPBAN_RULE_PREFIX': (None, 'rule_prefix', str),
            'IPBAN_DATA_DIR': (None, 'data_directory', str),
            'IPBAN_CHAIN': (None, 'chain', str),
            'IPBAN_COMMAND_TIMEOUT': ('commands', 'timeout', float),
        }

        for env_var, (section, key, converter) in env_mappings.items():
            if env_var in os.environ:
                try:
                    value = converter(os.environ[env_var])
                    target = self.config if section is None else self.config[section]
                    target[key] = value
                    logger.debug(f"Applied env override: {env_var} -> {key}={value}")
                except (ValueError, KeyError) as e:
                    logger.warning(f"Invalid env variable {env_var}: {e}")

    # Convenience properties
    @property
    def rule_prefix(self) -> str:
        """Get the configured rule prefix."""
        return self.config['rule_prefix']

    @property
    def data_directory(self) -> str:
        """Get the directory holding set files and the table snapshot."""
        return self.config['data_directory']

    @property
    def chain(self) -> str:
        return self.config['chain']

    @property
    def family(self) -> str:
        return self.config['family']

    @property
    def hash_size(self) -> int:
        return int(self.config['hash_size'])

    @property
    def block_max_count(self) -> int:
        return int(self.config['max_elements']['block'])

    @property
    def allow_max_count(self) -> int:
        return int(self.config['max_elements']['allow'])

    @property
    def block_ranges_max_count(self) -> int:
        return int(self.config['max_elements']['block_ranges'])

    @property
    def command_timeout(self) -> Optional[float]:
        """Get subprocess timeout in seconds (None disables it)."""
        timeout = self.config['commands']['timeout']
        return float(timeout) if timeout else None

    @property
    def shell(self) -> str:
        return self.config['commands']['shell']

    @property
    def table_file(self) -> str:
        return self.config['files']['table_file']

    @property
    def set_suffix(self) -> str:
        return self.config['files']['set_suffix']

    @property
    def delete_retry_attempts(self) -> int:
        return int(self.config['delete_retry']['attempts'])

    @property
    def delete_retry_delay(self) -> float:
        return float(self.config['delete_retry']['delay'])

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by dot-notation key.

        Args:
            key: Configuration key (e.g., 'max_elements.block')
            default: Default value if key not found

        Returns:
            Configuration value
        """
        parts = key.split('.')
        value = self.config

        for part in parts:
            if isinstance(value, dict) and part in value:
                value = value[part]
            else:
                return default

        return value


def load_firewall_config(config_path: Optional[str] = None, **overrides: Any) -> FirewallConfig:
    """
    Load firewall configuration with proper precedence.

    Keyword overrides are applied last and take precedence over both
    the configuration file and the environment.
    """
    return FirewallConfig(config_path, overrides={k: v for k, v in overrides.items() if v is not None})
