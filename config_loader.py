"""Configuration loader with YAML support and environment variable substitution."""

import copy
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import yaml


DEFAULT_BOT_USER = 'esa_bot'
DEFAULT_REQUEST_DELAY = 0.5
DEFAULT_TIMEOUT = 30
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BACKOFF = 2.0


class ConfigLoader:
    """Handles loading and validation of configuration files."""

    ENV_VAR_PATTERN = re.compile(r'\$\{([A-Za-z_][A-Za-z0-9_]*)\}')
    TEAM_PATTERN = re.compile(r'^[A-Za-z0-9][A-Za-z0-9.\-]*$')

    @classmethod
    def load(cls, config_path: str) -> Dict[str, Any]:
        """
        Load configuration from YAML file with environment variable substitution.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            Parsed configuration dictionary

        Raises:
            FileNotFoundError: If config file doesn't exist
            yaml.YAMLError: If YAML parsing fails
        """
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f)

        if not isinstance(config_data, dict):
            raise ValueError("Configuration file must contain a dictionary")

        return cls._substitute_env_vars_recursive(config_data)

    @classmethod
    def validate(cls, config: Dict[str, Any], dry_run: bool = False) -> None:
        """
        Validate configuration for required fields and correct values.

        Args:
            config: Configuration dictionary to validate
            dry_run: Credentials are not required when nothing is sent

        Raises:
            ValueError: If validation fails
        """
        cls._validate_required_field(config, 'kibela.export_dir')
        cls._validate_required_field(config, 'kibela.team')
        cls._validate_required_field(config, 'esa.team')
        cls._validate_required_field(config, 'migration.root_category')

        for team_field in ('kibela.team', 'esa.team'):
            team = str(get_nested(config, team_field))
            if not cls.TEAM_PATTERN.match(team):
                raise ValueError(f"{team_field} is not a valid team name: {team}")

        export_dir = get_nested(config, 'kibela.export_dir')
        if not os.path.isdir(export_dir):
            raise ValueError(f"kibela.export_dir '{export_dir}' is not a valid directory")

        if not dry_run:
            cls._validate_required_field(config, 'esa.access_token')
            cls._validate_required_field(config, 'migration.output_path')

        user_mappings = get_nested(config, 'esa.user_mappings', {}) or {}
        if not isinstance(user_mappings, dict):
            raise ValueError("esa.user_mappings must be a mapping of Kibela handle to esa screen name")

        delay = get_nested(config, 'migration.request_delay', DEFAULT_REQUEST_DELAY)
        if not isinstance(delay, (int, float)) or delay < 0:
            raise ValueError("migration.request_delay must be a non-negative number")

        timeout = get_nested(config, 'advanced.request_timeout', DEFAULT_TIMEOUT)
        if not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ValueError("advanced.request_timeout must be a positive number")

        max_retries = get_nested(config, 'advanced.max_retries', DEFAULT_MAX_RETRIES)
        if not isinstance(max_retries, int) or max_retries < 0:
            raise ValueError("advanced.max_retries must be a non-negative integer")

        backoff = get_nested(config, 'advanced.retry_backoff_factor', DEFAULT_RETRY_BACKOFF)
        if not isinstance(backoff, (int, float)) or backoff < 0:
            raise ValueError("advanced.retry_backoff_factor must be a non-negative number")

    @classmethod
    def merge_with_args(cls, config: Dict[str, Any], args) -> Dict[str, Any]:
        """
        Merge configuration file with CLI arguments.
        CLI arguments take precedence over config file values.

        Args:
            config: Base configuration dictionary
            args: CLI arguments with attributes matching config keys

        Returns:
            Merged configuration dictionary
        """
        merged = copy.deepcopy(config)

        for section in ('kibela', 'esa', 'migration', 'logging'):
            if not isinstance(merged.get(section), dict):
                merged[section] = {}

        if getattr(args, 'dry_run', None) is not None:
            merged['migration']['dry_run'] = args.dry_run

        if getattr(args, 'output', None):
            merged['migration']['output_path'] = args.output

        if getattr(args, 'export_dir', None):
            merged['kibela']['export_dir'] = args.export_dir

        if getattr(args, 'log_file', None):
            merged['logging']['file'] = args.log_file

        verbose = getattr(args, 'verbose', 0) or 0
        if verbose >= 2:
            merged['logging']['level'] = 'DEBUG'
        elif verbose == 1:
            merged['logging']['level'] = 'INFO'

        return merged

    @classmethod
    def _substitute_env_vars_recursive(cls, data: Any) -> Any:
        """Recursively substitute environment variables in data structure."""
        if isinstance(data, dict):
            return {key: cls._substitute_env_vars_recursive(value) for key, value in data.items()}
        elif isinstance(data, list):
            return [cls._substitute_env_vars_recursive(item) for item in data]
        elif isinstance(data, str):
            return cls._substitute_env_vars(data)
        else:
            return data

    @classmethod
    def _substitute_env_vars(cls, value: str) -> str:
        """Substitute environment variables in a string value."""
        def replace_match(match):
            env_value = os.getenv(match.group(1))
            return env_value if env_value is not None else match.group(0)

        return cls.ENV_VAR_PATTERN.sub(replace_match, value)

    @staticmethod
    def _validate_required_field(config_section: dict, field_path: str) -> None:
        """Validate that a required field exists and has a value."""
        value = get_nested(config_section, field_path)
        if value is None or value == '':
            raise ValueError(f"Missing required configuration: {field_path}")

        if isinstance(value, str) and '${' in value:
            match = ConfigLoader.ENV_VAR_PATTERN.search(value)
            var_name = match.group(1) if match else value
            raise ValueError(
                f"Configuration field '{field_path}' contains unsubstituted environment variable: {value}. "
                f"Please set the {var_name} environment variable or provide a value in config file."
            )


@dataclass(frozen=True)
class MigrationConfig:
    """
    Settings for one migration run.

    Built once from the loaded YAML dictionary and handed to every component,
    so nothing downstream reads configuration from process state.
    """

    kibela_dir: str
    kibela_team: str
    esa_team: str
    root_category: str
    esa_access_token: str = ''
    kibela_session_id: str = ''
    user_mappings: Dict[str, str] = field(default_factory=dict)
    bot_user: str = DEFAULT_BOT_USER
    output_path: Optional[str] = None
    report_path: Optional[str] = None
    dry_run: bool = False
    skip_invalid_notes: bool = True
    request_delay: float = DEFAULT_REQUEST_DELAY
    request_timeout: float = DEFAULT_TIMEOUT
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_backoff_factor: float = DEFAULT_RETRY_BACKOFF

    @property
    def kibela_url(self) -> str:
        return f"https://{self.kibela_team}.kibe.la"

    @property
    def esa_url(self) -> str:
        return f"https://{self.esa_team}.esa.io"

    def esa_user_for(self, kibela_handle: str) -> Optional[str]:
        """Return the mapped esa screen name, or None for unmapped authors."""
        return self.user_mappings.get(kibela_handle)

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'MigrationConfig':
        """
        Build the run settings from a loaded configuration dictionary.

        Args:
            config: Configuration dictionary (see config.yaml.example)

        Returns:
            MigrationConfig instance
        """
        return cls(
            kibela_dir=get_nested(config, 'kibela.export_dir'),
            kibela_team=str(get_nested(config, 'kibela.team')),
            kibela_session_id=get_nested(config, 'kibela.session_id', '') or '',
            esa_team=str(get_nested(config, 'esa.team')),
            esa_access_token=get_nested(config, 'esa.access_token', '') or '',
            user_mappings=dict(get_nested(config, 'esa.user_mappings', {}) or {}),
            bot_user=get_nested(config, 'esa.bot_user', DEFAULT_BOT_USER),
            root_category=str(get_nested(config, 'migration.root_category')).strip().rstrip('/'),
            output_path=get_nested(config, 'migration.output_path'),
            report_path=get_nested(config, 'migration.report_path'),
            dry_run=bool(get_nested(config, 'migration.dry_run', False)),
            skip_invalid_notes=bool(get_nested(config, 'migration.skip_invalid_notes', True)),
            request_delay=get_nested(config, 'migration.request_delay', DEFAULT_REQUEST_DELAY),
            request_timeout=get_nested(config, 'advanced.request_timeout', DEFAULT_TIMEOUT),
            max_retries=get_nested(config, 'advanced.max_retries', DEFAULT_MAX_RETRIES),
            retry_backoff_factor=get_nested(config, 'advanced.retry_backoff_factor', DEFAULT_RETRY_BACKOFF)
        )


def get_nested(config: dict, path: str, default: Any = None) -> Any:
    """Safely retrieve nested configuration values using dot notation.

    Args:
        config: Configuration dictionary
        path: Dot-separated path (e.g., "esa.team")
        default: Default value if path doesn't exist

    Returns:
        Value at the nested path or default
    """
    keys = path.split('.')
    value = config

    for key in keys:
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default

    return value


__all__ = ['ConfigLoader', 'MigrationConfig', 'get_nested']
