"""Configuration loader with YAML support and environment variable substitution."""

import copy
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet
from urllib.parse import urlparse

import yaml


DEFAULT_BASE_URL = "https://open.feishu.cn/open-apis"
DEFAULT_SUPPORTED_TYPES = frozenset({"doc", "docx", "sheet", "bitable", "mindnote"})
MAX_PAGE_SIZE = 200


@dataclass(frozen=True)
class MigrationSettings:
    """Tunables for a migration run."""

    page_size: int = MAX_PAGE_SIZE
    tree_page_limit: int = 20
    traversal_page_limit: int = 200
    move_batch_limit: int = 90
    move_pause_ms: int = 60000
    supported_types: FrozenSet[str] = field(default=DEFAULT_SUPPORTED_TYPES)
    staging_suffix: str = "_to_migrate"
    cancel_check_interval: float = 0.5
    copy_task_poll_attempts: int = 5
    copy_task_poll_interval: float = 1.0
    wiki_task_type: str = "move_docs_to_wiki"
    wiki_task_poll_attempts: int = 5
    wiki_task_poll_interval: float = 1.0

    @property
    def move_pause_seconds(self) -> float:
        return self.move_pause_ms / 1000.0

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'MigrationSettings':
        """
        Build settings from the ``migration`` section of a config dictionary.

        Args:
            config: Configuration dictionary

        Returns:
            MigrationSettings with defaults for missing keys
        """
        migration = config.get('migration', {}) or {}
        defaults = cls()
        supported = migration.get('supported_types')
        return cls(
            page_size=min(int(migration.get('page_size', defaults.page_size)), MAX_PAGE_SIZE),
            tree_page_limit=int(migration.get('tree_page_limit', defaults.tree_page_limit)),
            traversal_page_limit=int(
                migration.get('traversal_page_limit', defaults.traversal_page_limit)
            ),
            move_batch_limit=int(migration.get('move_batch_limit', defaults.move_batch_limit)),
            move_pause_ms=int(migration.get('move_pause_ms', defaults.move_pause_ms)),
            supported_types=(
                frozenset(str(t).lower() for t in supported)
                if supported else defaults.supported_types
            ),
            staging_suffix=migration.get('staging_suffix', defaults.staging_suffix),
            cancel_check_interval=float(
                migration.get('cancel_check_interval', defaults.cancel_check_interval)
            ),
            copy_task_poll_attempts=int(
                migration.get('copy_task_poll_attempts', defaults.copy_task_poll_attempts)
            ),
            copy_task_poll_interval=float(
                migration.get('copy_task_poll_interval', defaults.copy_task_poll_interval)
            ),
            wiki_task_type=migration.get('wiki_task_type', defaults.wiki_task_type),
            wiki_task_poll_attempts=int(
                migration.get('wiki_task_poll_attempts', defaults.wiki_task_poll_attempts)
            ),
            wiki_task_poll_interval=float(
                migration.get('wiki_task_poll_interval', defaults.wiki_task_poll_interval)
            )
        )


class ConfigLoader:
    """Handles loading and validation of configuration files."""

    ENV_VAR_PATTERN = re.compile(r'\$\{([A-Za-z_][A-Za-z0-9_]*)\}')

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

        if config_data is None:
            config_data = {}
        if not isinstance(config_data, dict):
            raise ValueError("Configuration file must contain a dictionary")

        return cls._substitute_env_vars_recursive(config_data)

    @classmethod
    def validate(cls, config: Dict[str, Any]) -> None:
        """
        Validate configuration for required fields and correct values.

        Args:
            config: Configuration dictionary to validate

        Raises:
            ValueError: If validation fails
        """
        cls._validate_required_field(config, 'feishu.user_access_token')

        base_url = get_nested(config, 'feishu.base_url', DEFAULT_BASE_URL)
        cls._validate_url(base_url, 'feishu.base_url')

        shared_folders = get_nested(config, 'feishu.shared_folders', [])
        if not isinstance(shared_folders, list):
            raise ValueError("feishu.shared_folders must be a list of folder tokens")

        for key in ('page_size', 'tree_page_limit', 'traversal_page_limit',
                    'move_batch_limit', 'copy_task_poll_attempts', 'wiki_task_poll_attempts'):
            value = get_nested(config, f'migration.{key}', 1)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                raise ValueError(f"migration.{key} must be a positive integer")

        page_size = get_nested(config, 'migration.page_size', MAX_PAGE_SIZE)
        if page_size > MAX_PAGE_SIZE:
            raise ValueError(f"migration.page_size must not exceed {MAX_PAGE_SIZE}")

        for key in ('move_pause_ms', 'copy_task_poll_interval', 'wiki_task_poll_interval'):
            value = get_nested(config, f'migration.{key}', 0)
            if not isinstance(value, (int, float)) or value < 0:
                raise ValueError(f"migration.{key} must be a non-negative number")

        interval = get_nested(config, 'migration.cancel_check_interval', 0.5)
        if not isinstance(interval, (int, float)) or interval <= 0:
            raise ValueError("migration.cancel_check_interval must be a positive number")

        supported = get_nested(config, 'migration.supported_types')
        if supported is not None:
            if not isinstance(supported, list) or not supported:
                raise ValueError("migration.supported_types must be a non-empty list")

        timeout = get_nested(config, 'advanced.request_timeout', 30)
        if not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ValueError("advanced.request_timeout must be a positive number")

        max_retries = get_nested(config, 'advanced.max_retries', 3)
        if not isinstance(max_retries, int) or max_retries < 0:
            raise ValueError("advanced.max_retries must be a non-negative integer")

        rate_limit = get_nested(config, 'advanced.rate_limit', 0)
        if not isinstance(rate_limit, (int, float)) or rate_limit < 0:
            raise ValueError("advanced.rate_limit must be a non-negative number")

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

        for section in ('feishu', 'migration', 'logging'):
            if section not in merged or merged[section] is None:
                merged[section] = {}

        if getattr(args, 'token', None):
            merged['feishu']['user_access_token'] = args.token

        if getattr(args, 'base_url', None):
            merged['feishu']['base_url'] = args.base_url

        if getattr(args, 'shared_folder', None):
            shared = list(merged['feishu'].get('shared_folders') or [])
            for token in args.shared_folder:
                if token not in shared:
                    shared.append(token)
            merged['feishu']['shared_folders'] = shared

        if getattr(args, 'report', None):
            merged['migration']['report_path'] = args.report

        if getattr(args, 'dry_run', None) is not None:
            merged['migration']['dry_run'] = args.dry_run

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
            var_name = match.group(1)
            env_value = os.getenv(var_name)
            return env_value if env_value is not None else match.group(0)

        return cls.ENV_VAR_PATTERN.sub(replace_match, value)

    @staticmethod
    def _validate_required_field(config_section: dict, field_path: str) -> None:
        """Validate that a required field exists and has a value."""
        value = get_nested(config_section, field_path)
        if value is None or value == '':
            raise ValueError(f"Missing required configuration: {field_path}")

        # Unsubstituted environment variables
        if isinstance(value, str) and '${' in value:
            match = ConfigLoader.ENV_VAR_PATTERN.search(value)
            var_name = match.group(1) if match else value
            raise ValueError(
                f"Configuration field '{field_path}' contains unsubstituted environment variable: {value}. "
                f"Please set the {var_name} environment variable or provide a value in config file."
            )

    @staticmethod
    def _validate_url(url: str, field_name: str) -> None:
        """Validate URL format."""
        parsed = urlparse(str(url))
        if not parsed.scheme or parsed.scheme not in ['http', 'https']:
            raise ValueError(f"{field_name} must use http or https scheme: {url}")
        if not parsed.netloc:
            raise ValueError(f"{field_name} missing hostname: {url}")


def get_nested(config: dict, path: str, default: Any = None) -> Any:
    """Safely retrieve nested configuration values using dot notation.

    Args:
        config: Configuration dictionary
        path: Dot-separated path (e.g., "feishu.base_url")
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


__all__ = ['ConfigLoader', 'MigrationSettings', 'get_nested', 'DEFAULT_BASE_URL']
