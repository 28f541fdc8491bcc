"""Configuration loader with YAML support and environment variable substitution."""

import copy
import os
import re
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import yaml

from models import DiscoverOptions, ExportOptions

DEFAULT_OUTPUT_DIRECTORY = 'output'
DEFAULT_MANIFEST = 'manifest.json'
DEFAULT_MAX_DEPTH = 10
DEFAULT_MAX_DOCS = 1000
DEFAULT_PAGE_SIZE = 200
MAX_PAGE_SIZE = 500

DEFAULT_CONFIG: Dict[str, Any] = {
    'feishu': {
        'app_id': None,
        'app_secret': None,
        'base_url': 'https://open.feishu.cn/open-apis',
        'verify_ssl': True,
    },
    'discovery': {
        'url': None,
        'max_depth': DEFAULT_MAX_DEPTH,
        'max_docs': DEFAULT_MAX_DOCS,
        'skip_discover': False,
    },
    'export': {
        'output_directory': DEFAULT_OUTPUT_DIRECTORY,
        'manifest': DEFAULT_MANIFEST,
    },
    'advanced': {
        'page_size': DEFAULT_PAGE_SIZE,
        'request_timeout': 12,
        'max_retries': 4,
        'rate_limit': 0.3,
        'debug': False,
    },
    'logging': {
        'level': None,
        'file': None,
    },
}

# Environment variable -> dotted config path
ENV_OVERRIDES = {
    'FEISHU_APP_ID': 'feishu.app_id',
    'FEISHU_APP_SECRET': 'feishu.app_secret',
    'FEISHU_DEBUG': 'advanced.debug',
    'FEISHU_PAGE_SIZE': 'advanced.page_size',
}

TRUE_VALUES = ('1', 'true', 'yes', 'y', 'on')
FALSE_VALUES = ('0', 'false', 'no', 'n', 'off')


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
            return {}
        if not isinstance(config_data, dict):
            raise ValueError("Configuration file must contain a dictionary")

        return cls._substitute_env_vars_recursive(config_data)

    @classmethod
    def resolve(cls, config_path: Optional[str] = None, args=None, environ=None) -> Dict[str, Any]:
        """
        Build the effective configuration.

        Precedence, lowest first: defaults, config file, environment, CLI arguments.

        Args:
            config_path: Optional YAML configuration file
            args: Optional parsed CLI arguments
            environ: Environment mapping (defaults to os.environ)

        Returns:
            Validated configuration dictionary
        """
        config = copy.deepcopy(DEFAULT_CONFIG)
        if config_path:
            config = deep_merge(config, cls.load(config_path))

        config = cls.apply_env_overrides(config, os.environ if environ is None else environ)
        if args is not None:
            config = cls.merge_with_args(config, args)

        cls.validate(config)
        return config

    @classmethod
    def apply_env_overrides(cls, config: Dict[str, Any], environ) -> Dict[str, Any]:
        merged = copy.deepcopy(config)
        for env_name, path in ENV_OVERRIDES.items():
            value = environ.get(env_name)
            if value not in (None, ''):
                set_nested(merged, path, value)
        return merged

    @classmethod
    def validate(cls, config: Dict[str, Any]) -> None:
        """
        Validate configuration and coerce scalar values in place.

        Args:
            config: Configuration dictionary to validate

        Raises:
            ValueError: If validation fails
        """
        cls._validate_required_field(config, 'feishu.app_id', '--app-id')
        cls._validate_required_field(config, 'feishu.app_secret', '--app-secret')

        set_nested(config, 'discovery.skip_discover',
                   to_boolean(get_nested(config, 'discovery.skip_discover'), False, 'discovery.skip_discover'))
        set_nested(config, 'advanced.debug',
                   to_boolean(get_nested(config, 'advanced.debug'), False, 'advanced.debug'))
        set_nested(config, 'feishu.verify_ssl',
                   to_boolean(get_nested(config, 'feishu.verify_ssl'), True, 'feishu.verify_ssl'))

        if not get_nested(config, 'discovery.skip_discover'):
            cls._validate_required_field(config, 'discovery.url', '--url')

        set_nested(config, 'discovery.max_depth',
                   to_non_negative_int(get_nested(config, 'discovery.max_depth'), DEFAULT_MAX_DEPTH, '--max-depth'))
        set_nested(config, 'discovery.max_docs',
                   to_non_negative_int(get_nested(config, 'discovery.max_docs'), DEFAULT_MAX_DOCS, '--max-docs'))

        page_size = to_non_negative_int(get_nested(config, 'advanced.page_size'), DEFAULT_PAGE_SIZE, '--page-size')
        if page_size < 1 or page_size > MAX_PAGE_SIZE:
            raise ValueError(f"--page-size must be an integer between 1 and {MAX_PAGE_SIZE}")
        set_nested(config, 'advanced.page_size', page_size)

        base_url = get_nested(config, 'feishu.base_url')
        if base_url:
            cls._validate_url(base_url, 'feishu.base_url')

        timeout = get_nested(config, 'advanced.request_timeout', 12)
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ValueError("advanced.request_timeout must be a positive number")

        rate_limit = get_nested(config, 'advanced.rate_limit', 0.3)
        if isinstance(rate_limit, bool) or not isinstance(rate_limit, (int, float)) or rate_limit < 0:
            raise ValueError("advanced.rate_limit must be a non-negative number")

        max_retries = get_nested(config, 'advanced.max_retries', 4)
        if isinstance(max_retries, bool) or not isinstance(max_retries, int) or max_retries < 0:
            raise ValueError("advanced.max_retries must be a non-negative integer")

        output_dir = get_nested(config, 'export.output_directory')
        if output_dir and os.path.exists(output_dir) and not os.path.isdir(output_dir):
            raise ValueError(f"export.output_directory '{output_dir}' is not a directory")

    @classmethod
    def merge_with_args(cls, config: Dict[str, Any], args) -> Dict[str, Any]:
        """
        Merge configuration with CLI arguments.
        CLI arguments take precedence over config file and environment values.

        Args:
            config: Base configuration dictionary
            args: CLI arguments with attributes matching config keys

        Returns:
            Merged configuration dictionary
        """
        merged = copy.deepcopy(config)

        for section in ('feishu', 'discovery', 'export', 'advanced', 'logging'):
            merged.setdefault(section, {})

        arg_paths = {
            'url': 'discovery.url',
            'app_id': 'feishu.app_id',
            'app_secret': 'feishu.app_secret',
            'max_depth': 'discovery.max_depth',
            'max_docs': 'discovery.max_docs',
            'output': 'export.output_directory',
            'manifest': 'export.manifest',
            'page_size': 'advanced.page_size',
            'log_file': 'logging.file',
            'log_level': 'logging.level',
        }
        for attribute, path in arg_paths.items():
            value = getattr(args, attribute, None)
            if value is not None and value != '':
                set_nested(merged, path, value)

        if getattr(args, 'skip_discover', False):
            merged['discovery']['skip_discover'] = True
        if getattr(args, 'debug', False):
            merged['advanced']['debug'] = True
        if getattr(args, 'insecure', False):
            merged['feishu']['verify_ssl'] = False

        return merged

    @staticmethod
    def manifest_path(config: Dict[str, Any]) -> str:
        """Manifest location; relative names resolve inside the output directory."""
        output_dir = get_nested(config, 'export.output_directory') or DEFAULT_OUTPUT_DIRECTORY
        manifest = get_nested(config, 'export.manifest') or DEFAULT_MANIFEST
        if os.path.isabs(manifest) or os.path.dirname(manifest):
            return manifest
        return os.path.join(output_dir, manifest)

    @classmethod
    def to_discover_options(cls, config: Dict[str, Any], on_progress=None) -> DiscoverOptions:
        return DiscoverOptions(
            url=get_nested(config, 'discovery.url'),
            app_id=get_nested(config, 'feishu.app_id'),
            app_secret=get_nested(config, 'feishu.app_secret'),
            debug=bool(get_nested(config, 'advanced.debug', False)),
            max_depth=get_nested(config, 'discovery.max_depth', DEFAULT_MAX_DEPTH),
            max_docs=get_nested(config, 'discovery.max_docs', DEFAULT_MAX_DOCS),
            page_size=get_nested(config, 'advanced.page_size', DEFAULT_PAGE_SIZE),
            on_progress=on_progress,
        )

    @classmethod
    def to_export_options(cls, config: Dict[str, Any], on_progress=None) -> ExportOptions:
        return ExportOptions(
            app_id=get_nested(config, 'feishu.app_id'),
            app_secret=get_nested(config, 'feishu.app_secret'),
            manifest_path=cls.manifest_path(config),
            output_dir_path=get_nested(config, 'export.output_directory') or DEFAULT_OUTPUT_DIRECTORY,
            debug=bool(get_nested(config, 'advanced.debug', False)),
            page_size=get_nested(config, 'advanced.page_size', DEFAULT_PAGE_SIZE),
            on_progress=on_progress,
        )

    @staticmethod
    def client_settings(config: Dict[str, Any]) -> Dict[str, Any]:
        """Keyword arguments for FeishuClient taken from the configuration."""
        return {
            'app_id': get_nested(config, 'feishu.app_id'),
            'app_secret': get_nested(config, 'feishu.app_secret'),
            'page_size': get_nested(config, 'advanced.page_size', DEFAULT_PAGE_SIZE),
            'debug': bool(get_nested(config, 'advanced.debug', False)),
            'base_url': get_nested(config, 'feishu.base_url') or DEFAULT_CONFIG['feishu']['base_url'],
            'timeout': float(get_nested(config, 'advanced.request_timeout', 12)),
            'max_retries': get_nested(config, 'advanced.max_retries', 4),
            'rate_limit': float(get_nested(config, 'advanced.rate_limit', 0.3)),
            'verify_ssl': bool(get_nested(config, 'feishu.verify_ssl', True)),
        }

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
    def _validate_required_field(config: dict, field: str, option_name: str) -> None:
        """Validate that a required field exists and has no unsubstituted placeholder."""
        value = get_nested(config, field)
        if value is None or value == '':
            raise ValueError(f"Missing required option: {option_name} (config: {field})")

        if isinstance(value, str):
            match = ConfigLoader.ENV_VAR_PATTERN.search(value)
            if match:
                raise ValueError(
                    f"Configuration field '{field}' contains unsubstituted environment variable: {value}. "
                    f"Please set the {match.group(1)} environment variable or provide a value in config file."
                )

    @staticmethod
    def _validate_url(url: str, field_name: str) -> None:
        """Validate URL format."""
        parsed = urlparse(url)
        if parsed.scheme not in ('http', 'https'):
            raise ValueError(f"{field_name} must use http or https scheme: {url}")
        if not parsed.netloc:
            raise ValueError(f"{field_name} missing hostname: {url}")


def to_boolean(value: Any, fallback: bool, option_name: str) -> bool:
    """Coerce a bool or a yes/no style string."""
    if value is None or value == '':
        return fallback
    if isinstance(value, bool):
        return value

    normalized = str(value).strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    raise ValueError(f"{option_name} must be a boolean value")


def to_non_negative_int(value: Any, fallback: int, option_name: str) -> int:
    """Coerce an int or numeric string, rejecting negatives and fractions."""
    if value is None or value == '':
        return fallback
    if isinstance(value, bool):
        raise ValueError(f"{option_name} must be a non-negative integer")

    if isinstance(value, int):
        normalized = value
    elif isinstance(value, float) and value.is_integer():
        normalized = int(value)
    elif isinstance(value, str) and value.strip().isdigit():
        normalized = int(value.strip())
    else:
        raise ValueError(f"{option_name} must be a non-negative integer")

    if normalized < 0:
        raise ValueError(f"{option_name} must be a non-negative integer")
    return normalized


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Merge override into a copy of base, recursing into nested dictionaries."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def get_nested(config: dict, path: str, default: Any = None) -> Any:
    """Safely retrieve nested configuration values using dot notation.

    Args:
        config: Configuration dictionary
        path: Dot-separated path (e.g., "feishu.app_id")
        default: Default value if path doesn't exist

    Returns:
        Value at the nested path or default
    """
    value = config
    for key in path.split('.'):
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default
    return value


def set_nested(config: dict, path: str, value: Any) -> None:
    """Set a nested configuration value, creating intermediate dictionaries."""
    keys = path.split('.')
    target = config
    for key in keys[:-1]:
        if not isinstance(target.get(key), dict):
            target[key] = {}
        target = target[key]
    target[keys[-1]] = value


__all__ = [
    'ConfigLoader',
    'DEFAULT_CONFIG',
    'get_nested',
    'set_nested',
    'deep_merge',
    'to_boolean',
    'to_non_negative_int',
]
