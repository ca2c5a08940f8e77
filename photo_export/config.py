"""
Configuration handling for the photo export pipeline.
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field, asdict
from typing import Optional, List, Dict, Any

from .templates import SPACE_CATEGORIES

logger = logging.getLogger(__name__)

# Keys of surfaces.Surface, repeated so that config does not import surfaces.
KNOWN_SURFACE_KEYS = (
    "web",
    "instagram",
    "pinterest",
    "google-business",
    "messaging",
    "print",
)
EXTENSION_POLICIES = ("ideal", "original")


@dataclass
class AppConfig:
    """Main application configuration."""
    space_name: str = "Studio"
    default_neighborhood: str = "SoHo"
    default_city: str = "NYC"
    default_location: str = "SoHo, NYC"
    default_category: str = "main_room_wide"
    surfaces: List[str] = field(default_factory=lambda: ["web"])
    extension_policy: str = "original"
    drop_failed_rows: bool = False
    max_retries: int = 1
    retry_delay: float = 0.5
    memory_limit_mb: int = 1024
    archive_prefix: str = "studio-export"
    instagram_cta: str = "Book your session today! 📸"
    booking_cta: str = "Book now via our website"
    pinterest_cta: str = "Save for your next shoot!"
    web_cta: str = "Book your visit today."
    log_level: str = "INFO"
    log_file: Optional[str] = None
    debug_mode: bool = False


def _substitute_env_vars(value: Any) -> Any:
    """
    Substitute environment variables in string values.

    Args:
        value: Value to process for environment variables

    Returns:
        Value with environment variables substituted
    """
    if not isinstance(value, str):
        return value

    # Pattern to match ${ENV_VAR} syntax
    pattern = r'\${([^}]+)}'

    def replace_env_var(match):
        env_var = match.group(1)
        env_value = os.environ.get(env_var)
        if env_value is None:
            logger.warning(f"Environment variable {env_var} not found")
            return ""
        return env_value

    return re.sub(pattern, replace_env_var, value)


def _process_config_dict(config_dict: Dict[str, Any]) -> Dict[str, Any]:
    """
    Process a configuration dictionary to substitute environment variables.

    Args:
        config_dict: Dictionary containing configuration values

    Returns:
        Processed dictionary with environment variables substituted
    """
    result = {}

    for key, value in config_dict.items():
        if isinstance(value, dict):
            result[key] = _process_config_dict(value)
        elif isinstance(value, list):
            result[key] = [
                _process_config_dict(item) if isinstance(item, dict) else _substitute_env_vars(item)
                for item in value
            ]
        else:
            result[key] = _substitute_env_vars(value)

    return result


def validate_config(config: AppConfig) -> AppConfig:
    """
    Check the values that the rest of the pipeline relies on.

    Args:
        config: Configuration to validate

    Returns:
        The same configuration object

    Raises:
        ValueError: If a value is out of range or unknown
    """
    unknown = [key for key in config.surfaces if key not in KNOWN_SURFACE_KEYS]
    if unknown:
        raise ValueError(f"Unknown surface(s) in configuration: {', '.join(unknown)}")
    if config.extension_policy not in EXTENSION_POLICIES:
        raise ValueError(
            f"Unsupported extension policy: {config.extension_policy} "
            f"(expected one of {', '.join(EXTENSION_POLICIES)})"
        )
    if config.default_category not in SPACE_CATEGORIES:
        raise ValueError(f"Unknown default category: {config.default_category}")
    if config.max_retries < 1:
        raise ValueError("max_retries must be at least 1")
    if config.retry_delay < 0:
        raise ValueError("retry_delay must not be negative")
    return config


def load_config(config_path: str) -> AppConfig:
    """
    Load and validate configuration from JSON file.

    Args:
        config_path: Path to the configuration JSON file

    Returns:
        AppConfig object

    Raises:
        ValueError: If the configuration is invalid
        RuntimeError: If the configuration file cannot be loaded
    """
    config_path = os.path.abspath(os.path.expanduser(config_path))

    try:
        with open(config_path, 'r', encoding='utf-8') as cfg:
            config_dict = json.load(cfg)
    except (json.JSONDecodeError, IOError) as e:
        raise RuntimeError(f"Failed to load configuration from {config_path}: {str(e)}")

    if not isinstance(config_dict, dict):
        raise ValueError("Configuration root must be a JSON object")

    config_dict = _process_config_dict(config_dict)

    # Accept a comma separated string as well as a list
    if isinstance(config_dict.get('surfaces'), str):
        config_dict['surfaces'] = [s.strip() for s in config_dict['surfaces'].split(',') if s.strip()]

    known_fields = set(AppConfig.__dataclass_fields__)
    unknown_fields = sorted(set(config_dict) - known_fields)
    if unknown_fields:
        raise ValueError(f"Unknown configuration field(s): {', '.join(unknown_fields)}")

    return validate_config(AppConfig(**config_dict))


def save_config(config: AppConfig, config_path: str) -> None:
    """
    Save configuration to JSON file.

    Args:
        config: AppConfig object
        config_path: Path to save the configuration

    Raises:
        RuntimeError: If the configuration cannot be saved
    """
    try:
        with open(config_path, 'w', encoding='utf-8') as f:
            json.dump(asdict(config), f, indent=2, ensure_ascii=False)
    except (IOError, TypeError) as e:
        raise RuntimeError(f"Failed to save configuration: {str(e)}")
