"""
Logging configuration for the photo export pipeline.
"""

import datetime
import logging
import os
import sys
from typing import Optional

from .config import AppConfig
from .surfaces import parse_surfaces


def setup_logging(config: AppConfig, log_prefix: Optional[str] = None) -> None:
    """
    Configure logging based on settings.

    Args:
        config: Application configuration
        log_prefix: Optional prefix for the log file name
    """
    log_level = getattr(logging, config.log_level.upper(), logging.INFO)
    if config.debug_mode:
        log_level = logging.DEBUG
    log_format = '%(asctime)s - %(levelname)s - %(message)s'

    log_file = config.log_file

    # Create a timestamp-based log file if prefix provided but no specific file
    if not log_file and log_prefix:
        timestamp = datetime.datetime.now().strftime("%Y%m%d-%H%M%S")
        log_file = f"{log_prefix}_{timestamp}.log"

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir, exist_ok=True)

        logging.basicConfig(
            filename=log_file,
            level=log_level,
            format=log_format
        )

        # Also log to console if debug mode is enabled
        if config.debug_mode:
            console = logging.StreamHandler(sys.stdout)
            console.setLevel(log_level)
            console.setFormatter(logging.Formatter(log_format))
            logging.getLogger('').addHandler(console)
    else:
        logging.basicConfig(
            level=log_level,
            format=log_format
        )

    # Pillow logs every plugin it probes at DEBUG
    logging.getLogger('PIL').setLevel(logging.WARNING)

    logging.info(f"Logging initialized. Default surfaces: {', '.join(config.surfaces)}")

    if config.debug_mode:
        logging.debug(f"Debug mode enabled (Python {sys.version.split()[0]} on {sys.platform})")
        _log_configuration_summary(config)


def _log_configuration_summary(config: AppConfig) -> None:
    """Log the export settings a run will use, one surface per line."""
    logging.debug(f"Subject: {config.space_name}, location: {config.default_location}")
    logging.debug(f"Default category: {config.default_category}")
    logging.debug(
        f"Extension policy: {config.extension_policy}, "
        f"failed rows: {'dropped' if config.drop_failed_rows else 'kept'}"
    )
    logging.debug(
        f"Retry policy: {config.max_retries} attempt(s), "
        f"{config.retry_delay}s initial delay doubling per retry"
    )
    logging.debug(f"Memory limit: {config.memory_limit_mb} MB, archive prefix: {config.archive_prefix}")

    for surface in parse_surfaces(config.surfaces):
        profile = surface.profile
        logging.debug(
            f"  {surface.key}: max {profile.max_dimension}px, "
            f"quality {profile.encoder_quality}, ideal .{surface.ideal_extension}"
        )


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger with the specified name.

    Args:
        name: Name for the logger

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
