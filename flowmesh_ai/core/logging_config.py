"""
Logging Configuration Module.

This module provides centralized logging configuration for the FlowMesh-AI project.
It sets up structured logging with different levels for different modules.

Features:
- Configurable log levels per module
- Console and optional file logging
- Structured logging with JSON format support

Logging is configured explicitly by the embedding application through
``setup_logging``; importing this module has no side effects.
"""

import logging
from pathlib import Path
from typing import Optional

from .config import settings

# Define log formats
SIMPLE_FORMAT = "%(levelname)s - %(name)s - %(message)s"

DETAILED_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(funcName)s() - %(message)s"

JSON_FORMAT = (
    '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", '
    '"module": "%(filename)s", "function": "%(funcName)s", "line": %(lineno)d, '
    '"message": "%(message)s"}'
)

LOG_FILE_NAME = "flowmesh_ai.log"


# Module-specific log levels
MODULE_LOG_LEVELS = {
    # Engine modules
    "flowmesh_ai.agent_core": "DEBUG",
    "flowmesh_ai.agent_core.runtime": "DEBUG",
    "flowmesh_ai.agent_core.providers": "INFO",
    "flowmesh_ai.agent_core.tools": "INFO",
    "flowmesh_ai.agent_core.streaming": "INFO",
    "flowmesh_ai.agent_core.repos": "INFO",
    # Ambient modules
    "flowmesh_ai.core": "INFO",
    # Third-party libraries (reduce noise)
    "httpx": "WARNING",
    "httpcore": "WARNING",
    "asyncio": "WARNING",
    "langgraph": "WARNING",
}


def resolve_format(log_format: str) -> str:
    """Map a format name (simple, detailed, json) onto its format string."""
    if log_format == "json":
        return JSON_FORMAT
    if log_format == "simple":
        return SIMPLE_FORMAT
    return DETAILED_FORMAT


def setup_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    enable_file: Optional[bool] = None,
) -> None:
    """
    Configure logging for the application.

    Args:
        log_level: Override default log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Override default format (simple, detailed, json)
        enable_file: Whether to enable file logging (defaults to FLOWMESH_AI_LOG_FILE_ENABLED)
    """
    level = (log_level or settings.log_level).upper()
    fmt = log_format or settings.log_format
    file_enabled = settings.log_file_enabled if enable_file is None else enable_file

    formatter = logging.Formatter(resolve_format(fmt), datefmt="%Y-%m-%d %H:%M:%S")

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture all levels, filter at handler level

    # Remove existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if file_enabled:
        log_dir = Path(settings.log_file_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_dir / LOG_FILE_NAME)
        file_handler.setLevel(logging.DEBUG)  # Always log DEBUG to file
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    for module_name, module_level in MODULE_LOG_LEVELS.items():
        logging.getLogger(module_name).setLevel(module_level)

    root_logger.info(f"Logging configured: level={level}, format={fmt}, file_logging={file_enabled}")


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: The module name (typically __name__)

    Returns:
        A configured logger instance
    """
    return logging.getLogger(name)
