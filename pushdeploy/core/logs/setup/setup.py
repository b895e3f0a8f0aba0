"""Logging Setup - Console and deployment log file

Responsibilities:
- Install console handler (verbose, for operators watching the process)
- Install file handler writing the deployment log
- Hand out per-target child loggers for deployment definitions
"""

import logging
from pathlib import Path
from typing import Optional

from pushdeploy.core.config.manager.manager import LoggingConfig

ROOT_LOGGER_NAME = "pushdeploy"
TARGET_LOGGER_PREFIX = f"{ROOT_LOGGER_NAME}.targets"


def configure_logging(config: LoggingConfig, base_dir: Optional[Path] = None) -> logging.Logger:
    """Configure process-wide logging.

    Args:
        config: Logging configuration section
        base_dir: Directory for a relative log file path (defaults to cwd)

    Returns:
        The configured root logger
    """
    formatter = logging.Formatter(config.format)
    console_level = logging.getLevelName(str(config.console_level).upper())
    file_level = logging.getLevelName(str(config.file_level).upper())

    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_pushdeploy_handler", False):
            root.removeHandler(handler)
            handler.close()

    console = logging.StreamHandler()
    console.setLevel(console_level)
    console.setFormatter(formatter)
    console._pushdeploy_handler = True
    root.addHandler(console)

    levels = [console_level]
    if config.log_file:
        log_path = Path(config.log_file).expanduser()
        if not log_path.is_absolute():
            log_path = (base_dir or Path.cwd()) / log_path
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(file_level)
        file_handler.setFormatter(formatter)
        file_handler._pushdeploy_handler = True
        root.addHandler(file_handler)
        levels.append(file_level)

    root.setLevel(min(levels))
    root.debug(f"Logging configured: console={config.console_level}, file={config.log_file}")
    return root


def get_target_logger(name: str) -> logging.Logger:
    """Get the logger handed to a deployment definition"""
    return logging.getLogger(f"{TARGET_LOGGER_PREFIX}.{name}")
