"""Core Utilities - Shared utility functions

Responsibilities:
- Common error handling
- Process-wide fatal error boundary (crash and let the supervisor restart)
- Targets root resolution
"""

import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Union

from pushdeploy.core.exceptions import DeploySystemError, create_error_response

logger = logging.getLogger(__name__)


def resolve_targets_root(path: Optional[Union[str, Path]] = None) -> Path:
    """Resolve the directory holding deployment target working copies

    Args:
        path: Explicit root; defaults to the parent of the working directory

    Returns:
        Absolute Path to the targets root
    """
    if path:
        return Path(path).expanduser().resolve()

    # Targets live next to the deployer checkout
    return Path.cwd().resolve().parent


def handle_exception(e: Exception, context: str) -> dict:
    """Handle exceptions with consistent error format

    Args:
        e: Exception that occurred
        context: Context where exception occurred (e.g., "Push Hook")

    Returns:
        Structured error dict
    """
    logger.error(f"{context} error: {str(e)}", exc_info=True)

    if isinstance(e, DeploySystemError):
        response = create_error_response(e)
    else:
        response = {"success": False, "error": str(e), "error_type": type(e).__name__, "metadata": {}}
    response["context"] = context
    return response


def _terminate(exit_code: int = 1):
    """Flush log handlers and exit immediately"""
    logging.shutdown()
    os._exit(exit_code)


def install_fatal_handlers(loop: Optional[asyncio.AbstractEventLoop] = None, exit_func=_terminate):
    """Install the crash-and-exit boundary for uncaught defects

    Any exception escaping to the interpreter or to the event loop is logged
    and terminates the process with exit code 1. An external supervisor is
    expected to restart it.

    Args:
        loop: Event loop to guard (defaults to the running loop, if any)
        exit_func: Called with the exit code after logging
    """

    def excepthook(exc_type, exc_value, exc_tb):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_tb)
            return
        logger.critical(f"💥 Uncaught exception: {exc_value}", exc_info=(exc_type, exc_value, exc_tb))
        exit_func(1)

    def loop_exception_handler(_loop, context):
        exception = context.get("exception")
        message = context.get("message", "unhandled event loop error")
        if exception is not None:
            logger.critical(f"💥 Uncaught exception in event loop: {message}", exc_info=exception)
        else:
            logger.critical(f"💥 Uncaught event loop error: {message}")
        exit_func(1)

    sys.excepthook = excepthook

    if loop is None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

    if loop is not None:
        loop.set_exception_handler(loop_exception_handler)

    return excepthook, loop_exception_handler
