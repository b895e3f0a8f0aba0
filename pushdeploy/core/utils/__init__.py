"""Core utilities package"""

from .utils import handle_exception, install_fatal_handlers, resolve_targets_root

__all__ = [
    "handle_exception",
    "install_fatal_handlers",
    "resolve_targets_root",
]
