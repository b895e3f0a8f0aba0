"""HTTP Types - Shared HTTP Types and Data Structures

Responsibilities:
- Define shared data structures for HTTP components
- Provide type definitions for route handlers
"""

from dataclasses import dataclass
from typing import Callable


@dataclass
class RouteHandlers:
    """Container for route handlers."""

    hook_path: str
    push_handler: Callable
    health_handler: Callable
