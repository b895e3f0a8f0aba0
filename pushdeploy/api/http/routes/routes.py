"""Route Factory - HTTP Route Generation and Configuration.

Responsibilities:
- Build complete routes list for Starlette application
- Describe available routes for startup logging
"""

from starlette.routing import Route

from pushdeploy.api.http.types.types import RouteHandlers


def build_application_routes(handlers: RouteHandlers) -> list:
    """Build the complete routes list for the application.

    Args:
        handlers: Container with all route handlers

    Returns:
        List of Starlette routes
    """
    return [
        Route(handlers.hook_path, handlers.push_handler, methods=["POST"]),
        Route("/health", handlers.health_handler, methods=["GET"]),
    ]


def create_route_metadata(hook_path: str) -> dict:
    """Create metadata about available routes.

    Returns:
        Dictionary with route information
    """
    return {
        "push_hook": f"POST {hook_path} (GitHub push event, form or JSON)",
        "health": "GET /health",
    }
