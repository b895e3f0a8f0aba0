"""HTTP Server Setup with Starlette

Responsibilities:
- Create and configure Starlette application
- Bind handlers to the orchestrator, admission filter and scheduler binder
- Provide main server factory function
"""

import logging

from starlette.applications import Starlette

from pushdeploy.api.http.handlers.handlers import handle_health_check, handle_push_hook
from pushdeploy.api.http.routes.routes import build_application_routes
from pushdeploy.api.http.types.types import RouteHandlers
from pushdeploy.core.admission.filter.filter import AdmissionFilter
from pushdeploy.core.config.manager.manager import ConfigManager
from pushdeploy.core.orchestrator.orchestrator import DeploymentOrchestrator
from pushdeploy.core.scheduling.binder.binder import SchedulerBinder

logger = logging.getLogger(__name__)


def create_http_server(
    config: ConfigManager,
    orchestrator: DeploymentOrchestrator,
    admission_filter: AdmissionFilter,
    binder: SchedulerBinder,
) -> Starlette:
    """Create and configure the Starlette HTTP application.

    Args:
        config: Configuration manager instance
        orchestrator: Deployment orchestrator instance
        admission_filter: Admission filter instance
        binder: Scheduler binder instance

    Returns:
        Configured Starlette application
    """
    handlers = _create_route_handlers(config, orchestrator, admission_filter, binder)
    app = Starlette(routes=build_application_routes(handlers))

    logger.info(f"✅ HTTP server configured, push hook at POST {config.server.hook_path}")
    return app


def _create_route_handlers(config, orchestrator, admission_filter, binder) -> RouteHandlers:
    """Create handler wrappers."""
    return RouteHandlers(
        hook_path=config.server.hook_path,
        push_handler=_create_push_handler(admission_filter, orchestrator, config.server.trust_forwarded_for),
        health_handler=_create_health_handler(orchestrator, admission_filter, binder),
    )


def _create_push_handler(admission_filter, orchestrator, trust_forwarded_for):
    """Create push hook handler wrapper."""

    async def push_handler(request):
        return await handle_push_hook(request, admission_filter, orchestrator, trust_forwarded_for)

    return push_handler


def _create_health_handler(orchestrator, admission_filter, binder):
    """Create health handler wrapper."""

    async def health_handler(request):
        return await handle_health_check(request, orchestrator, admission_filter, binder)

    return health_handler
