#!/usr/bin/env python3

"""Main Entry Point - Push Hook Deployment Server

Responsibilities:
- Orchestrate system initialization
- Start HTTP server with the push hook endpoint
- Arm target schedules and refresh the source allow-list
- Install the crash-and-exit boundary for uncaught defects
- Handle graceful shutdown

Run under a process supervisor (systemd, supervisord, ...): any uncaught
defect terminates the process with exit code 1 and relies on a restart.
Usage: pushdeploy --config pushdeploy.yaml
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

import uvicorn

from pushdeploy.api.http.routes.routes import create_route_metadata
from pushdeploy.api.http.server.server import create_http_server
from pushdeploy.core.admission.filter.filter import AdmissionFilter
from pushdeploy.core.config.manager.manager import ConfigManager, set_config
from pushdeploy.core.logs.setup.setup import configure_logging
from pushdeploy.core.orchestrator.orchestrator import DeploymentOrchestrator
from pushdeploy.core.scheduling.binder.binder import SchedulerBinder
from pushdeploy.core.security.allowlist.allowlist import AllowList
from pushdeploy.core.targets.registry.registry import TargetRegistry
from pushdeploy.core.utils.utils import handle_exception, install_fatal_handlers, resolve_targets_root

logger = logging.getLogger("pushdeploy")

SHUTDOWN_GRACE_SECONDS = 300.0


class DeployServer:
    """Minimal coordinator that wires system components

    Responsibilities:
    - Initialize configuration and logging
    - Create registry, orchestrator, admission filter and scheduler binder
    - Start/stop HTTP server
    - Handle graceful shutdown
    """

    def __init__(self, args: argparse.Namespace):
        self.args = args
        self.config_manager: Optional[ConfigManager] = None
        self.registry: Optional[TargetRegistry] = None
        self.orchestrator: Optional[DeploymentOrchestrator] = None
        self.allowlist: Optional[AllowList] = None
        self.admission_filter: Optional[AdmissionFilter] = None
        self.binder: Optional[SchedulerBinder] = None
        self.server: Optional[uvicorn.Server] = None
        self._refresh_task: Optional[asyncio.Task] = None

    async def initialize(self) -> bool:
        """Initialize all system components"""
        try:
            initialization_steps = [
                ("config", self._initialize_config),
                ("logging", self._initialize_logging),
                ("target registry", self._initialize_registry),
                ("orchestrator", self._initialize_orchestrator),
                ("admission filter", self._initialize_admission),
                ("schedules", self._initialize_schedules),
            ]

            for step_name, step_func in initialization_steps:
                success = await step_func() if asyncio.iscoroutinefunction(step_func) else step_func()
                if not success:
                    logger.error(f"Failed to initialize {step_name}")
                    return False

            logger.info("✅ All components initialized successfully")
            return True

        except Exception as e:
            error_response = handle_exception(e, "Server Initialization")
            logger.error(f"Error details: {error_response}")
            return False

    def _initialize_config(self) -> bool:
        """Load and validate configuration"""
        self.config_manager = ConfigManager(self.args.config)

        if self.args.host:
            self.config_manager.server.host = self.args.host
        if self.args.port:
            self.config_manager.server.port = self.args.port
        if self.args.targets_root:
            self.config_manager.deploy.targets_root = resolve_targets_root(self.args.targets_root)

        valid, errors = self.config_manager.validate_config()
        if not valid:
            # Logging is not configured yet
            print(f"Configuration validation failed: {errors}", file=sys.stderr)
            return False

        set_config(self.config_manager)
        return True

    def _initialize_logging(self) -> bool:
        configure_logging(self.config_manager.logging)
        logger.debug(f"Effective configuration: {self.config_manager.get_effective_config()}")
        return True

    def _initialize_registry(self) -> bool:
        deploy = self.config_manager.deploy
        self.registry = TargetRegistry(deploy.targets_root, deploy.definition_filename, git_timeout=deploy.pull_timeout)
        logger.info(f"📂 Targets root: {deploy.targets_root}")
        return True

    def _initialize_orchestrator(self) -> bool:
        deploy = self.config_manager.deploy
        self.orchestrator = DeploymentOrchestrator(
            self.registry,
            pull_timeout=deploy.pull_timeout,
            run_timeout=deploy.run_timeout,
        )
        return True

    def _initialize_admission(self) -> bool:
        """Create the allow-list and start its background refresh"""
        allowlist_config = self.config_manager.allowlist
        self.allowlist = AllowList(allowlist_config.default_ranges)
        self.admission_filter = AdmissionFilter(self.allowlist, self.registry)

        if allowlist_config.refresh_on_startup:
            # Requests are checked against the default list until this lands
            self._refresh_task = asyncio.create_task(
                self.allowlist.refresh_async(
                    allowlist_config.meta_url,
                    allowlist_config.meta_key,
                    allowlist_config.meta_timeout,
                )
            )
        return True

    async def _initialize_schedules(self) -> bool:
        self.binder = SchedulerBinder(git_timeout=self.config_manager.deploy.pull_timeout)
        await self.binder.bind(self.registry, self.orchestrator.submit)
        return True

    async def start_server(self):
        """Start the HTTP server with the push hook endpoint"""
        app = create_http_server(self.config_manager, self.orchestrator, self.admission_filter, self.binder)

        config = uvicorn.Config(
            app=app,
            host=self.config_manager.server.host,
            port=self.config_manager.server.port,
            log_level=self.config_manager.server.log_level.lower(),
            access_log=self.config_manager.server.access_log,
            log_config=None,
        )
        self.server = uvicorn.Server(config)

        self._log_startup_info()
        await self.server.serve()

    def _log_startup_info(self):
        server = self.config_manager.server
        logger.info(f"🚀 Listening on {server.host}:{server.port}")
        for name, route in create_route_metadata(server.hook_path).items():
            logger.info(f"   {name}: {route}")
        logger.info(f"🔐 Allow-list: {self.allowlist.ranges}")

    async def shutdown(self):
        """Graceful shutdown: stop timers, let the running deployment finish"""
        logger.info("🛑 Shutting down server...")

        if self.binder:
            self.binder.stop()

        if self._refresh_task and not self._refresh_task.done():
            self._refresh_task.cancel()

        if self.orchestrator:
            await self.orchestrator.shutdown(timeout=SHUTDOWN_GRACE_SECONDS)

        logger.info("✅ Shutdown completed")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Push hook continuous deployment server")
    parser.add_argument("--config", "-c", help="YAML configuration file (or PUSHDEPLOY_CONFIG)")
    parser.add_argument("--host", help="Bind address")
    parser.add_argument("--port", type=int, help="Listen port")
    parser.add_argument("--targets-root", help="Directory containing deployment target checkouts")
    return parser.parse_args(argv)


async def main(argv=None) -> int:
    """Main entry point"""
    install_fatal_handlers(asyncio.get_running_loop())
    server = DeployServer(parse_args(argv))

    if not await server.initialize():
        logger.error("❌ Initialization failed, exiting")
        return 1

    try:
        await server.start_server()
    finally:
        await server.shutdown()

    return 0


def cli():
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("Server stopped by user")


if __name__ == "__main__":
    cli()
