"""Scheduler Binder - Arms target-supplied schedules at startup

Responsibilities:
- Ask every discovered target with a schedule() for its timers
- Determine each target's current branch via git
- Forward timer fires into the orchestrator like a live push hook
- Track armed cron jobs so they can be stopped on shutdown
"""

import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from pushdeploy.core.exceptions import DeploySystemError, InvalidSchedule
from pushdeploy.core.git.operations.operations import GitOperations
from pushdeploy.core.scheduling.cron.cron import CronJob
from pushdeploy.core.targets.registry.registry import TargetRegistry
from pushdeploy.core.targets.request.request import DeploymentRequest

logger = logging.getLogger(__name__)


class SchedulerBinder:
    """Binds target schedules once; targets are not re-validated afterwards"""

    def __init__(self, git_timeout: Optional[float] = None):
        self.git_timeout = git_timeout
        self.jobs: List[CronJob] = []
        self.bound: Dict[str, str] = {}

    async def bind(self, registry: TargetRegistry, on_fire: Callable[[DeploymentRequest], Any]) -> int:
        """Arm schedules for all discovered targets.

        Args:
            registry: Target registry to enumerate
            on_fire: Receives the request when a timer fires

        Returns:
            Number of targets whose schedule was registered
        """
        logger.debug(f"ENTRY SchedulerBinder.bind: root={registry.targets_root}")

        for path in registry.discover():
            await self._bind_target(registry, path, on_fire)

        logger.info(f"⏰ Bound schedules for {len(self.bound)} targets ({len(self.jobs)} cron jobs)")
        return len(self.bound)

    async def _bind_target(self, registry: TargetRegistry, path: Path, on_fire: Callable):
        try:
            target = registry.resolve(path)
        except DeploySystemError as e:
            logger.error(f"Skipping schedule for {path.name}: {e}")
            return

        if not target.has_schedule:
            return

        branch = await GitOperations(path, timeout=self.git_timeout).current_branch()
        if branch is None:
            logger.warning(f"Skipping schedule for {target.name}: cannot determine current branch")
            return

        logger.debug(f"Running scheduler for {path}")
        try:
            target.schedule(branch, self._timer_factory(target.name), self._dispatcher(path, branch, on_fire))
        except InvalidSchedule as e:
            logger.error(f"Invalid schedule for {target.name}: {e}")
            return
        except Exception as e:
            logger.error(f"Schedule registration failed for {target.name}: {e}", exc_info=True)
            return

        self.bound[target.name] = branch

    def _timer_factory(self, name: str) -> Callable[..., CronJob]:
        def timer_factory(cron_time: str, on_tick: Callable[[], Any], start: bool = True) -> CronJob:
            job = CronJob(cron_time, on_tick, start=start, name=f"{name}:{cron_time}")
            self.jobs.append(job)
            return job

        return timer_factory

    def _dispatcher(self, path: Path, branch: str, on_fire: Callable) -> Callable:
        def dispatch(request: Optional[DeploymentRequest] = None):
            if request is None:
                request = DeploymentRequest.for_path(path, branch)
            logger.info(f"Scheduled deployment for {request.name}")
            return on_fire(request)

        return dispatch

    def stop(self):
        """Stop every armed cron job"""
        for job in self.jobs:
            job.stop()
        logger.info(f"Stopped {len(self.jobs)} cron jobs")

    def get_status(self) -> dict[str, Any]:
        return {
            "targets": dict(self.bound),
            "jobs": [job.to_dict() for job in self.jobs],
        }
