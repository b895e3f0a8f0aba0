"""Deployment Orchestrator - Single-flight execution with collapsed queueing

Responsibilities:
- Accept deployment requests from push hooks and schedules
- Run at most one deployment at a time across the whole host
- Keep at most one pending request per target name (newest wins)
- Pull, re-resolve and run a target; release the lock on every path
- Drain one pending request after each deployment finishes

All state is confined to the event loop thread: submit() must be called
from that loop and never blocks on the deployment itself.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Set

from pushdeploy.core.exceptions import (
    DeploySystemError,
    PullFailed,
    RunFailed,
    TargetDefinitionInvalid,
)
from pushdeploy.core.orchestrator.record import DeploymentRecord
from pushdeploy.core.targets.registry.registry import TargetRegistry
from pushdeploy.core.targets.request.request import DeploymentRequest

logger = logging.getLogger(__name__)


class DeploymentOrchestrator:
    """Owns the global deployment lock and the pending map"""

    def __init__(
        self,
        registry: TargetRegistry,
        pull_timeout: Optional[float] = None,
        run_timeout: Optional[float] = None,
    ):
        self.registry = registry
        self.pull_timeout = pull_timeout
        self.run_timeout = run_timeout

        self.active = False
        self.active_names: Set[str] = set()
        # Insertion ordered; draining takes the first entry
        self.pending: Dict[str, DeploymentRequest] = {}
        self.history: Dict[str, DeploymentRecord] = {}

        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

    def submit(self, request: DeploymentRequest) -> bool:
        """Start a deployment, or queue it if any deployment is running.

        Returns:
            True when the deployment started, False when queued or dropped
        """
        if self._closed:
            logger.warning(f"Orchestrator is shutting down, dropping {request.name}")
            return False

        if self.active or request.name in self.active_names:
            logger.info(f"⏳ Queueing {request.name}")
            self.pending[request.name] = request
            return False

        loop = asyncio.get_running_loop()

        logger.info(f"🚀 Deploying {request.name}")
        self.active = True
        self.active_names.add(request.name)

        task = loop.create_task(self._execute(request), name=f"deploy:{request.name}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def _execute(self, request: DeploymentRequest):
        """Pull, re-resolve and run one target; always release afterwards"""
        logger.debug(f"ENTRY _execute: {request.to_dict()}")
        record = DeploymentRecord.start(request.name)
        self.history[request.name] = record

        try:
            await self._pull(request)
            await self._run(request)
            record.finish()
        except PullFailed as e:
            logger.error(f"❌ {e}")
            record.finish(stage="pull", error=str(e))
        except RunFailed as e:
            logger.error(f"❌ {e}")
            record.finish(stage="run", error=str(e))
        except asyncio.CancelledError:
            record.finish(stage="run", error="cancelled")
            raise
        except Exception as e:
            # Failures in a target never reach the process boundary
            logger.error(f"❌ Error while deploying {request.name}: {e}", exc_info=True)
            record.finish(stage="run", error=str(e))
        finally:
            self._release(request)

        logger.debug(f"EXIT _execute: {request.name} status={record.status.value}")

    async def _pull(self, request: DeploymentRequest):
        try:
            target = self.registry.resolve(request.path)
        except TargetDefinitionInvalid as e:
            logger.warning(f"⚠️ {e}; pulling working copy with git")
            target = self.registry.working_copy(request.path)
        except DeploySystemError as e:
            raise PullFailed(request.name, str(e)) from e

        try:
            await self._await_bounded(target.pull(), self.pull_timeout, request.name, "pull")
        except PullFailed:
            raise
        except asyncio.TimeoutError as e:
            raise PullFailed(request.name, f"timed out after {self.pull_timeout}s") from e
        except Exception as e:
            raise PullFailed(request.name, f"{type(e).__name__}: {e}") from e

    async def _run(self, request: DeploymentRequest):
        # Re-resolve: the pull may have changed the definition
        try:
            target = self.registry.resolve(request.path)
        except DeploySystemError as e:
            raise RunFailed(request.name, str(e)) from e

        try:
            await self._await_bounded(target.run(request), self.run_timeout, request.name, "run")
        except RunFailed:
            raise
        except asyncio.TimeoutError as e:
            raise RunFailed(request.name, f"timed out after {self.run_timeout}s") from e
        except Exception as e:
            raise RunFailed(request.name, f"{type(e).__name__}: {e}") from e

    async def _await_bounded(self, work, timeout: Optional[float], name: str, stage: str):
        """Await a pull or run step, raising TimeoutError once it overruns.

        Worker threads and git processes cannot be interrupted, so an overrunning
        step is still awaited to its end before the timeout is reported and the
        lock can be released.
        """
        task = asyncio.ensure_future(work)
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout)
            return
        except asyncio.TimeoutError:
            logger.error(f"⏱️ {stage} of {name} exceeded {timeout}s, waiting for it to stop")

        try:
            await task
        except Exception as e:
            logger.warning(f"Overrunning {stage} of {name} ended with {type(e).__name__}: {e}")
        raise asyncio.TimeoutError

    def _release(self, request: DeploymentRequest):
        self.active_names.discard(request.name)
        self.active = False
        logger.info(f"✅ Done deploying {request.name}")
        self._drain()

    def _drain(self):
        """Submit one pending request, if any"""
        if self._closed or not self.pending:
            return

        name = next(iter(self.pending))
        queued = self.pending.pop(name)
        logger.info(f"Running queued job: {name}")
        self.submit(queued)

    async def wait_until_idle(self):
        """Wait for the running deployment and every drained successor"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self, timeout: Optional[float] = None):
        """Stop draining and wait for the in-flight deployment to finish"""
        self._closed = True
        if self.pending:
            logger.warning(f"Discarding queued deployments on shutdown: {list(self.pending)}")
            self.pending.clear()

        try:
            await asyncio.wait_for(self.wait_until_idle(), timeout)
        except asyncio.TimeoutError:
            logger.error(f"Deployment still running after {timeout}s shutdown grace period")

    def snapshot(self) -> dict[str, Any]:
        """Current lock state, queue and last outcome per target"""
        return {
            "active": self.active,
            "active_names": sorted(self.active_names),
            "pending": list(self.pending),
            "deployments": {name: record.to_dict() for name, record in self.history.items()},
        }
