"""Deployment Target - Capability interface for pluggable targets

Responsibilities:
- Define the pull / run / schedule contract every target exposes
- Provide the default pull (git hard reset + pull)
- Adapt a loaded deploy.py definition module to that contract
"""

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from types import ModuleType
from typing import Any, Callable, Optional

from pushdeploy.core.exceptions import PullFailed, RunFailed
from pushdeploy.core.git.operations.operations import GitOperations
from pushdeploy.core.targets.request.request import DeploymentRequest

logger = logging.getLogger(__name__)


async def call_maybe_async(func: Callable, *args) -> Any:
    """Call a sync or async callable without blocking the event loop"""
    if inspect.iscoroutinefunction(func):
        return await func(*args)

    result = await asyncio.to_thread(func, *args)
    if inspect.isawaitable(result):
        result = await result
    return result


class DeploymentTarget(ABC):
    """A named, path-addressed deployable unit"""

    def __init__(self, name: str, path: Path):
        self.name = name
        self.path = Path(path)

    @abstractmethod
    async def pull(self) -> None:
        """Sync the working copy to the latest source; raise PullFailed on error"""

    @abstractmethod
    async def run(self, request: DeploymentRequest) -> None:
        """Execute the deployment; raise on failure"""

    @property
    def has_schedule(self) -> bool:
        return False

    def schedule(self, branch: str, timer_factory: Callable, dispatch: Callable) -> Any:
        """Register time-based deployments; targets without a schedule ignore this"""
        return None


class GitWorkingCopy(DeploymentTarget):
    """Bare git checkout: can be pulled, has nothing to run

    Used to pull a target whose definition does not load, so a push that
    fixes a broken deploy.py still reaches the working copy.
    """

    def __init__(self, name: str, path: Path, git_timeout: Optional[float] = None):
        super().__init__(name, path)
        self.git_timeout = git_timeout

    async def pull(self) -> None:
        if not self.path.is_dir():
            raise PullFailed(self.name, f"working copy missing: {self.path}")

        result = await GitOperations(self.path, timeout=self.git_timeout).reset_and_pull()
        if not result["success"]:
            raise PullFailed(self.name, result.get("error", "git pull failed"))

    async def run(self, request: DeploymentRequest) -> None:
        raise RunFailed(self.name, "working copy has no deployment definition")


class ModuleTarget(GitWorkingCopy):
    """Target backed by a deploy.py definition module

    The module must define ``run(request)``; ``init(logger)``,
    ``pull(path)`` and ``schedule(branch, timer_factory, dispatch)`` are optional.
    Both plain and async functions are accepted.
    """

    def __init__(self, name: str, path: Path, module: ModuleType, git_timeout: Optional[float] = None):
        super().__init__(name, path, git_timeout=git_timeout)
        self.module = module

    def init(self, target_logger: logging.Logger):
        """Hand the definition its logger"""
        init = getattr(self.module, "init", None)
        if callable(init):
            init(target_logger)

    async def pull(self) -> None:
        custom_pull = getattr(self.module, "pull", None)
        if not callable(custom_pull):
            await super().pull()
            return

        try:
            await call_maybe_async(custom_pull, self.path)
        except PullFailed:
            raise
        except Exception as e:
            raise PullFailed(self.name, str(e)) from e

    async def run(self, request: DeploymentRequest) -> None:
        try:
            await call_maybe_async(self.module.run, request)
        except RunFailed:
            raise
        except Exception as e:
            raise RunFailed(self.name, f"{type(e).__name__}: {e}") from e

    @property
    def has_schedule(self) -> bool:
        return callable(getattr(self.module, "schedule", None))

    def schedule(self, branch: str, timer_factory: Callable, dispatch: Callable) -> Any:
        if not self.has_schedule:
            return None
        return self.module.schedule(branch, timer_factory, dispatch)
