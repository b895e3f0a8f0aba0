"""Tests for target discovery, fresh loading and the target contract"""

import logging
from unittest.mock import AsyncMock, patch

import pytest

from pushdeploy.core.exceptions import PullFailed, RunFailed, TargetDefinitionInvalid, TargetNotFound
from pushdeploy.core.git.operations.operations import GitOperations
from pushdeploy.core.targets.registry.registry import TargetRegistry
from pushdeploy.core.targets.request.request import DeploymentRequest
from pushdeploy.core.targets.target.target import GitWorkingCopy, ModuleTarget, call_maybe_async


@pytest.mark.unit
class TestTargetRegistry:
    """Discovery and resolution of deploy.py definitions"""

    def test_discover_lists_targets_with_definitions(self, targets_root, make_target):
        make_target("web-main")
        make_target("api-main")
        (targets_root / "plain-dir").mkdir()
        (targets_root / ".hidden").mkdir()
        (targets_root / ".hidden" / "deploy.py").write_text("def run(request): pass\n")
        (targets_root / "loose-file.txt").write_text("not a target")

        registry = TargetRegistry(targets_root)

        assert [p.name for p in registry.discover()] == ["api-main", "web-main"]

    def test_discover_missing_root_is_empty(self, tmp_path):
        registry = TargetRegistry(tmp_path / "nope")
        assert registry.discover() == []

    def test_exists_by_name_and_path(self, targets_root, make_target):
        path = make_target("web-main")
        registry = TargetRegistry(targets_root)

        assert registry.exists("web-main") is True
        assert registry.exists(path) is True
        assert registry.exists("web-dev") is False

    def test_exists_requires_definition_file(self, targets_root):
        (targets_root / "web-main").mkdir()
        registry = TargetRegistry(targets_root)

        assert registry.exists("web-main") is False

    def test_resolve_missing_definition_raises(self, targets_root):
        registry = TargetRegistry(targets_root)

        with pytest.raises(TargetNotFound) as exc_info:
            registry.resolve(targets_root / "web-main")

        assert exc_info.value.error_type == "target_not_found"

    def test_resolve_syntax_error_raises_invalid(self, targets_root, make_target):
        path = make_target("web-main", "def run(request)\n    pass\n")
        registry = TargetRegistry(targets_root)

        with pytest.raises(TargetDefinitionInvalid) as exc_info:
            registry.resolve(path)

        assert "SyntaxError" in str(exc_info.value)

    def test_resolve_without_run_raises_invalid(self, targets_root, make_target):
        path = make_target("web-main", "VALUE = 1\n")
        registry = TargetRegistry(targets_root)

        with pytest.raises(TargetDefinitionInvalid, match="run"):
            registry.resolve(path)

    def test_resolve_failing_init_raises_invalid(self, targets_root, make_target):
        path = make_target(
            "web-main",
            """
            def init(logger):
                raise ValueError("bad init")

            def run(request):
                pass
            """,
        )
        registry = TargetRegistry(targets_root)

        with pytest.raises(TargetDefinitionInvalid, match="bad init"):
            registry.resolve(path)

    def test_resolve_passes_target_logger_to_init(self, targets_root, make_target):
        path = make_target(
            "web-main",
            """
            LOGGERS = []

            def init(logger):
                LOGGERS.append(logger)

            def run(request):
                pass
            """,
        )
        registry = TargetRegistry(targets_root)

        target = registry.resolve(path)

        assert isinstance(target, ModuleTarget)
        assert target.module.LOGGERS == [logging.getLogger("pushdeploy.targets.web-main")]

    def test_resolve_reloads_changed_definition(self, targets_root, make_target):
        path = make_target("web-main", "VERSION = 1\ndef run(request): pass\n")
        registry = TargetRegistry(targets_root)

        first = registry.resolve(path)
        (path / "deploy.py").write_text("VERSION = 2\ndef run(request): pass\n")
        second = registry.resolve(path)

        assert first.module.VERSION == 1
        assert second.module.VERSION == 2
        assert not (path / "__pycache__").exists()

    def test_working_copy_is_git_only(self, targets_root):
        registry = TargetRegistry(targets_root, git_timeout=5)

        copy = registry.working_copy(targets_root / "web-main")

        assert type(copy) is GitWorkingCopy
        assert copy.name == "web-main"
        assert copy.git_timeout == 5


@pytest.mark.unit
class TestModuleTarget:
    """Adapting definition modules to pull/run/schedule"""

    @pytest.fixture
    def request_for(self, targets_root):
        def _request_for(path):
            return DeploymentRequest.for_path(path, "main")

        return _request_for

    @pytest.mark.asyncio
    async def test_sync_run_receives_request(self, targets_root, make_target, request_for):
        path = make_target(
            "web-main",
            """
            SEEN = []

            def run(request):
                SEEN.append(request.name)
            """,
        )
        target = TargetRegistry(targets_root).resolve(path)

        await target.run(request_for(path))

        assert target.module.SEEN == ["web-main"]

    @pytest.mark.asyncio
    async def test_async_run_is_awaited(self, targets_root, make_target, request_for):
        path = make_target(
            "web-main",
            """
            import asyncio

            SEEN = []

            async def run(request):
                await asyncio.sleep(0)
                SEEN.append(request.branch)
            """,
        )
        target = TargetRegistry(targets_root).resolve(path)

        await target.run(request_for(path))

        assert target.module.SEEN == ["main"]

    @pytest.mark.asyncio
    async def test_run_exception_becomes_run_failed(self, targets_root, make_target, request_for):
        path = make_target(
            "web-main",
            """
            def run(request):
                raise OSError("disk full")
            """,
        )
        target = TargetRegistry(targets_root).resolve(path)

        with pytest.raises(RunFailed) as exc_info:
            await target.run(request_for(path))

        assert "OSError: disk full" in str(exc_info.value)
        assert "web-main" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_custom_pull_replaces_git(self, targets_root, make_target):
        path = make_target(
            "web-main",
            """
            PULLED = []

            def pull(path):
                PULLED.append(path)

            def run(request):
                pass
            """,
        )
        target = TargetRegistry(targets_root).resolve(path)

        with patch.object(GitOperations, "reset_and_pull", AsyncMock()) as git_pull:
            await target.pull()

        git_pull.assert_not_called()
        assert target.module.PULLED == [path]

    @pytest.mark.asyncio
    async def test_custom_pull_error_becomes_pull_failed(self, targets_root, make_target):
        path = make_target(
            "web-main",
            """
            def pull(path):
                raise RuntimeError("no network")

            def run(request):
                pass
            """,
        )
        target = TargetRegistry(targets_root).resolve(path)

        with pytest.raises(PullFailed, match="no network"):
            await target.pull()

    @pytest.mark.asyncio
    async def test_default_pull_uses_git(self, targets_root, make_target):
        path = make_target("web-main")
        target = TargetRegistry(targets_root).resolve(path)

        with patch.object(
            GitOperations, "reset_and_pull", AsyncMock(return_value={"success": True, "stdout": ""})
        ) as git_pull:
            await target.pull()

        git_pull.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_default_pull_failure_raises(self, targets_root, make_target):
        path = make_target("web-main")
        target = TargetRegistry(targets_root).resolve(path)

        failure = {"success": False, "error": "fatal: not a git repository"}
        with patch.object(GitOperations, "reset_and_pull", AsyncMock(return_value=failure)):
            with pytest.raises(PullFailed, match="not a git repository"):
                await target.pull()

    @pytest.mark.asyncio
    async def test_working_copy_pull_requires_directory(self, targets_root):
        copy = GitWorkingCopy("web-main", targets_root / "web-main")

        with pytest.raises(PullFailed, match="working copy missing"):
            await copy.pull()

    @pytest.mark.asyncio
    async def test_working_copy_cannot_run(self, targets_root):
        copy = GitWorkingCopy("web-main", targets_root / "web-main")

        with pytest.raises(RunFailed):
            await copy.run(DeploymentRequest.for_path(copy.path, "main"))

    def test_has_schedule_follows_definition(self, targets_root, make_target):
        plain = TargetRegistry(targets_root).resolve(make_target("web-main"))
        scheduled = TargetRegistry(targets_root).resolve(
            make_target(
                "cron-main",
                """
                def run(request):
                    pass

                def schedule(branch, timer_factory, dispatch):
                    return branch
                """,
            )
        )

        assert plain.has_schedule is False
        assert plain.schedule("main", None, None) is None
        assert scheduled.has_schedule is True
        assert scheduled.schedule("main", None, None) == "main"


@pytest.mark.unit
class TestCallMaybeAsync:
    """Calling sync and async callables from the loop"""

    @pytest.mark.asyncio
    async def test_sync_function(self):
        assert await call_maybe_async(lambda x: x * 2, 21) == 42

    @pytest.mark.asyncio
    async def test_coroutine_function(self):
        async def double(x):
            return x * 2

        assert await call_maybe_async(double, 21) == 42

    @pytest.mark.asyncio
    async def test_sync_function_returning_awaitable(self):
        async def later():
            return "done"

        assert await call_maybe_async(lambda: later()) == "done"


@pytest.mark.unit
def test_definition_may_use_dataclasses(targets_root, make_target):
    path = make_target(
        "web-main",
        """
        from dataclasses import dataclass

        @dataclass
        class Settings:
            replicas: int = 2

        def run(request):
            pass
        """,
    )

    target = TargetRegistry(targets_root).resolve(path)

    assert target.module.Settings().replicas == 2
