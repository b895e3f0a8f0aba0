"""PyTest configuration and fixtures for pushdeploy tests"""

import asyncio
import textwrap
from pathlib import Path

import pytest

from pushdeploy.core.exceptions import PullFailed
from pushdeploy.core.targets.request.request import DeploymentRequest
from pushdeploy.core.targets.target.target import DeploymentTarget


@pytest.fixture
def targets_root(tmp_path):
    """Empty targets root directory"""
    root = tmp_path / "targets"
    root.mkdir()
    return root


@pytest.fixture
def make_target(targets_root):
    """Create a target directory with a deploy.py definition"""

    def _make_target(name: str, source: str = None) -> Path:
        path = targets_root / name
        path.mkdir(exist_ok=True)
        if source is None:
            source = "def run(request):\n    pass\n"
        (path / "deploy.py").write_text(textwrap.dedent(source))
        return path

    return _make_target


class FakeTarget(DeploymentTarget):
    """In-memory target recording pull/run calls on a shared harness"""

    def __init__(self, name, path, harness):
        super().__init__(name, path)
        self.harness = harness

    async def pull(self):
        self.harness.events.append(("pull", self.name))
        await asyncio.sleep(0)
        if self.name in self.harness.fail_pull:
            raise PullFailed(self.name, "simulated pull failure")

    async def run(self, request):
        harness = self.harness
        harness.running += 1
        harness.max_running = max(harness.max_running, harness.running)
        harness.events.append(("run", self.name))
        harness.runs.append(request)
        try:
            gate = harness.gates.get(self.name)
            if gate is not None:
                await gate.wait()
            await asyncio.sleep(harness.run_delay)
            if self.name in harness.fail_run:
                raise RuntimeError("simulated run failure")
        finally:
            harness.running -= 1


class FakeRegistry:
    """Registry double handing out FakeTargets for any path"""

    def __init__(self, targets_root: Path):
        self.targets_root = targets_root
        self.events = []
        self.runs = []
        self.fail_pull = set()
        self.fail_run = set()
        self.gates = {}
        self.run_delay = 0.0
        self.running = 0
        self.max_running = 0
        self.resolve_count = 0

    def resolve(self, path):
        self.resolve_count += 1
        path = Path(path)
        return FakeTarget(path.name, path, self)

    def working_copy(self, path):
        return self.resolve(path)

    def request(self, repository: str, branch: str = "main") -> DeploymentRequest:
        return DeploymentRequest.create(repository, branch, self.targets_root)


@pytest.fixture
def fake_registry(tmp_path):
    return FakeRegistry(tmp_path)


# Test markers for organization
def pytest_configure(config):
    """Configure custom pytest markers"""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
