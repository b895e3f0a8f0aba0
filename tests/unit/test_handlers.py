"""Tests for the push hook and health HTTP endpoints"""

import json
from unittest.mock import Mock, patch

import pytest
from starlette.testclient import TestClient

from pushdeploy.api.http.server.server import create_http_server
from pushdeploy.core.admission.filter.filter import AdmissionFilter
from pushdeploy.core.config.manager.manager import ConfigManager
from pushdeploy.core.orchestrator.orchestrator import DeploymentOrchestrator
from pushdeploy.core.scheduling.binder.binder import SchedulerBinder
from pushdeploy.core.security.allowlist.allowlist import AllowList
from pushdeploy.core.targets.registry.registry import TargetRegistry

TRUSTED = {"X-Forwarded-For": "192.30.252.10, 10.0.0.1"}
UNTRUSTED = {"X-Forwarded-For": "203.0.113.5"}


def push_body(repository="app", ref="refs/heads/main"):
    return json.dumps({"ref": ref, "repository": {"name": repository}})


@pytest.fixture
def config(targets_root):
    config = ConfigManager(environ={})
    config.deploy.targets_root = targets_root
    return config


@pytest.fixture
def admission(targets_root):
    return AdmissionFilter(AllowList(["192.30.252.0/22"]), TargetRegistry(targets_root))


@pytest.fixture
def orchestrator():
    return Mock(spec=DeploymentOrchestrator)


@pytest.fixture
def client(config, orchestrator, admission):
    app = create_http_server(config, orchestrator, admission, SchedulerBinder())
    return TestClient(app)


@pytest.mark.unit
class TestPushHook:
    """POST /hooks/push"""

    def test_form_payload_submits_deployment(self, client, orchestrator, make_target):
        make_target("app-main")

        response = client.post("/hooks/push", data={"payload": push_body()}, headers=TRUSTED)

        assert response.status_code == 200
        assert response.text == ""
        request = orchestrator.submit.call_args[0][0]
        assert request.name == "app-main"
        assert request.branch == "main"

    def test_json_body_submits_deployment(self, client, orchestrator, make_target):
        make_target("app-feature-x")

        response = client.post(
            "/hooks/push",
            content=push_body(ref="refs/heads/feature/x"),
            headers={**TRUSTED, "Content-Type": "application/json"},
        )

        assert response.status_code == 200
        assert orchestrator.submit.call_args[0][0].name == "app-feature-x"

    def test_untrusted_source_is_acknowledged_and_dropped(self, client, orchestrator, make_target):
        make_target("app-main")

        response = client.post("/hooks/push", data={"payload": push_body()}, headers=UNTRUSTED)

        assert response.status_code == 200
        assert response.text == ""
        orchestrator.submit.assert_not_called()

    def test_unknown_target_is_acknowledged_and_dropped(self, client, orchestrator):
        response = client.post("/hooks/push", data={"payload": push_body("ghost")}, headers=TRUSTED)

        assert response.status_code == 200
        orchestrator.submit.assert_not_called()

    def test_malformed_payload_is_acknowledged_and_dropped(self, client, orchestrator):
        response = client.post("/hooks/push", data={"payload": "{not json"}, headers=TRUSTED)

        assert response.status_code == 200
        orchestrator.submit.assert_not_called()

    def test_form_without_payload_field(self, client, orchestrator):
        response = client.post("/hooks/push", data={"other": "x"}, headers=TRUSTED)

        assert response.status_code == 200
        orchestrator.submit.assert_not_called()

    def test_unexpected_error_is_acknowledged(self, client, orchestrator, admission):
        with patch.object(admission, "admit", side_effect=RuntimeError("boom")):
            response = client.post("/hooks/push", data={"payload": push_body()}, headers=TRUSTED)

        assert response.status_code == 200
        orchestrator.submit.assert_not_called()

    def test_failing_submit_is_acknowledged(self, client, orchestrator, make_target):
        make_target("app-main")
        orchestrator.submit.side_effect = RuntimeError("no running event loop")

        response = client.post("/hooks/push", data={"payload": push_body()}, headers=TRUSTED)

        assert response.status_code == 200
        assert response.text == ""
        orchestrator.submit.assert_called_once()

    def test_forwarded_for_ignored_when_untrusted(self, config, orchestrator, admission, make_target):
        make_target("app-main")
        config.server.trust_forwarded_for = False
        client = TestClient(create_http_server(config, orchestrator, admission, SchedulerBinder()))

        client.post("/hooks/push", data={"payload": push_body()}, headers=TRUSTED)

        # The test client address is not in the allow-list
        orchestrator.submit.assert_not_called()

    def test_get_is_not_allowed(self, client):
        assert client.get("/hooks/push").status_code == 405

    def test_custom_hook_path(self, config, orchestrator, admission, make_target):
        make_target("app-main")
        config.server.hook_path = "/deploy"
        client = TestClient(create_http_server(config, orchestrator, admission, SchedulerBinder()))

        response = client.post("/deploy", data={"payload": push_body()}, headers=TRUSTED)

        assert response.status_code == 200
        orchestrator.submit.assert_called_once()


@pytest.mark.unit
class TestHealthCheck:
    """GET /health"""

    def test_health_reports_idle_orchestrator(self, config, admission, fake_registry):
        orchestrator = DeploymentOrchestrator(fake_registry)
        client = TestClient(create_http_server(config, orchestrator, admission, SchedulerBinder()))

        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["orchestrator"]["state"] == "idle"
        assert data["orchestrator"]["pending"] == []
        assert data["allowlist"] == ["192.30.252.0/22"]
        assert data["schedules"] == {"targets": {}, "jobs": []}
