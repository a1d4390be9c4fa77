from __future__ import annotations

import shutil
import threading
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any
from unittest.mock import Mock

import pytest
import requests
from fastapi.testclient import TestClient

from workflow_orchestrator.orchestrator.workflow.definition import (
    Terminal,
    WorkflowBuilder,
    WorkflowDefinition,
)
from workflow_orchestrator.orchestrator.workflow.executor import WorkflowExecutor
from workflow_orchestrator.server.app import create_app
from workflow_orchestrator.server.config import ServerSettings

MakeExecutor = Callable[[Mapping[str, Callable[..., Any]]], WorkflowExecutor]


def _client(definition: WorkflowDefinition | None, executor: WorkflowExecutor | None) -> TestClient:
    return TestClient(create_app(ServerSettings(), definition=definition, executor=executor))


def test_health_and_workflow_description(
    clean_env: Path, three_step_definition: WorkflowDefinition
) -> None:
    client = _client(three_step_definition, None)

    health = client.get("/api/v1/health").json()
    assert health["status"] == "ok"
    assert health["workflow"] == "three-step"
    assert "version" in health

    described = client.get("/api/v1/workflow").json()
    assert described["start_at"] == "S1"
    assert [s["name"] for s in described["steps"]] == ["S1", "S2", "S3"]


def test_definition_loaded_from_settings(clean_env: Path, example_definition_path: Path) -> None:
    target = clean_env / "workflow" / "definition.json"
    target.parent.mkdir(parents=True)
    shutil.copy(example_definition_path, target)

    client = TestClient(create_app(ServerSettings()))

    assert client.get("/api/v1/health").json()["workflow"] == "StepFunctionStateMachine"


def test_missing_definition_returns_409(clean_env: Path) -> None:
    client = TestClient(create_app(ServerSettings()))

    assert client.get("/api/v1/health").json()["workflow"] is None
    assert client.get("/api/v1/workflow").status_code == 409
    assert client.post("/api/v1/executions", json={"input": {}}).status_code == 409


def test_start_without_invoker_returns_409(
    clean_env: Path, three_step_definition: WorkflowDefinition
) -> None:
    client = _client(three_step_definition, None)

    resp = client.post("/api/v1/executions", json={"input": {"state": "Yes"}})

    assert resp.status_code == 409
    assert "WORKFLOW_INVOKE_BASE_URL" in resp.json()["detail"]


def test_start_execution_runs_in_background(
    clean_env: Path, three_step_definition: WorkflowDefinition, make_executor: MakeExecutor
) -> None:
    executor = make_executor(
        {
            "s1-target": lambda p, e: {"state": "Yes", "echo": p},
            "s2-target": lambda p, e: p,
            "s3-target": lambda p, e: None,
        }
    )
    app = create_app(ServerSettings(), definition=three_step_definition, executor=executor)
    client = TestClient(app)

    resp = client.post("/api/v1/executions", json={"input": {"order": 1}})
    assert resp.status_code == 202
    job = resp.json()
    assert job["workflow"] == "three-step"
    assert job["status"] in ("queued", "running", "succeeded")

    app.state.runner.join(job["job_id"], timeout=5)

    finished = client.get(f"/api/v1/executions/{job['job_id']}").json()
    assert finished["status"] == "succeeded"
    assert finished["output"] == {"state": "Yes", "echo": {"order": 1}}
    assert finished["reason"] is None

    listed = client.get("/api/v1/executions").json()
    assert [j["job_id"] for j in listed] == [job["job_id"]]


def test_failed_execution_is_reported(
    clean_env: Path, make_executor: MakeExecutor
) -> None:
    builder = WorkflowBuilder("fails")
    builder.define_step("only", "broken")
    builder.add_transition("only", Terminal.SUCCEEDED)
    definition = builder.freeze()

    def broken(payload: Any, env: Mapping[str, str]) -> Any:
        raise RuntimeError("down")

    app = create_app(ServerSettings(), definition=definition, executor=make_executor({"broken": broken}))
    client = TestClient(app)

    job_id = client.post("/api/v1/executions", json={}).json()["job_id"]
    app.state.runner.join(job_id, timeout=5)

    job = client.get(f"/api/v1/executions/{job_id}").json()
    assert job["status"] == "failed"
    assert job["reason"] == "StepInvocationFailure"
    assert job["failed_step"] == "only"


def test_cancel_running_execution(clean_env: Path, make_executor: MakeExecutor) -> None:
    builder = WorkflowBuilder("slow")
    builder.define_step("first", "block")
    builder.define_step("second", "noop")
    builder.add_transition("first", "second")
    builder.add_transition("second", Terminal.SUCCEEDED)
    definition = builder.freeze()

    entered = threading.Event()
    release = threading.Event()

    def block(payload: Any, env: Mapping[str, str]) -> Any:
        entered.set()
        release.wait(timeout=5)
        return payload

    executor = make_executor({"block": block, "noop": lambda p, e: p})
    app = create_app(ServerSettings(), definition=definition, executor=executor)
    client = TestClient(app)

    job_id = client.post("/api/v1/executions", json={"input": {}}).json()["job_id"]
    try:
        assert entered.wait(timeout=5)
        cancelled = client.post(f"/api/v1/executions/{job_id}/cancel")
        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "running"
    finally:
        release.set()
    app.state.runner.join(job_id, timeout=5)

    job = client.get(f"/api/v1/executions/{job_id}").json()
    assert job["status"] == "cancelled"
    assert job["reason"] == "Cancelled"

    assert client.post(f"/api/v1/executions/{job_id}/cancel").status_code == 409


def test_unknown_execution_returns_404(
    clean_env: Path, three_step_definition: WorkflowDefinition
) -> None:
    client = _client(three_step_definition, None)

    assert client.get("/api/v1/executions/nope").status_code == 404
    assert client.post("/api/v1/executions/nope/cancel").status_code == 404


def test_invalid_request_is_rejected(
    clean_env: Path, three_step_definition: WorkflowDefinition
) -> None:
    client = _client(three_step_definition, None)

    assert client.post("/api/v1/executions", json={"timeout_seconds": 0}).status_code == 422


def test_job_closes_http_sessions_of_its_executor(
    clean_env: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("WORKFLOW_INVOKE_BASE_URL", "https://compute.example")
    monkeypatch.setenv("WORKFLOW_NOTIFICATION_URL", "https://hooks.example/dlq")

    response = Mock(spec=requests.Response)
    response.status_code = 500
    response.content = b"down"
    response.text = "down"
    posted: list[str] = []
    closed: list[requests.Session] = []

    def fake_post(session: requests.Session, url: str, **kwargs: Any) -> Mock:
        posted.append(url)
        return response

    monkeypatch.setattr(requests.Session, "post", fake_post)
    monkeypatch.setattr(requests.Session, "close", lambda session: closed.append(session))

    builder = WorkflowBuilder("remote")
    builder.define_step("only", "fn")
    builder.add_transition("only", Terminal.SUCCEEDED)
    app = create_app(ServerSettings(), definition=builder.freeze())
    client = TestClient(app)

    job_id = client.post("/api/v1/executions", json={}).json()["job_id"]
    app.state.runner.join(job_id, timeout=5)

    assert client.get(f"/api/v1/executions/{job_id}").json()["status"] == "failed"
    assert posted == ["https://compute.example/fn", "https://hooks.example/dlq"]
    assert len(closed) == 2
    assert len({id(session) for session in closed}) == 2


def test_shared_executor_is_not_closed(
    clean_env: Path, three_step_definition: WorkflowDefinition
) -> None:
    executor = Mock(spec=WorkflowExecutor)
    app = create_app(ServerSettings(), definition=three_step_definition, executor=executor)
    client = TestClient(app)

    job_id = client.post("/api/v1/executions", json={}).json()["job_id"]
    app.state.runner.join(job_id, timeout=5)

    executor.run.assert_called_once()
    executor.close.assert_not_called()
