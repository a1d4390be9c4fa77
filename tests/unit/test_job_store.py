from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from workflow_orchestrator.orchestrator.workflow.state_machine import (
    ExecutionResult,
    ExecutionStatus,
    IllegalTransitionError,
    utc_now,
)
from workflow_orchestrator.server.job_store import JobStore


def _result(status: ExecutionStatus, reason: str | None = None) -> ExecutionResult:
    now = utc_now()
    return ExecutionResult(
        execution_id="j1",
        workflow="wf",
        status=status,
        output={"k": "v"},
        started_at=now,
        finished_at=now + timedelta(seconds=1),
        reason=reason,
    )


def test_job_lifecycle_is_persisted(tmp_path: Path) -> None:
    store = JobStore(tmp_path / "state" / "jobs.json")
    store.create(job_id="j1", workflow="wf")
    store.update("j1", status="running")
    store.finish("j1", _result(ExecutionStatus.SUCCEEDED))

    reopened = JobStore(store.path)
    job = reopened.get("j1")
    assert job is not None
    assert job.status == "succeeded"
    assert job.output == {"k": "v"}
    assert [j.job_id for j in reopened.list()] == ["j1"]


def test_cancelled_result_maps_to_cancelled_job(tmp_path: Path) -> None:
    store = JobStore(tmp_path / "jobs.json")
    store.create(job_id="j1", workflow="wf")
    store.update("j1", status="running")

    job = store.finish("j1", _result(ExecutionStatus.FAILED, "Cancelled"), include_data=False)

    assert job.status == "cancelled"
    assert job.output is None


def test_finished_jobs_cannot_change(tmp_path: Path) -> None:
    store = JobStore(tmp_path / "jobs.json")
    store.create(job_id="j1", workflow="wf")
    store.update("j1", status="running")
    store.update("j1", status="failed", error="boom")

    with pytest.raises(IllegalTransitionError):
        store.update("j1", status="running")
    with pytest.raises(KeyError):
        store.update("missing", status="running")
    with pytest.raises(ValueError):
        store.create(job_id="j1", workflow="wf")
