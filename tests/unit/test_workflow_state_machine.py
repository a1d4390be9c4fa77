"""Unit tests for the execution state machine.

These tests assert that illegal status transitions fail loudly and that
finished executions are persisted explicitly.
"""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from workflow_orchestrator.orchestrator.workflow.state_machine import (
    ExecutionHistoryStore,
    ExecutionResult,
    ExecutionState,
    ExecutionStatus,
    IllegalTransitionError,
    transition,
    utc_now,
)


def _result(execution_id: str, status: ExecutionStatus = ExecutionStatus.SUCCEEDED) -> ExecutionResult:
    started = utc_now()
    return ExecutionResult(
        execution_id=execution_id,
        workflow="wf",
        status=status,
        output={"secret": "value"},
        started_at=started,
        finished_at=started + timedelta(seconds=1),
        attempts={"S1": 1},
    )


@pytest.mark.parametrize(
    ("current", "to"),
    [
        (ExecutionStatus.PENDING, ExecutionStatus.SUCCEEDED),
        (ExecutionStatus.SUCCEEDED, ExecutionStatus.RUNNING),
        (ExecutionStatus.FAILED, ExecutionStatus.SUCCEEDED),
        (ExecutionStatus.SUCCEEDED, ExecutionStatus.FAILED),
    ],
)
def test_transition_rejects_illegal_transitions(
    current: ExecutionStatus, to: ExecutionStatus
) -> None:
    with pytest.raises(IllegalTransitionError):
        transition(current=current, to=to)


def test_state_advances_through_steps() -> None:
    state = ExecutionState(execution_id="e1", workflow="wf", payload={})

    state.advance(ExecutionStatus.RUNNING, step="S1")
    state.advance(ExecutionStatus.RUNNING, step="S2")
    state.advance(ExecutionStatus.SUCCEEDED)

    assert state.status.is_terminal
    assert state.current_step == "S2"
    with pytest.raises(IllegalTransitionError):
        state.advance(ExecutionStatus.RUNNING, step="S3")


def test_history_store_roundtrip(tmp_path: Path) -> None:
    store = ExecutionHistoryStore(tmp_path / "state" / "executions.json")
    assert store.load() == []

    store.append(_result("e1"))
    store.append(_result("e2", ExecutionStatus.FAILED))

    assert [r["execution_id"] for r in store.load()] == ["e1", "e2"]
    loaded = store.get("e2")
    assert loaded is not None
    assert loaded["status"] == "failed"
    assert loaded["output"] == {"secret": "value"}
    assert loaded["attempts"] == {"S1": 1}
    assert store.get("missing") is None


def test_history_store_can_omit_payloads(tmp_path: Path) -> None:
    store = ExecutionHistoryStore(tmp_path / "executions.json", include_execution_data=False)
    store.append(_result("e1"))

    record = store.get("e1")
    assert record is not None
    assert "output" not in record
    assert "secret" not in store.path.read_text(encoding="utf-8")


def test_history_store_ignores_corrupt_file(tmp_path: Path) -> None:
    path = tmp_path / "executions.json"
    path.write_text("{not json", encoding="utf-8")

    store = ExecutionHistoryStore(path)
    assert store.load() == []
    store.append(_result("e1"))
    assert len(store.load()) == 1
