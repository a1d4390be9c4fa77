"""Test configuration and fixtures."""

from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

import pytest

from workflow_orchestrator.orchestrator.invocation.client import LocalInvoker
from workflow_orchestrator.orchestrator.notification.publisher import MemoryPublisher
from workflow_orchestrator.orchestrator.workflow.conditions import string_equals
from workflow_orchestrator.orchestrator.workflow.definition import (
    Terminal,
    WorkflowBuilder,
    WorkflowDefinition,
)
from workflow_orchestrator.orchestrator.workflow.executor import WorkflowExecutor
from workflow_orchestrator.orchestrator.workflow.failure_router import FailureRouter
from workflow_orchestrator.orchestrator.workflow.steps import InvocationMode

EXAMPLE_DEFINITION = Path(__file__).resolve().parents[1] / "examples" / "state_functions.json"

_SETTINGS_ENV_VARS = (
    "LOG_LEVEL",
    "WORKFLOW_DEFINITION_PATH",
    "WORKFLOW_TIMEOUT_SECONDS",
    "WORKFLOW_INVOKE_BASE_URL",
    "WORKFLOW_INVOKE_TOKEN",
    "WORKFLOW_NOTIFICATION_URL",
    "WORKFLOW_NOTIFICATION_TOPIC",
    "WORKFLOW_HISTORY_PATH",
    "WORKFLOW_LOG_EXECUTION_DATA",
    "WORKFLOW_HTTP_TIMEOUT_SECONDS",
    "WORKFLOW_MAX_MEMORY_MB",
    "WORKFLOW_MAX_STEP_TIMEOUT_SECONDS",
    "WORKFLOW_JOBS_PATH",
    "WORKFLOW_CORS_ORIGINS",
)


@pytest.fixture
def clean_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run in an empty directory with no workflow settings in the environment."""
    for name in _SETTINGS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def example_definition_path() -> Path:
    """Path to the bundled three-step example definition."""
    return EXAMPLE_DEFINITION


@pytest.fixture
def three_step_definition() -> WorkflowDefinition:
    """S1 (choice "Yes" -> succeed, otherwise S2), S2 -> S3, S3 (event) -> succeed."""
    builder = WorkflowBuilder("three-step", timeout_seconds=10)
    s1 = builder.define_step("S1", "s1-target", {"TABLE_NAME": "TableName"})
    s2 = builder.define_step("S2", "s2-target")
    s3 = builder.define_step("S3", "s3-target", mode=InvocationMode.EVENT)
    builder.add_choice(s1, string_equals("$.state", "Yes"), Terminal.SUCCEEDED)
    builder.add_otherwise(s1, s2)
    builder.add_transition(s2, s3)
    builder.add_transition(s3, Terminal.SUCCEEDED)
    return builder.freeze()


@pytest.fixture
def publisher() -> MemoryPublisher:
    """Provide an in-memory notification channel."""
    return MemoryPublisher()


@pytest.fixture
def make_executor(
    publisher: MemoryPublisher,
) -> Callable[[Mapping[str, Callable[..., Any]]], WorkflowExecutor]:
    """Build an executor over in-process handlers, routing failures to `publisher`."""

    def _make(handlers: Mapping[str, Callable[..., Any]]) -> WorkflowExecutor:
        return WorkflowExecutor(
            LocalInvoker(handlers), failure_router=FailureRouter(publisher, topic="dead-letter")
        )

    return _make
