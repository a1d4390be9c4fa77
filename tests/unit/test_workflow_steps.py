"""Unit tests for step definitions and the step registry."""

from __future__ import annotations

import pytest

from workflow_orchestrator.orchestrator.workflow.errors import (
    DefinitionError,
    DefinitionFrozen,
    DuplicateStepName,
    InvalidResourceBudget,
)
from workflow_orchestrator.orchestrator.workflow.steps import (
    Capability,
    InvocationMode,
    ResourceBudget,
    RetryPolicy,
    StepRegistry,
)


def test_define_step_applies_defaults_and_grants_capabilities() -> None:
    registry = StepRegistry()
    step = registry.define_step("step1", "step1LambdaFunction", {"TABLE_NAME": "TableName"})

    assert step.budget == ResourceBudget(memory_mb=1024, timeout_seconds=900.0)
    assert step.mode is InvocationMode.REQUEST_RESPONSE
    assert step.retry.max_retries == 0
    assert step.environment["TABLE_NAME"] == "TableName"
    assert step.can(Capability.INVOKE)
    assert step.can(Capability.PUBLISH_FAILURE)
    assert "step1" in registry
    assert len(registry) == 1


def test_step_environment_is_read_only() -> None:
    env = {"KEY": "value"}
    step = StepRegistry().define_step("s", "t", env)

    env["KEY"] = "changed"
    assert step.environment["KEY"] == "value"
    with pytest.raises(TypeError):
        step.environment["KEY"] = "other"  # type: ignore[index]


def test_duplicate_step_name_is_rejected() -> None:
    registry = StepRegistry()
    registry.define_step("step1", "a")

    with pytest.raises(DuplicateStepName):
        registry.define_step("step1", "b")
    assert registry.get("step1") is not None
    assert registry.get("step1").target == "a"  # type: ignore[union-attr]


@pytest.mark.parametrize(
    "budget",
    [
        ResourceBudget(memory_mb=0),
        ResourceBudget(memory_mb=-1),
        ResourceBudget(memory_mb=10241),
        ResourceBudget(timeout_seconds=0),
        ResourceBudget(timeout_seconds=901),
    ],
)
def test_invalid_resource_budget_is_rejected(budget: ResourceBudget) -> None:
    registry = StepRegistry()
    with pytest.raises(InvalidResourceBudget):
        registry.define_step("s", "t", budget=budget)
    assert len(registry) == 0


def test_ceilings_are_configurable() -> None:
    registry = StepRegistry(max_memory_mb=2048)
    with pytest.raises(InvalidResourceBudget):
        registry.define_step("s", "t", budget=ResourceBudget(memory_mb=6144))


def test_invalid_step_fields_are_rejected() -> None:
    registry = StepRegistry()
    with pytest.raises(DefinitionError):
        registry.define_step("", "t")
    with pytest.raises(DefinitionError):
        registry.define_step("s", "  ")
    with pytest.raises(DefinitionError):
        registry.define_step("s", "t", {"KEY": 1})  # type: ignore[dict-item]
    with pytest.raises(DefinitionError):
        registry.define_step("s", "t", output_path="Payload")
    with pytest.raises(DefinitionError):
        registry.define_step("s", "t", mode="async")
    with pytest.raises(DefinitionError):
        registry.define_step("s", "t", retry=RetryPolicy(max_retries=-1))
    assert len(registry) == 0


def test_frozen_registry_rejects_new_steps() -> None:
    registry = StepRegistry(owner="wf")
    registry.freeze()
    with pytest.raises(DefinitionFrozen):
        registry.define_step("s", "t")


def test_retry_delay_grows_and_is_capped() -> None:
    policy = RetryPolicy(max_retries=5, interval_seconds=1.0, backoff_rate=2.0, max_delay_seconds=3)

    assert policy.delay_for(1) == 1.0
    assert policy.delay_for(2) == 2.0
    assert policy.delay_for(3) == 3
    assert policy.delay_for(4) == 3
