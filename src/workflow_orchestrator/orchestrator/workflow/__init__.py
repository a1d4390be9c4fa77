"""Workflow orchestration engine.

This package provides first-class types for:
- Steps (named units of work invoking an external compute action)
- Workflow definitions (a validated, frozen transition graph)
- The executor (a state machine interpreting a definition)
- Failure routing to a dead-letter notification channel

Control flow is deterministic: the next step depends only on the current step
and its output payload.
"""

from workflow_orchestrator.orchestrator.workflow.definition import (
    Edge,
    EdgeKind,
    Terminal,
    WorkflowBuilder,
    WorkflowDefinition,
)
from workflow_orchestrator.orchestrator.workflow.executor import (
    CancellationToken,
    WorkflowExecutor,
)
from workflow_orchestrator.orchestrator.workflow.failure_router import (
    FailureRecord,
    FailureRouter,
)
from workflow_orchestrator.orchestrator.workflow.loader import build_definition, load_definition
from workflow_orchestrator.orchestrator.workflow.state_machine import (
    ExecutionResult,
    ExecutionStatus,
)
from workflow_orchestrator.orchestrator.workflow.steps import (
    InvocationMode,
    ResourceBudget,
    RetryPolicy,
    Step,
    StepRegistry,
)

__all__ = [
    "CancellationToken",
    "Edge",
    "EdgeKind",
    "ExecutionResult",
    "ExecutionStatus",
    "FailureRecord",
    "FailureRouter",
    "InvocationMode",
    "ResourceBudget",
    "RetryPolicy",
    "Step",
    "StepRegistry",
    "Terminal",
    "WorkflowBuilder",
    "WorkflowDefinition",
    "WorkflowExecutor",
    "build_definition",
    "load_definition",
]
