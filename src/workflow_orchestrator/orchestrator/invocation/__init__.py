"""Adapters for the external compute-invocation capability."""

from workflow_orchestrator.orchestrator.invocation.client import (
    HttpInvoker,
    Invoker,
    LocalInvoker,
    StepHandler,
)

__all__ = ["HttpInvoker", "Invoker", "LocalInvoker", "StepHandler"]
