"""Workflow Orchestrator.

Runs step workflows (sequencing, choice branching, retries, fire-and-forget
steps and dead-letter notification) against external compute actions.
"""

__version__ = "0.1.0"

from workflow_orchestrator.orchestrator.config import OrchestratorSettings

__all__ = ["__version__", "OrchestratorSettings"]
