"""Workflow error taxonomy.

Definition errors are raised eagerly while a workflow is being built and are
fatal to construction. Execution errors never escape the executor: they are
recorded on the execution result as the failure reason.
"""

from __future__ import annotations


class WorkflowError(Exception):
    """Base class for all workflow errors."""


class DefinitionError(WorkflowError):
    """The workflow definition is invalid and must be fixed before running."""


class DuplicateStepName(DefinitionError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Step already registered: {name!r}")
        self.name = name


class InvalidResourceBudget(DefinitionError):
    pass


class UnknownStep(DefinitionError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown step: {name!r}")
        self.name = name


class InvalidTransition(DefinitionError):
    """An edge was added in a position that would make routing ambiguous."""


class CyclicGraph(DefinitionError):
    def __init__(self, path: list[str]) -> None:
        super().__init__(
            f"Cycle detected: {' -> '.join(path)}. Only loop choices can route backwards."
        )
        self.path = path


class UnreachableStep(DefinitionError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Step {name!r} is not reachable from the entry point")
        self.name = name


class MissingOtherwise(DefinitionError):
    def __init__(self, name: str, message: str | None = None) -> None:
        super().__init__(message or f"Step {name!r} has choices but no otherwise transition")
        self.name = name


class DefinitionFrozen(DefinitionError):
    def __init__(self, workflow: str) -> None:
        super().__init__(f"Workflow {workflow!r} is frozen and can no longer be modified")
        self.workflow = workflow


class ExecutionError(WorkflowError):
    """A fatal condition of a single execution."""

    @property
    def reason(self) -> str:
        return type(self).__name__


class StepInvocationFailure(ExecutionError):
    def __init__(self, step: str, attempts: int, cause: BaseException | None = None) -> None:
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Step {step!r} failed after {attempts} attempt(s){detail}")
        self.step = step
        self.attempts = attempts
        self.cause = cause


class NoMatchingEdge(ExecutionError):
    def __init__(self, step: str, detail: str = "") -> None:
        suffix = f": {detail}" if detail else ""
        super().__init__(f"No outgoing edge of step {step!r} matched the output{suffix}")
        self.step = step


class Timeout(ExecutionError):
    def __init__(self, timeout_seconds: float, step: str | None = None) -> None:
        where = f" while running step {step!r}" if step else ""
        super().__init__(f"Workflow timed out after {timeout_seconds:g}s{where}")
        self.timeout_seconds = timeout_seconds
        self.step = step


class Cancelled(ExecutionError):
    def __init__(self, step: str | None = None) -> None:
        where = f" before step {step!r}" if step else ""
        super().__init__(f"Execution cancelled{where}")
        self.step = step


class InvocationError(WorkflowError):
    """Raised by invocation adapters when the external action fails."""
