"""Build workflow definitions from declarative JSON documents.

Document shape::

    {
      "name": "StepFunctionStateMachine",
      "timeout_seconds": 1800,
      "start_at": "step1",
      "steps": [
        {"name": "step1", "target": "step1LambdaFunction",
         "environment": {"TABLE_NAME": "TableName"}, "output_path": "$.Payload"}
      ],
      "transitions": [
        {"from": "step1",
         "choices": [{"condition": {"variable": "$.state", "string_equals": "Yes"},
                      "end": "succeeded"}],
         "otherwise": {"next": "step2"}}
      ]
    }
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from . import conditions
from .definition import (
    DEFAULT_WORKFLOW_TIMEOUT_SECONDS,
    Target,
    Terminal,
    WorkflowBuilder,
    WorkflowDefinition,
)
from .errors import DefinitionError
from .paths import ROOT
from .steps import (
    DEFAULT_MEMORY_MB,
    DEFAULT_STEP_TIMEOUT_SECONDS,
    MAX_MEMORY_MB,
    MAX_STEP_TIMEOUT_SECONDS,
    InvocationMode,
    ResourceBudget,
    RetryPolicy,
)


class RetrySpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    max_retries: int = 0
    interval_seconds: float = 1.0
    backoff_rate: float = 2.0
    max_delay_seconds: float = 60.0


class StepSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    target: str
    environment: dict[str, str] = Field(default_factory=dict)
    memory_mb: int = DEFAULT_MEMORY_MB
    timeout_seconds: float = DEFAULT_STEP_TIMEOUT_SECONDS
    invocation_mode: InvocationMode = InvocationMode.REQUEST_RESPONSE
    retry: RetrySpec = Field(default_factory=RetrySpec)
    input_path: str = ROOT
    output_path: str = ROOT
    comment: str = ""


class TargetSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    next: str | None = None
    end: Literal["succeeded", "failed"] | None = None

    @model_validator(mode="after")
    def _exactly_one(self) -> TargetSpec:
        if (self.next is None) == (self.end is None):
            raise ValueError("exactly one of 'next' or 'end' is required")
        return self

    def resolve(self) -> Target:
        if self.end is not None:
            return Terminal(self.end)
        if self.next is None:
            raise DefinitionError("target needs 'next' or 'end'")
        return self.next


class ChoiceSpec(TargetSpec):
    condition: dict[str, Any]
    loop: bool = False


class TransitionSpec(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    source: str = Field(alias="from")
    next: str | None = None
    end: Literal["succeeded", "failed"] | None = None
    choices: list[ChoiceSpec] = Field(default_factory=list)
    otherwise: TargetSpec | None = None

    @model_validator(mode="after")
    def _shape(self) -> TransitionSpec:
        unconditional = self.next is not None or self.end is not None
        if unconditional and (self.choices or self.otherwise is not None):
            raise ValueError(
                f"transition from {self.source!r} mixes next/end with choices/otherwise"
            )
        if self.next is not None and self.end is not None:
            raise ValueError(f"transition from {self.source!r} has both 'next' and 'end'")
        if not unconditional and not self.choices:
            raise ValueError(f"transition from {self.source!r} needs next, end or choices")
        return self


class WorkflowSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    comment: str = ""
    timeout_seconds: float = DEFAULT_WORKFLOW_TIMEOUT_SECONDS
    start_at: str | None = None
    steps: list[StepSpec]
    transitions: list[TransitionSpec]


def build_definition(
    document: dict[str, Any],
    *,
    max_memory_mb: int = MAX_MEMORY_MB,
    max_step_timeout_seconds: float = MAX_STEP_TIMEOUT_SECONDS,
) -> WorkflowDefinition:
    try:
        spec = WorkflowSpec.model_validate(document)
    except ValidationError as e:
        raise DefinitionError(f"Invalid workflow document: {e}") from e

    builder = WorkflowBuilder(
        spec.name,
        timeout_seconds=spec.timeout_seconds,
        comment=spec.comment,
        max_memory_mb=max_memory_mb,
        max_step_timeout_seconds=max_step_timeout_seconds,
    )
    for step in spec.steps:
        builder.define_step(
            step.name,
            step.target,
            step.environment,
            ResourceBudget(memory_mb=step.memory_mb, timeout_seconds=step.timeout_seconds),
            step.invocation_mode,
            retry=RetryPolicy(**step.retry.model_dump()),
            input_path=step.input_path,
            output_path=step.output_path,
            comment=step.comment,
        )
    if spec.start_at is not None:
        builder.set_entry(spec.start_at)

    for transition in spec.transitions:
        if transition.next is not None:
            builder.add_transition(transition.source, transition.next)
            continue
        if transition.end is not None:
            builder.add_transition(transition.source, Terminal(transition.end))
            continue
        for choice in transition.choices:
            try:
                predicate = conditions.from_spec(choice.condition)
            except (ValueError, TypeError) as e:
                raise DefinitionError(
                    f"Invalid condition on transition from {transition.source!r}: {e}"
                ) from e
            builder.add_choice(transition.source, predicate, choice.resolve(), loop=choice.loop)
        if transition.otherwise is not None:
            builder.add_otherwise(transition.source, transition.otherwise.resolve())

    return builder.freeze()


def load_definition(path: Path, **limits: Any) -> WorkflowDefinition:
    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise DefinitionError(f"Workflow document {path} is not valid JSON: {e}") from e
    if not isinstance(document, dict):
        raise DefinitionError(f"Workflow document {path} must be a JSON object")
    return build_definition(document, **limits)
