#!/usr/bin/env python3
"""Programmatic workflow example.

This demonstrates using the engine directly:

* define three steps and their transitions with the builder
* run the workflow against in-process handlers
* print the execution result

With `--definition` the same workflow is loaded from a JSON document instead
(see `examples/state_functions.json`).
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any, Mapping, Sequence

from workflow_orchestrator.orchestrator.invocation.client import LocalInvoker
from workflow_orchestrator.orchestrator.logging import configure_logging
from workflow_orchestrator.orchestrator.notification.publisher import LoggingPublisher
from workflow_orchestrator.orchestrator.workflow import (
    FailureRouter,
    InvocationMode,
    ResourceBudget,
    Terminal,
    WorkflowBuilder,
    WorkflowDefinition,
    WorkflowExecutor,
    load_definition,
)
from workflow_orchestrator.orchestrator.workflow.conditions import string_equals


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the three-step example workflow.")
    parser.add_argument("--state", default="No", help='Value step 1 reports as "state"')
    parser.add_argument("--definition", type=Path, default=None, help="Optional JSON definition")
    return parser.parse_args(argv)


def build_workflow() -> WorkflowDefinition:
    builder = WorkflowBuilder("StepFunctionStateMachine", timeout_seconds=1800)
    step1 = builder.define_step(
        "step1LambdaFunction",
        "step1LambdaFunction",
        {"TABLE_NAME": "TableName"},
        output_path="$.Payload",
    )
    step2 = builder.define_step(
        "step2LambdaFunction",
        "step2LambdaFunction",
        {"OTHER_ENV_VARIABLE": "VALUE"},
        output_path="$.Payload",
    )
    step3 = builder.define_step(
        "step3LambdaFunction",
        "step3LambdaFunction",
        {"SOME_ENV_VARIABLE": "env Variable value"},
        ResourceBudget(memory_mb=6144),
        InvocationMode.EVENT,
    )
    builder.add_choice(step1, string_equals("$.state", "Yes"), Terminal.SUCCEEDED)
    builder.add_otherwise(step1, step2)
    builder.add_transition(step2, step3)
    builder.add_transition(step3, Terminal.SUCCEEDED)
    return builder.freeze()


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    configure_logging("INFO")

    def step1(payload: Any, env: Mapping[str, str]) -> Any:
        return {"Payload": {"state": args.state, "table": env["TABLE_NAME"]}}

    def step2(payload: Any, env: Mapping[str, str]) -> Any:
        return {"Payload": {**payload, "step2": env["OTHER_ENV_VARIABLE"]}}

    def step3(payload: Any, env: Mapping[str, str]) -> Any:
        print(f"step 3 received {payload}")
        return None

    invoker = LocalInvoker(
        {
            "step1LambdaFunction": step1,
            "step2LambdaFunction": step2,
            "step3LambdaFunction": step3,
        }
    )
    executor = WorkflowExecutor(invoker, failure_router=FailureRouter(LoggingPublisher()))

    definition = load_definition(args.definition) if args.definition else build_workflow()
    result = executor.run(definition, {})
    print(json.dumps(result.to_json(), indent=2, default=str))
    return 0 if result.succeeded else 1


if __name__ == "__main__":
    raise SystemExit(main())
