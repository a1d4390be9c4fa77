"""Workflow definition graph and its builder.

The builder collects steps and edges, validates the graph and freezes it into
an immutable `WorkflowDefinition`. Edges leaving a step are an ordered list:
either one unconditional transition, or one or more choices followed by
exactly one otherwise edge. That shape makes the transition function total.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any

from .conditions import Predicate, describe
from .errors import (
    CyclicGraph,
    DefinitionError,
    DefinitionFrozen,
    InvalidTransition,
    MissingOtherwise,
    NoMatchingEdge,
    UnknownStep,
    UnreachableStep,
)
from .paths import ROOT
from .steps import (
    MAX_MEMORY_MB,
    MAX_STEP_TIMEOUT_SECONDS,
    InvocationMode,
    ResourceBudget,
    RetryPolicy,
    Step,
    StepRegistry,
)

logger = logging.getLogger(__name__)

DEFAULT_WORKFLOW_TIMEOUT_SECONDS = 1800.0


class Terminal(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class EdgeKind(str, Enum):
    TRANSITION = "transition"
    CHOICE = "choice"
    OTHERWISE = "otherwise"


Target = str | Terminal


@dataclass(frozen=True, slots=True)
class Edge:
    source: str
    kind: EdgeKind
    target: Target
    predicate: Predicate | None = None
    loop: bool = False

    @property
    def is_terminal(self) -> bool:
        return isinstance(self.target, Terminal)

    def matches(self, payload: Any) -> bool:
        if self.predicate is None:
            return True
        return bool(self.predicate(payload))

    def to_json(self) -> dict[str, object]:
        target = self.target
        out: dict[str, object] = {"kind": self.kind.value}
        if isinstance(target, Terminal):
            out["end"] = target.value
        else:
            out["next"] = target
        if self.predicate is not None:
            out["condition"] = describe(self.predicate)
        if self.loop:
            out["loop"] = True
        return out


@dataclass(frozen=True, slots=True)
class WorkflowDefinition:
    name: str
    entry: str
    steps: Mapping[str, Step]
    edges: Mapping[str, tuple[Edge, ...]]
    timeout_seconds: float = DEFAULT_WORKFLOW_TIMEOUT_SECONDS
    comment: str = ""

    def step(self, name: str) -> Step:
        step = self.steps.get(name)
        if step is None:
            raise UnknownStep(name)
        return step

    def edges_from(self, name: str) -> tuple[Edge, ...]:
        return self.edges.get(name, ())

    def next_edge(self, name: str, payload: Any) -> Edge:
        """Return the first edge of `name` whose predicate matches `payload`."""

        for edge in self.edges_from(name):
            try:
                matched = edge.matches(payload)
            except Exception as e:
                raise NoMatchingEdge(
                    name, f"condition {describe(edge.predicate)!r} raised {e!r}"
                ) from e
            if matched:
                return edge
        raise NoMatchingEdge(name)

    def to_json(self) -> dict[str, object]:
        return {
            "name": self.name,
            "comment": self.comment,
            "timeout_seconds": self.timeout_seconds,
            "start_at": self.entry,
            "steps": [step.to_json() for step in self.steps.values()],
            "transitions": [
                {"from": name, "edges": [edge.to_json() for edge in edges]}
                for name, edges in self.edges.items()
            ],
        }


def _name_of(step: Step | str) -> str:
    return step.name if isinstance(step, Step) else step


class WorkflowBuilder:
    """Assemble a validated, acyclic, total transition graph.

    All operations validate before mutating, so a rejected call leaves the
    builder unchanged. After `freeze()` every mutation raises DefinitionFrozen.
    """

    def __init__(
        self,
        name: str,
        *,
        timeout_seconds: float = DEFAULT_WORKFLOW_TIMEOUT_SECONDS,
        comment: str = "",
        max_memory_mb: int = MAX_MEMORY_MB,
        max_step_timeout_seconds: float = MAX_STEP_TIMEOUT_SECONDS,
    ) -> None:
        if not name.strip():
            raise DefinitionError("Workflow name must be a non-empty string")
        if timeout_seconds <= 0:
            raise DefinitionError(f"Workflow timeout must be > 0, got {timeout_seconds:g}")
        self.name = name
        self.comment = comment
        self.timeout_seconds = float(timeout_seconds)
        self.registry = StepRegistry(
            max_memory_mb=max_memory_mb,
            max_timeout_seconds=max_step_timeout_seconds,
            owner=name,
        )
        self._edges: dict[str, list[Edge]] = {}
        self._entry: str | None = None
        self._frozen: WorkflowDefinition | None = None

    # Construction

    def define_step(
        self,
        name: str,
        target: str,
        environment: Mapping[str, str] | None = None,
        budget: ResourceBudget | None = None,
        mode: InvocationMode | str = InvocationMode.REQUEST_RESPONSE,
        *,
        retry: RetryPolicy | None = None,
        input_path: str = ROOT,
        output_path: str = ROOT,
        comment: str = "",
    ) -> Step:
        self._check_mutable()
        return self.registry.define_step(
            name,
            target,
            environment,
            budget,
            mode,
            retry=retry,
            input_path=input_path,
            output_path=output_path,
            comment=comment,
        )

    def set_entry(self, step: Step | str) -> None:
        self._check_mutable()
        self._entry = self._registered(step)

    def add_transition(self, source: Step | str, to: Step | Target) -> None:
        self._check_mutable()
        name = self._registered(source)
        target = self._target(to)
        if self._edges.get(name):
            raise InvalidTransition(f"Step {name!r} already has outgoing edges")
        self._edges[name] = [Edge(source=name, kind=EdgeKind.TRANSITION, target=target)]

    def add_choice(
        self,
        source: Step | str,
        predicate: Predicate,
        to: Step | Target,
        *,
        loop: bool = False,
    ) -> None:
        self._check_mutable()
        name = self._registered(source)
        target = self._target(to)
        if not callable(predicate):
            raise DefinitionError(f"Choice predicate for step {name!r} must be callable")
        existing = self._edges.get(name, [])
        if any(edge.kind is not EdgeKind.CHOICE for edge in existing):
            raise InvalidTransition(
                f"Step {name!r} already has an unconditional or otherwise edge; "
                "choices must be added first"
            )
        self._edges.setdefault(name, []).append(
            Edge(source=name, kind=EdgeKind.CHOICE, target=target, predicate=predicate, loop=loop)
        )

    def add_otherwise(self, source: Step | str, to: Step | Target) -> None:
        self._check_mutable()
        name = self._registered(source)
        target = self._target(to)
        existing = self._edges.get(name, [])
        if not existing:
            raise InvalidTransition(
                f"Step {name!r} has no choices; use add_transition for an unconditional edge"
            )
        if any(edge.kind is not EdgeKind.CHOICE for edge in existing):
            raise InvalidTransition(f"Step {name!r} already has an otherwise edge")
        existing.append(Edge(source=name, kind=EdgeKind.OTHERWISE, target=target))

    # Validation

    def validate(self) -> None:
        steps = self.registry.names()
        if not steps:
            raise DefinitionError(f"Workflow {self.name!r} has no steps")

        for name in steps:
            edges = self._edges.get(name, [])
            if not edges:
                raise MissingOtherwise(name, f"Step {name!r} has no outgoing transition")
            if edges[-1].kind is EdgeKind.CHOICE:
                raise MissingOtherwise(name)

        entry = self._entry or steps[0]
        reachable = self._reachable_from(entry)
        for name in steps:
            if name not in reachable:
                raise UnreachableStep(name)

        cycle = self._find_cycle(steps)
        if cycle:
            raise CyclicGraph(cycle)

    def _reachable_from(self, entry: str) -> set[str]:
        seen: set[str] = set()
        stack = [entry]
        while stack:
            name = stack.pop()
            if name in seen:
                continue
            seen.add(name)
            for edge in self._edges.get(name, []):
                if not isinstance(edge.target, Terminal):
                    stack.append(edge.target)
        return seen

    def _find_cycle(self, steps: list[str]) -> list[str] | None:
        adjacency: dict[str, list[str]] = {name: [] for name in steps}
        for name, edges in self._edges.items():
            for edge in edges:
                if edge.loop or isinstance(edge.target, Terminal):
                    continue
                adjacency[name].append(edge.target)

        visited: set[str] = set()
        rec_stack: set[str] = set()
        path: list[str] = []

        def has_cycle(node: str) -> bool:
            visited.add(node)
            rec_stack.add(node)
            path.append(node)

            for neighbor in adjacency.get(node, []):
                if neighbor not in visited:
                    if has_cycle(neighbor):
                        return True
                elif neighbor in rec_stack:
                    path.append(neighbor)
                    return True

            path.pop()
            rec_stack.remove(node)
            return False

        for name in steps:
            if name not in visited and has_cycle(name):
                start = path.index(path[-1])
                return path[start:]
        return None

    def freeze(self) -> WorkflowDefinition:
        if self._frozen is not None:
            return self._frozen

        self.validate()
        steps = {step.name: step for step in self.registry}
        definition = WorkflowDefinition(
            name=self.name,
            entry=self._entry or next(iter(steps)),
            steps=MappingProxyType(steps),
            edges=MappingProxyType(
                {name: tuple(self._edges[name]) for name in steps}
            ),
            timeout_seconds=self.timeout_seconds,
            comment=self.comment,
        )
        self.registry.freeze()
        self._frozen = definition
        logger.info(
            "Workflow definition frozen",
            extra={"workflow": self.name, "steps": len(steps), "entry": definition.entry},
        )
        return definition

    @property
    def frozen(self) -> bool:
        return self._frozen is not None

    # Helpers

    def _check_mutable(self) -> None:
        if self._frozen is not None:
            raise DefinitionFrozen(self.name)

    def _registered(self, step: Step | str) -> str:
        name = _name_of(step)
        if name not in self.registry:
            raise UnknownStep(name)
        return name

    def _target(self, to: Step | Target) -> Target:
        if isinstance(to, Terminal):
            return to
        return self._registered(to)
