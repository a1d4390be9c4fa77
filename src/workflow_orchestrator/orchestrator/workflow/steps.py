"""Step records and the step registry.

A step is a named unit of work that invokes an external compute action. Steps
are immutable once defined; provisioning the action itself is not our concern.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

from .errors import DefinitionError, DefinitionFrozen, DuplicateStepName, InvalidResourceBudget
from .paths import ROOT, parse_path

logger = logging.getLogger(__name__)

DEFAULT_MEMORY_MB = 1024
DEFAULT_STEP_TIMEOUT_SECONDS = 900.0

# Hard ceilings of the external executor.
MAX_MEMORY_MB = 10240
MAX_STEP_TIMEOUT_SECONDS = 900.0


class InvocationMode(str, Enum):
    REQUEST_RESPONSE = "request_response"
    EVENT = "event"


class Capability(str, Enum):
    INVOKE = "invoke"
    PUBLISH_FAILURE = "publish_failure"


STEP_CAPABILITIES: frozenset[Capability] = frozenset({Capability.INVOKE, Capability.PUBLISH_FAILURE})


@dataclass(frozen=True, slots=True)
class ResourceBudget:
    memory_mb: int = DEFAULT_MEMORY_MB
    timeout_seconds: float = DEFAULT_STEP_TIMEOUT_SECONDS

    def check(self, *, max_memory_mb: int, max_timeout_seconds: float) -> None:
        if self.memory_mb <= 0 or self.memory_mb > max_memory_mb:
            raise InvalidResourceBudget(
                f"memory_mb must be in (0, {max_memory_mb}], got {self.memory_mb}"
            )
        if self.timeout_seconds <= 0 or self.timeout_seconds > max_timeout_seconds:
            raise InvalidResourceBudget(
                f"timeout_seconds must be in (0, {max_timeout_seconds:g}], "
                f"got {self.timeout_seconds:g}"
            )


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """How often a failed invocation is retried and how long to wait between tries.

    The delay before retry `n` (1-based) is
    `interval_seconds * backoff_rate ** (n - 1)`, capped at `max_delay_seconds`.
    """

    max_retries: int = 0
    interval_seconds: float = 1.0
    backoff_rate: float = 2.0
    max_delay_seconds: float = 60.0

    def check(self) -> None:
        if self.max_retries < 0:
            raise DefinitionError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.interval_seconds < 0 or self.max_delay_seconds < 0:
            raise DefinitionError("Retry delays must be >= 0")
        if self.backoff_rate < 1.0:
            raise DefinitionError(f"backoff_rate must be >= 1.0, got {self.backoff_rate}")

    def delay_for(self, retry_number: int) -> float:
        delay = self.interval_seconds * self.backoff_rate ** max(retry_number - 1, 0)
        return min(delay, self.max_delay_seconds)


@dataclass(frozen=True, slots=True)
class Step:
    name: str
    target: str
    environment: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    budget: ResourceBudget = field(default_factory=ResourceBudget)
    mode: InvocationMode = InvocationMode.REQUEST_RESPONSE
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    input_path: str = ROOT
    output_path: str = ROOT
    comment: str = ""
    capabilities: frozenset[Capability] = STEP_CAPABILITIES

    def can(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def to_json(self) -> dict[str, object]:
        return {
            "name": self.name,
            "target": self.target,
            "environment": dict(self.environment),
            "memory_mb": self.budget.memory_mb,
            "timeout_seconds": self.budget.timeout_seconds,
            "invocation_mode": self.mode.value,
            "retry": {
                "max_retries": self.retry.max_retries,
                "interval_seconds": self.retry.interval_seconds,
                "backoff_rate": self.retry.backoff_rate,
                "max_delay_seconds": self.retry.max_delay_seconds,
            },
            "input_path": self.input_path,
            "output_path": self.output_path,
            "comment": self.comment,
        }


class StepRegistry:
    """Registry of the steps of one workflow, in registration order."""

    def __init__(
        self,
        *,
        max_memory_mb: int = MAX_MEMORY_MB,
        max_timeout_seconds: float = MAX_STEP_TIMEOUT_SECONDS,
        owner: str = "workflow",
    ) -> None:
        self._steps: dict[str, Step] = {}
        self._max_memory_mb = max_memory_mb
        self._max_timeout_seconds = max_timeout_seconds
        self._owner = owner
        self._frozen = False

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
        if self._frozen:
            raise DefinitionFrozen(self._owner)
        if not isinstance(name, str) or not name.strip():
            raise DefinitionError("Step name must be a non-empty string")
        if name in self._steps:
            raise DuplicateStepName(name)
        if not isinstance(target, str) or not target.strip():
            raise DefinitionError(f"Step {name!r} needs a non-empty target")

        budget = budget or ResourceBudget()
        budget.check(
            max_memory_mb=self._max_memory_mb, max_timeout_seconds=self._max_timeout_seconds
        )
        retry = retry or RetryPolicy()
        retry.check()

        env = dict(environment or {})
        for key, value in env.items():
            if not isinstance(key, str) or not isinstance(value, str):
                raise DefinitionError(f"Step {name!r} environment must map str to str")

        try:
            parse_path(input_path)
            parse_path(output_path)
        except ValueError as e:
            raise DefinitionError(f"Step {name!r}: {e}") from e

        try:
            mode = InvocationMode(mode)
        except ValueError as e:
            raise DefinitionError(f"Step {name!r}: unknown invocation mode {mode!r}") from e

        step = Step(
            name=name,
            target=target,
            environment=MappingProxyType(env),
            budget=budget,
            mode=mode,
            retry=retry,
            input_path=input_path,
            output_path=output_path,
            comment=comment,
            capabilities=STEP_CAPABILITIES,
        )
        self._steps[name] = step
        logger.debug("Step defined", extra={"workflow": self._owner, "step": name})
        return step

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, name: str) -> Step | None:
        return self._steps.get(name)

    def names(self) -> list[str]:
        return list(self._steps)

    def __contains__(self, name: object) -> bool:
        return name in self._steps

    def __iter__(self) -> Iterator[Step]:
        return iter(list(self._steps.values()))

    def __len__(self) -> int:
        return len(self._steps)
