from __future__ import annotations

import json
import threading
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any


class ExecutionStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ExecutionStatus.SUCCEEDED, ExecutionStatus.FAILED)


ALLOWED_TRANSITIONS: dict[ExecutionStatus, set[ExecutionStatus]] = {
    ExecutionStatus.PENDING: {ExecutionStatus.RUNNING, ExecutionStatus.FAILED},
    ExecutionStatus.RUNNING: {
        ExecutionStatus.RUNNING,
        ExecutionStatus.SUCCEEDED,
        ExecutionStatus.FAILED,
    },
    ExecutionStatus.SUCCEEDED: set(),
    ExecutionStatus.FAILED: set(),
}


class IllegalTransitionError(ValueError):
    pass


def transition(*, current: ExecutionStatus, to: ExecutionStatus) -> ExecutionStatus:
    allowed = ALLOWED_TRANSITIONS.get(current, set())
    if to not in allowed:
        raise IllegalTransitionError(f"Illegal transition: {current.value} -> {to.value}")
    return to


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(frozen=True, slots=True)
class ExecutionEvent:
    """One entry of an execution's history."""

    type: str
    timestamp: datetime
    step: str | None = None
    details: dict[str, object] | None = None

    def to_json(self) -> dict[str, object]:
        out: dict[str, object] = {"type": self.type, "timestamp": self.timestamp.isoformat()}
        if self.step is not None:
            out["step"] = self.step
        if self.details:
            out["details"] = self.details
        return out


@dataclass(slots=True)
class ExecutionState:
    """Runtime state of one execution.

    Owned by exactly one executor run; never shared between executions.
    """

    execution_id: str
    workflow: str
    payload: Any
    status: ExecutionStatus = ExecutionStatus.PENDING
    current_step: str | None = None
    started_at: datetime = field(default_factory=utc_now)
    started_monotonic: float = field(default_factory=time.monotonic)
    retry_counts: dict[str, int] = field(default_factory=dict)
    attempts: dict[str, int] = field(default_factory=dict)
    events: list[ExecutionEvent] = field(default_factory=list)

    def advance(self, to: ExecutionStatus, *, step: str | None = None) -> None:
        self.status = transition(current=self.status, to=to)
        if step is not None:
            self.current_step = step

    def elapsed(self) -> float:
        return time.monotonic() - self.started_monotonic

    def record(self, type_: str, *, step: str | None = None, **details: object) -> None:
        self.events.append(
            ExecutionEvent(type=type_, timestamp=utc_now(), step=step, details=details or None)
        )


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    execution_id: str
    workflow: str
    status: ExecutionStatus
    output: Any
    started_at: datetime
    finished_at: datetime
    reason: str | None = None
    failed_step: str | None = None
    error: str | None = None
    attempts: dict[str, int] = field(default_factory=dict)
    events: tuple[ExecutionEvent, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.status is ExecutionStatus.SUCCEEDED

    def to_json(self, *, include_data: bool = True) -> dict[str, object]:
        out: dict[str, object] = {
            "execution_id": self.execution_id,
            "workflow": self.workflow,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "reason": self.reason,
            "failed_step": self.failed_step,
            "error": self.error,
            "attempts": dict(self.attempts),
            "events": [event.to_json() for event in self.events],
        }
        if include_data:
            out["output"] = self.output
        return out


class ExecutionHistoryStore:
    """Persist finished executions explicitly.

    Records are appended to a JSON list so past runs stay inspectable after a
    restart. Payloads are only written when `include_execution_data` is set.
    """

    def __init__(self, path: Path, *, include_execution_data: bool = True) -> None:
        self._path = path
        self._include_data = include_execution_data
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _load_unlocked(self) -> list[dict[str, Any]]:
        if not self._path.exists():
            return []
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            return []
        if not isinstance(raw, list):
            return []
        return [item for item in raw if isinstance(item, dict)]

    def load(self) -> list[dict[str, Any]]:
        with self._lock:
            return self._load_unlocked()

    def get(self, execution_id: str) -> dict[str, Any] | None:
        for record in self.load():
            if record.get("execution_id") == execution_id:
                return record
        return None

    def append(self, result: ExecutionResult) -> None:
        with self._lock:
            records = self._load_unlocked()
            records.append(result.to_json(include_data=self._include_data))
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(
                json.dumps(records, indent=2, ensure_ascii=False, default=str) + "\n",
                encoding="utf-8",
            )
