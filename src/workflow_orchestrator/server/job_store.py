"""Persisted tracking of executions started through the API.

Jobs live in one JSON object keyed by job id, next to the execution history,
so the API can still report on them after a restart. Executions run in-process:
a job left `queued` or `running` by a previous process is stale.
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from workflow_orchestrator.orchestrator.workflow.errors import Cancelled
from workflow_orchestrator.orchestrator.workflow.state_machine import (
    ExecutionResult,
    IllegalTransitionError,
    utc_now,
)

JOB_TRANSITIONS: dict[str, set[str]] = {
    "queued": {"running", "failed", "cancelled"},
    "running": {"succeeded", "failed", "cancelled"},
    "succeeded": set(),
    "failed": set(),
    "cancelled": set(),
}


class JobRecord(BaseModel):
    job_id: str
    workflow: str
    status: str = "queued"
    created_at: str
    updated_at: str

    output: Any = None
    reason: str | None = None
    failed_step: str | None = None
    error: str | None = None


def job_status_for(result: ExecutionResult) -> str:
    if result.succeeded:
        return "succeeded"
    if result.reason == Cancelled.__name__:
        return "cancelled"
    return "failed"


class JobStore:
    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.Lock()

    def _read(self) -> dict[str, JobRecord]:
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (FileNotFoundError, json.JSONDecodeError):
            return {}
        jobs = raw.get("jobs") if isinstance(raw, dict) else None
        if not isinstance(jobs, dict):
            return {}
        return {job_id: JobRecord.model_validate(item) for job_id, item in jobs.items()}

    def _write(self, jobs: dict[str, JobRecord]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        document = {"jobs": {job_id: job.model_dump(mode="json") for job_id, job in jobs.items()}}
        self.path.write_text(
            json.dumps(document, indent=2, ensure_ascii=False, default=str) + "\n",
            encoding="utf-8",
        )

    def list(self) -> list[JobRecord]:
        """All jobs, oldest first."""

        with self._lock:
            return sorted(self._read().values(), key=lambda job: job.created_at)

    def get(self, job_id: str) -> JobRecord | None:
        with self._lock:
            return self._read().get(job_id)

    def create(self, *, job_id: str, workflow: str) -> JobRecord:
        now = utc_now().isoformat()
        record = JobRecord(job_id=job_id, workflow=workflow, created_at=now, updated_at=now)
        with self._lock:
            jobs = self._read()
            if job_id in jobs:
                raise ValueError(f"Job already exists: {job_id}")
            jobs[job_id] = record
            self._write(jobs)
        return record

    def update(self, job_id: str, *, status: str, **fields: object) -> JobRecord:
        """Move a job to `status`, recording any outcome fields.

        Raises:
            KeyError: If the job does not exist.
            IllegalTransitionError: If the job cannot move to `status`.
        """
        with self._lock:
            jobs = self._read()
            current = jobs[job_id]
            if status not in JOB_TRANSITIONS.get(current.status, set()):
                raise IllegalTransitionError(
                    f"Illegal job transition: {current.status} -> {status}"
                )
            jobs[job_id] = current.model_copy(
                update={"status": status, "updated_at": utc_now().isoformat(), **fields}
            )
            self._write(jobs)
            return jobs[job_id]

    def finish(
        self, job_id: str, result: ExecutionResult, *, include_data: bool = True
    ) -> JobRecord:
        """Record the outcome of a finished execution on its job."""

        return self.update(
            job_id,
            status=job_status_for(result),
            output=result.output if include_data else None,
            reason=result.reason,
            failed_step=result.failed_step,
            error=result.error,
        )
