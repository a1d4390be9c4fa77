"""Pydantic models for the REST server."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


class ExecutionRequest(BaseModel):
    input: Any = Field(default_factory=dict)
    timeout_seconds: float | None = Field(default=None, gt=0)


JobStatus = Literal["queued", "running", "succeeded", "failed", "cancelled"]


class ExecutionJob(BaseModel):
    job_id: str
    workflow: str
    status: JobStatus

    created_at: datetime
    updated_at: datetime

    output: Any = None
    reason: str | None = None
    failed_step: str | None = None
    error: str | None = None
