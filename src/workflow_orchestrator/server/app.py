"""FastAPI app factory.

Endpoints are intentionally thin wrappers over the workflow engine.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import cast

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from workflow_orchestrator import __version__
from workflow_orchestrator.orchestrator.factory import ExecutorFactory
from workflow_orchestrator.orchestrator.workflow.definition import WorkflowDefinition
from workflow_orchestrator.orchestrator.workflow.errors import DefinitionError
from workflow_orchestrator.orchestrator.workflow.executor import WorkflowExecutor
from workflow_orchestrator.orchestrator.workflow.loader import load_definition
from workflow_orchestrator.server.config import ServerSettings
from workflow_orchestrator.server.execution_runner import ExecutionRunner
from workflow_orchestrator.server.job_store import JobRecord, JobStore
from workflow_orchestrator.server.models import ExecutionJob, ExecutionRequest, JobStatus

logger = logging.getLogger(__name__)


def _iso_to_dt(value: str) -> datetime:
    # Best-effort parsing; the store always writes ISO format.
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return datetime.now(tz=UTC)


def _to_api_job(record: JobRecord) -> ExecutionJob:
    return ExecutionJob(
        job_id=record.job_id,
        workflow=record.workflow,
        status=cast(JobStatus, record.status),
        created_at=_iso_to_dt(record.created_at),
        updated_at=_iso_to_dt(record.updated_at),
        output=record.output,
        reason=record.reason,
        failed_step=record.failed_step,
        error=record.error,
    )


def _load_configured_definition(settings: ServerSettings) -> WorkflowDefinition | None:
    try:
        return load_definition(settings.definition_path, **settings.definition_limits)
    except FileNotFoundError:
        logger.warning(
            "Workflow definition not found", extra={"path": str(settings.definition_path)}
        )
    except DefinitionError:
        logger.exception(
            "Workflow definition is invalid", extra={"path": str(settings.definition_path)}
        )
    return None


def create_app(
    settings: ServerSettings | None = None,
    *,
    definition: WorkflowDefinition | None = None,
    executor: WorkflowExecutor | None = None,
) -> FastAPI:
    settings = settings or ServerSettings()
    definition = definition or _load_configured_definition(settings)

    app = FastAPI(
        title="Workflow Orchestrator",
        version=__version__,
        description="REST API for starting and inspecting workflow executions.",
        openapi_url="/api/openapi.json",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.parsed_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    job_store = JobStore(settings.jobs_state_path)
    runner = ExecutionRunner(job_store=job_store, include_data=settings.log_execution_data)

    app.state.settings = settings
    app.state.definition = definition
    app.state.runner = runner

    def _require_definition() -> WorkflowDefinition:
        if definition is None:
            raise HTTPException(status_code=409, detail="No valid workflow definition loaded")
        return definition

    def _executor() -> tuple[WorkflowExecutor, bool]:
        """Return the executor for a new job and whether the job owns it."""
        if executor is not None:
            return executor, False
        try:
            return ExecutorFactory.create(settings), True
        except ValueError as e:
            raise HTTPException(status_code=409, detail=str(e)) from e

    @app.get("/api/v1/health")
    def health() -> dict[str, object]:
        return {
            "status": "ok",
            "version": __version__,
            "workflow": definition.name if definition is not None else None,
        }

    @app.get("/api/v1/workflow")
    def describe_workflow() -> dict[str, object]:
        return _require_definition().to_json()

    @app.post("/api/v1/executions", response_model=ExecutionJob, status_code=202)
    def start_execution(req: ExecutionRequest) -> ExecutionJob:
        workflow = _require_definition()
        job_executor, owned = _executor()
        job_id = runner.start(
            executor=job_executor,
            definition=workflow,
            payload=req.input,
            timeout_seconds=req.timeout_seconds or settings.timeout_seconds,
            close_executor=owned,
        )
        record = job_store.get(job_id)
        if record is None:
            raise HTTPException(status_code=500, detail="Job creation failed")
        return _to_api_job(record)

    @app.get("/api/v1/executions", response_model=list[ExecutionJob])
    def list_executions() -> list[ExecutionJob]:
        return [_to_api_job(record) for record in job_store.list()]

    @app.get("/api/v1/executions/{job_id}", response_model=ExecutionJob)
    def get_execution(job_id: str) -> ExecutionJob:
        record = job_store.get(job_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Execution not found")
        return _to_api_job(record)

    @app.post("/api/v1/executions/{job_id}/cancel", response_model=ExecutionJob)
    def cancel_execution(job_id: str) -> ExecutionJob:
        """Request cancellation and return the job as it stands afterwards.

        Cancellation takes effect at the next step boundary, so a job whose
        current step is still running reports `running` until that step returns
        and then moves to `cancelled`.
        """
        if job_store.get(job_id) is None:
            raise HTTPException(status_code=404, detail="Execution not found")
        if not runner.cancel(job_id):
            raise HTTPException(status_code=409, detail="Execution is not running")
        record = job_store.get(job_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Execution not found")
        return _to_api_job(record)

    return app
