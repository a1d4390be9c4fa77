"""Background runner for executions started through the API."""

from __future__ import annotations

import logging
import threading
import uuid
from typing import Any

from workflow_orchestrator.orchestrator.workflow.definition import WorkflowDefinition
from workflow_orchestrator.orchestrator.workflow.executor import (
    CancellationToken,
    WorkflowExecutor,
)
from workflow_orchestrator.server.job_store import JobStore

logger = logging.getLogger(__name__)


class ExecutionRunner:
    """Start executions on daemon threads and keep their cancellation tokens."""

    def __init__(self, *, job_store: JobStore, include_data: bool = True) -> None:
        self._job_store = job_store
        self._include_data = include_data
        self._lock = threading.Lock()
        self._tokens: dict[str, CancellationToken] = {}
        self._threads: dict[str, threading.Thread] = {}

    def start(
        self,
        *,
        executor: WorkflowExecutor,
        definition: WorkflowDefinition,
        payload: Any,
        timeout_seconds: float | None,
        close_executor: bool = False,
    ) -> str:
        """Start `definition` on a daemon thread and return the job id.

        With `close_executor` the executor is closed once the job finishes.
        """
        job_id = uuid.uuid4().hex
        self._job_store.create(job_id=job_id, workflow=definition.name)
        token = CancellationToken()

        thread = threading.Thread(
            target=self._run_job,
            name=f"execution-{definition.name}-{job_id}",
            daemon=True,
            kwargs={
                "job_id": job_id,
                "executor": executor,
                "definition": definition,
                "payload": payload,
                "timeout_seconds": timeout_seconds,
                "token": token,
                "close_executor": close_executor,
            },
        )
        with self._lock:
            self._tokens[job_id] = token
            self._threads[job_id] = thread
        thread.start()
        return job_id

    def cancel(self, job_id: str) -> bool:
        """Request cancellation. Returns False if the job is not running here."""

        with self._lock:
            token = self._tokens.get(job_id)
        if token is None:
            return False
        token.cancel()
        return True

    def join(self, job_id: str, timeout: float | None = None) -> None:
        with self._lock:
            thread = self._threads.get(job_id)
        if thread is not None:
            thread.join(timeout)

    def _run_job(
        self,
        *,
        job_id: str,
        executor: WorkflowExecutor,
        definition: WorkflowDefinition,
        payload: Any,
        timeout_seconds: float | None,
        token: CancellationToken,
        close_executor: bool,
    ) -> None:
        self._job_store.update(job_id, status="running")
        try:
            result = executor.run(
                definition,
                payload,
                cancel_token=token,
                timeout_seconds=timeout_seconds,
                execution_id=job_id,
            )
            self._job_store.finish(job_id, result, include_data=self._include_data)
        except Exception as e:
            logger.exception(
                "Execution job failed", extra={"execution_id": job_id, "workflow": definition.name}
            )
            self._job_store.update(job_id, status="failed", error=str(e))
        finally:
            if close_executor:
                executor.close()
            with self._lock:
                self._tokens.pop(job_id, None)
                self._threads.pop(job_id, None)
