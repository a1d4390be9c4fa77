"""Workflow executor.

Interprets a frozen `WorkflowDefinition` one step at a time:

1. invoke the current step (blocking for request-response, dispatch-and-forget
   for event mode);
2. on failure, retry with backoff until the step's retry budget is spent, then
   route to the failure router and fail;
3. on success, pick the first matching outgoing edge and move on, until a
   terminal marker is reached.

The workflow timeout and external cancellation are checked before every step
and while waiting. Invocations run on daemon threads so an invocation that never
returns can be abandoned when the workflow times out.
"""

from __future__ import annotations

import logging
import threading
import uuid
from typing import TYPE_CHECKING, Any

from .definition import Terminal, WorkflowDefinition
from .errors import (
    Cancelled,
    ExecutionError,
    InvocationError,
    StepInvocationFailure,
    Timeout,
)
from .failure_router import FailureRouter
from .paths import select
from .state_machine import (
    ExecutionHistoryStore,
    ExecutionResult,
    ExecutionState,
    ExecutionStatus,
    utc_now,
)
from .steps import Capability, InvocationMode, Step

if TYPE_CHECKING:
    from workflow_orchestrator.orchestrator.invocation.client import Invoker

logger = logging.getLogger(__name__)

FAIL_STATE_REASON = "FailState"


class CancellationToken:
    """Signal an execution to stop between steps."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to `timeout` seconds. Returns True if cancelled meanwhile."""

        return self._event.wait(timeout=max(timeout, 0.0))


class StepTimedOut(InvocationError):
    pass


class _InFlightCall:
    def __init__(self) -> None:
        self.done = threading.Event()
        self.result: Any = None
        self.error: BaseException | None = None


class WorkflowExecutor:
    """Run workflow definitions against an invocation capability.

    One executor may run many executions concurrently; each run owns its own
    `ExecutionState`.
    """

    def __init__(
        self,
        invoker: Invoker,
        *,
        failure_router: FailureRouter | None = None,
        history: ExecutionHistoryStore | None = None,
        log_execution_data: bool = True,
    ) -> None:
        self._invoker = invoker
        self._failure_router = failure_router
        self._history = history
        self._log_data = log_execution_data

    def close(self) -> None:
        """Release the HTTP sessions held by the invoker and the failure channel."""

        _close(self._invoker)
        if self._failure_router is not None:
            self._failure_router.close()

    def run(
        self,
        definition: WorkflowDefinition,
        initial_input: Any = None,
        *,
        cancel_token: CancellationToken | None = None,
        timeout_seconds: float | None = None,
        execution_id: str | None = None,
    ) -> ExecutionResult:
        token = cancel_token or CancellationToken()
        timeout = float(timeout_seconds or definition.timeout_seconds)
        state = ExecutionState(
            execution_id=execution_id or uuid.uuid4().hex,
            workflow=definition.name,
            payload=initial_input,
        )
        state.retry_counts = {name: 0 for name in definition.steps}
        state.attempts = {name: 0 for name in definition.steps}
        state.record("execution_started", timeout_seconds=timeout)
        logger.info(
            "Execution started",
            extra=self._context(state, payload=state.payload),
        )

        step_name = definition.entry
        try:
            while True:
                if token.cancelled:
                    raise Cancelled(step_name)
                if state.elapsed() >= timeout:
                    raise Timeout(timeout, step_name)

                step = definition.step(step_name)
                state.advance(ExecutionStatus.RUNNING, step=step_name)
                state.record("step_entered", step=step_name, mode=step.mode.value)
                logger.info(
                    "Step started",
                    extra=self._context(state, step=step_name, mode=step.mode.value),
                )

                if step.mode is InvocationMode.EVENT:
                    self._dispatch(step, state)
                else:
                    state.payload = self._invoke_with_retries(step, state, token, timeout)
                    state.record("step_succeeded", step=step_name)

                edge = definition.next_edge(step_name, state.payload)
                state.record(
                    "transition",
                    step=step_name,
                    kind=edge.kind.value,
                    target=edge.target.value if isinstance(edge.target, Terminal) else edge.target,
                )

                if edge.target is Terminal.SUCCEEDED:
                    state.advance(ExecutionStatus.SUCCEEDED)
                    state.record("execution_succeeded")
                    logger.info(
                        "Execution succeeded", extra=self._context(state, payload=state.payload)
                    )
                    return self._finish(state)
                if edge.target is Terminal.FAILED:
                    state.advance(ExecutionStatus.FAILED)
                    message = f"Step {step_name!r} routed to the failed terminal state"
                    state.record("execution_failed", step=step_name, reason=FAIL_STATE_REASON)
                    logger.warning(
                        "Execution failed", extra=self._context(state, reason=FAIL_STATE_REASON)
                    )
                    return self._finish(
                        state, reason=FAIL_STATE_REASON, failed_step=step_name, error=message
                    )

                step_name = str(edge.target)

        except ExecutionError as e:
            return self._fail(definition, state, step_name, e)

    # Invocation

    def _dispatch(self, step: Step, state: ExecutionState) -> None:
        """Hand an event-mode step off without waiting for its outcome."""

        self._require(step, Capability.INVOKE)
        try:
            payload = select(state.payload, step.input_path)
        except LookupError as e:
            raise StepInvocationFailure(step.name, 0, e) from e

        state.attempts[step.name] += 1
        context = self._context(state, step=step.name)

        def _fire() -> None:
            try:
                self._invoker.invoke(step.target, payload, step.environment, InvocationMode.EVENT)
            except Exception:
                logger.exception("Event dispatch failed", extra=context)

        thread = threading.Thread(
            target=_fire, name=f"dispatch-{step.name}-{state.execution_id}", daemon=True
        )
        thread.start()
        state.record("step_dispatched", step=step.name)

    def _invoke_with_retries(
        self,
        step: Step,
        state: ExecutionState,
        token: CancellationToken,
        timeout: float,
    ) -> Any:
        self._require(step, Capability.INVOKE)
        while True:
            if token.cancelled:
                raise Cancelled(step.name)
            remaining = timeout - state.elapsed()
            if remaining <= 0:
                raise Timeout(timeout, step.name)

            state.attempts[step.name] += 1
            try:
                payload = select(state.payload, step.input_path)
                result = self._call(step, payload, state, remaining, timeout)
                return select(result, step.output_path)
            except Timeout:
                raise
            except Exception as e:
                state.retry_counts[step.name] += 1
                retries = state.retry_counts[step.name]
                state.record("step_attempt_failed", step=step.name, error=str(e))
                logger.warning(
                    "Step attempt failed",
                    extra=self._context(
                        state, step=step.name, attempt=state.attempts[step.name], error=str(e)
                    ),
                )
                if retries > step.retry.max_retries:
                    raise StepInvocationFailure(step.name, state.attempts[step.name], e) from e

                delay = min(step.retry.delay_for(retries), max(timeout - state.elapsed(), 0.0))
                state.record("step_retry_scheduled", step=step.name, delay_seconds=delay)
                if token.wait(delay):
                    raise Cancelled(step.name) from e

    def _call(
        self,
        step: Step,
        payload: Any,
        state: ExecutionState,
        remaining: float,
        timeout: float,
    ) -> Any:
        call = _InFlightCall()

        def _target() -> None:
            try:
                call.result = self._invoker.invoke(
                    step.target, payload, step.environment, InvocationMode.REQUEST_RESPONSE
                )
            except BaseException as e:
                call.error = e
            finally:
                call.done.set()

        thread = threading.Thread(
            target=_target, name=f"invoke-{step.name}-{state.execution_id}", daemon=True
        )
        thread.start()

        step_limit = step.budget.timeout_seconds
        if not call.done.wait(timeout=min(step_limit, remaining)):
            if step_limit < remaining:
                raise StepTimedOut(f"Step {step.name!r} exceeded its {step_limit:g}s time limit")
            # The invocation keeps running out-of-band; its outcome is discarded.
            raise Timeout(timeout, step.name)

        if isinstance(call.error, Exception):
            raise call.error
        if call.error is not None:
            raise InvocationError(
                f"Invocation of step {step.name!r} aborted: {call.error!r}"
            ) from call.error
        return call.result

    # Completion

    def _fail(
        self,
        definition: WorkflowDefinition,
        state: ExecutionState,
        step_name: str | None,
        error: ExecutionError,
    ) -> ExecutionResult:
        failed_step = getattr(error, "step", None) or step_name
        state.advance(ExecutionStatus.FAILED)
        state.record("execution_failed", step=failed_step, reason=error.reason)
        logger.error(
            "Execution failed",
            extra=self._context(
                state, step=failed_step, reason=error.reason, error=str(error), payload=state.payload
            ),
        )

        if self._failure_router is not None and not isinstance(error, Cancelled):
            step = definition.steps.get(failed_step) if failed_step else None
            if step is None or step.can(Capability.PUBLISH_FAILURE):
                self._failure_router.route(
                    workflow=definition.name,
                    execution_id=state.execution_id,
                    step=failed_step,
                    payload=state.payload,
                    reason=error.reason,
                    error=str(error),
                )

        return self._finish(state, reason=error.reason, failed_step=failed_step, error=str(error))

    def _finish(
        self,
        state: ExecutionState,
        *,
        reason: str | None = None,
        failed_step: str | None = None,
        error: str | None = None,
    ) -> ExecutionResult:
        result = ExecutionResult(
            execution_id=state.execution_id,
            workflow=state.workflow,
            status=state.status,
            output=state.payload,
            started_at=state.started_at,
            finished_at=utc_now(),
            reason=reason,
            failed_step=failed_step,
            error=error,
            attempts=dict(state.attempts),
            events=tuple(state.events),
        )
        if self._history is not None:
            try:
                self._history.append(result)
            except OSError:
                logger.exception(
                    "Failed to persist execution history",
                    extra={"execution_id": state.execution_id, "path": str(self._history.path)},
                )
        return result

    # Helpers

    @staticmethod
    def _require(step: Step, capability: Capability) -> None:
        if not step.can(capability):
            raise StepInvocationFailure(
                step.name, 0, PermissionError(f"Step lacks the {capability.value!r} capability")
            )

    def _context(self, state: ExecutionState, **fields: object) -> dict[str, object]:
        payload_present = "payload" in fields
        payload = fields.pop("payload", None)
        out: dict[str, object] = {
            "workflow": state.workflow,
            "execution_id": state.execution_id,
            **fields,
        }
        if payload_present and self._log_data:
            out["payload"] = payload
        return out



def _close(resource: object) -> None:
    close = getattr(resource, "close", None)
    if callable(close):
        close()
