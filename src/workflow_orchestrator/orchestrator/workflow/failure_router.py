"""Dead-letter routing for failed executions.

Publishing is best-effort: an unreachable channel is logged and swallowed so
it can never mask the execution's own failed state.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel

from workflow_orchestrator.orchestrator.notification.publisher import Publisher

from .state_machine import utc_now

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_TOPIC = "email-notification-topic"


class FailureRecord(BaseModel):
    workflow: str
    execution_id: str
    step: str | None
    payload: Any = None
    reason: str
    error: str
    timestamp: str


class FailureRouter:
    def __init__(self, publisher: Publisher, *, topic: str = DEFAULT_FAILURE_TOPIC) -> None:
        self._publisher = publisher
        self.topic = topic

    def close(self) -> None:
        close = getattr(self._publisher, "close", None)
        if callable(close):
            close()

    def route(
        self,
        *,
        workflow: str,
        execution_id: str,
        step: str | None,
        payload: Any,
        reason: str,
        error: str,
    ) -> bool:
        """Publish a failure record. Returns False if publishing failed."""

        record = FailureRecord(
            workflow=workflow,
            execution_id=execution_id,
            step=step,
            payload=payload,
            reason=reason,
            error=error,
            timestamp=utc_now().isoformat(),
        )
        try:
            self._publisher.publish(self.topic, record.model_dump_json())
        except Exception:
            logger.exception(
                "Failed to publish failure notification",
                extra={
                    "workflow": workflow,
                    "execution_id": execution_id,
                    "step": step,
                    "reason": reason,
                    "topic": self.topic,
                },
            )
            return False

        logger.info(
            "Failure notification published",
            extra={"workflow": workflow, "execution_id": execution_id, "topic": self.topic},
        )
        return True
