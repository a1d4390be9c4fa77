"""Factory for wiring the executor's external collaborators from settings."""

import logging

from workflow_orchestrator.orchestrator.config import OrchestratorSettings
from workflow_orchestrator.orchestrator.invocation.client import HttpInvoker, Invoker
from workflow_orchestrator.orchestrator.notification.publisher import (
    LoggingPublisher,
    Publisher,
    WebhookPublisher,
)
from workflow_orchestrator.orchestrator.workflow.executor import WorkflowExecutor
from workflow_orchestrator.orchestrator.workflow.failure_router import FailureRouter
from workflow_orchestrator.orchestrator.workflow.state_machine import ExecutionHistoryStore

logger = logging.getLogger(__name__)


class ExecutorFactory:
    """Factory for creating configured executors."""

    @staticmethod
    def create_invoker(settings: OrchestratorSettings) -> Invoker:
        """Create the invocation adapter.

        Raises:
            ValueError: If no invocation base URL is configured.
        """
        if not settings.invoke_base_url.strip():
            raise ValueError("WORKFLOW_INVOKE_BASE_URL is required to run workflows")
        return HttpInvoker(
            base_url=settings.invoke_base_url,
            token=settings.invoke_token,
            timeout_seconds=settings.http_timeout_seconds,
        )

    @staticmethod
    def create_publisher(settings: OrchestratorSettings) -> Publisher:
        if settings.notification_url.strip():
            logger.info("Failure notifications go to webhook")
            return WebhookPublisher(
                url=settings.notification_url, timeout_seconds=settings.http_timeout_seconds
            )
        logger.info("No WORKFLOW_NOTIFICATION_URL set; failure notifications are logged")
        return LoggingPublisher()

    @staticmethod
    def create(
        settings: OrchestratorSettings,
        *,
        invoker: Invoker | None = None,
        publisher: Publisher | None = None,
    ) -> WorkflowExecutor:
        """Create an executor with history, failure routing and invocation wired in.

        Args:
            settings: Orchestrator settings.
            invoker: Overrides the HTTP invoker built from settings.
            publisher: Overrides the publisher built from settings.
        """
        return WorkflowExecutor(
            invoker or ExecutorFactory.create_invoker(settings),
            failure_router=FailureRouter(
                publisher or ExecutorFactory.create_publisher(settings),
                topic=settings.notification_topic,
            ),
            history=ExecutionHistoryStore(
                settings.history_path, include_execution_data=settings.log_execution_data
            ),
            log_execution_data=settings.log_execution_data,
        )
