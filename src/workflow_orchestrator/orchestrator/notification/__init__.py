"""Adapters for the external notification-publish capability."""

from workflow_orchestrator.orchestrator.notification.publisher import (
    LoggingPublisher,
    MemoryPublisher,
    PublishedMessage,
    Publisher,
    WebhookPublisher,
)

__all__ = [
    "LoggingPublisher",
    "MemoryPublisher",
    "PublishedMessage",
    "Publisher",
    "WebhookPublisher",
]
