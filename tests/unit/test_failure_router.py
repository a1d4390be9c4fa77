"""Unit tests for dead-letter routing."""

from __future__ import annotations

import json
import logging
from unittest.mock import Mock

import pytest

from workflow_orchestrator.orchestrator.notification.publisher import MemoryPublisher, Publisher
from workflow_orchestrator.orchestrator.workflow.failure_router import (
    DEFAULT_FAILURE_TOPIC,
    FailureRecord,
    FailureRouter,
)


def _route(router: FailureRouter) -> bool:
    return router.route(
        workflow="wf",
        execution_id="e1",
        step="S2",
        payload={"order": 1},
        reason="StepInvocationFailure",
        error="boom",
    )


def test_route_publishes_failure_record() -> None:
    publisher = MemoryPublisher()
    router = FailureRouter(publisher)

    assert _route(router) is True

    [message] = publisher.messages
    assert message.topic == DEFAULT_FAILURE_TOPIC == "email-notification-topic"
    record = FailureRecord.model_validate(json.loads(message.message))
    assert record.step == "S2"
    assert record.payload == {"order": 1}
    assert record.reason == "StepInvocationFailure"
    assert record.timestamp


def test_publish_errors_are_logged_not_raised(caplog: pytest.LogCaptureFixture) -> None:
    publisher = Mock(spec=Publisher)
    publisher.publish.side_effect = RuntimeError("channel down")
    router = FailureRouter(publisher, topic="alerts")

    with caplog.at_level(logging.ERROR):
        assert _route(router) is False

    publisher.publish.assert_called_once()
    assert publisher.publish.call_args.args[0] == "alerts"
    assert "Failed to publish failure notification" in caplog.text
