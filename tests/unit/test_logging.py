from __future__ import annotations

import json
import logging

from workflow_orchestrator.orchestrator.logging import JsonFormatter


def _record(**extra: object) -> logging.LogRecord:
    record = logging.LogRecord("workflow", logging.INFO, __file__, 1, "Step %s", ("S1",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_context_keys_are_lifted_to_top_level() -> None:
    line = JsonFormatter().format(
        _record(workflow="wf", execution_id="e1", step="S1", attempt=2, payload={"a": object()})
    )
    doc = json.loads(line)

    assert doc["message"] == "Step S1"
    assert doc["level"] == "INFO"
    assert doc["workflow"] == "wf"
    assert doc["execution_id"] == "e1"
    assert doc["step"] == "S1"
    assert doc["extra"]["attempt"] == 2
    assert "payload" in doc["extra"]


def test_plain_records_have_no_extra_section() -> None:
    doc = json.loads(JsonFormatter().format(_record()))

    assert "extra" not in doc
    assert "workflow" not in doc
