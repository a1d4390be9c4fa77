"""FastAPI server adapter for workflow-orchestrator.

This module exposes a REST API over the workflow engine.

Design intent:
- Keep workflow logic in `workflow_orchestrator.orchestrator.*`
- Keep server-specific concerns (routing, CORS, job tracking) here
"""

from __future__ import annotations

__all__ = ["create_app"]

from workflow_orchestrator.server.app import create_app
