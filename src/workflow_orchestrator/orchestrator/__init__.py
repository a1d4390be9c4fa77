"""Workflow orchestrator components.

Provides:
- Settings loaded from .env
- Structured logging
- The workflow engine (definition builder, executor, failure routing)
- Invocation and notification adapters
- A small CLI surface
"""
