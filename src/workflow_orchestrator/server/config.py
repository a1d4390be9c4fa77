"""Configuration for the REST server.

The server can start without an invocation service configured: it still serves
the workflow description and past jobs. Starting an execution then fails with
409 until WORKFLOW_INVOKE_BASE_URL is set.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from workflow_orchestrator.orchestrator.config import OrchestratorSettings


class ServerSettings(OrchestratorSettings):
    """Orchestrator settings plus REST-specific concerns."""

    jobs_state_path: Path = Field(
        default=Path("workflow_state/jobs.json"),
        validation_alias="WORKFLOW_JOBS_PATH",
        description="Where execution jobs started through the API are tracked",
    )

    cors_origins: str = Field(
        default="",
        validation_alias="WORKFLOW_CORS_ORIGINS",
        description="Comma-separated list of allowed CORS origins; empty allows none",
    )

    model_config = SettingsConfigDict(env_prefix="", env_file=".env", extra="ignore")

    def parsed_cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]
