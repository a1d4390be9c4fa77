"""Configuration for the workflow orchestrator.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)

Nothing here is required: without an invocation base URL the CLI can only
validate and describe definitions, and without a notification URL failure
records are written to the log.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from workflow_orchestrator.orchestrator.workflow.failure_router import DEFAULT_FAILURE_TOPIC
from workflow_orchestrator.orchestrator.workflow.steps import (
    MAX_MEMORY_MB,
    MAX_STEP_TIMEOUT_SECONDS,
)


class OrchestratorSettings(BaseSettings):
    """Settings for the workflow orchestrator.

    Environment variables:
    - LOG_LEVEL                          (optional)
    - WORKFLOW_DEFINITION_PATH           (optional)
    - WORKFLOW_TIMEOUT_SECONDS           (optional, overrides the definition)
    - WORKFLOW_INVOKE_BASE_URL           (optional)
    - WORKFLOW_INVOKE_TOKEN              (optional)
    - WORKFLOW_NOTIFICATION_URL          (optional)
    - WORKFLOW_NOTIFICATION_TOPIC        (optional)
    - WORKFLOW_HISTORY_PATH              (optional)
    - WORKFLOW_LOG_EXECUTION_DATA        (optional)

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `OrchestratorSettings(_env_file=path_to_env)`.
    """

    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )

    definition_path: Path = Field(
        default=Path("workflow/definition.json"),
        validation_alias="WORKFLOW_DEFINITION_PATH",
        description="Declarative workflow definition (JSON)",
    )
    timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        validation_alias="WORKFLOW_TIMEOUT_SECONDS",
        description="Workflow-level timeout; overrides the definition's timeout when set",
    )

    invoke_base_url: str = Field(
        default="",
        validation_alias="WORKFLOW_INVOKE_BASE_URL",
        description="Base URL of the compute-invocation service",
    )
    invoke_token: str = Field(
        default="",
        validation_alias="WORKFLOW_INVOKE_TOKEN",
        description="Bearer token sent to the compute-invocation service",
    )
    http_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        validation_alias="WORKFLOW_HTTP_TIMEOUT_SECONDS",
        description="Timeout for HTTP calls to external collaborators",
    )

    notification_url: str = Field(
        default="",
        validation_alias="WORKFLOW_NOTIFICATION_URL",
        description="Webhook receiving failure notifications; empty logs them instead",
    )
    notification_topic: str = Field(
        default=DEFAULT_FAILURE_TOPIC,
        validation_alias="WORKFLOW_NOTIFICATION_TOPIC",
        description="Topic name attached to failure notifications",
    )

    history_path: Path = Field(
        default=Path("workflow_state/executions.json"),
        validation_alias="WORKFLOW_HISTORY_PATH",
        description="Where finished executions are persisted",
    )
    log_execution_data: bool = Field(
        default=True,
        validation_alias="WORKFLOW_LOG_EXECUTION_DATA",
        description="Include step payloads in logs and execution history",
    )

    max_memory_mb: int = Field(
        default=MAX_MEMORY_MB,
        gt=0,
        validation_alias="WORKFLOW_MAX_MEMORY_MB",
        description="Hard memory ceiling of the external executor",
    )
    max_step_timeout_seconds: float = Field(
        default=MAX_STEP_TIMEOUT_SECONDS,
        gt=0,
        validation_alias="WORKFLOW_MAX_STEP_TIMEOUT_SECONDS",
        description="Hard per-step time limit of the external executor",
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
    )

    @model_validator(mode="after")
    def _check_urls(self) -> OrchestratorSettings:
        for name in ("invoke_base_url", "notification_url"):
            value = getattr(self, name).strip()
            if value and not value.startswith(("http://", "https://")):
                raise ValueError(f"{name} must be an http(s) URL, got {value!r}")
        return self

    @property
    def definition_limits(self) -> dict[str, float]:
        """Executor ceilings passed to the definition loader."""

        return {
            "max_memory_mb": self.max_memory_mb,
            "max_step_timeout_seconds": self.max_step_timeout_seconds,
        }
