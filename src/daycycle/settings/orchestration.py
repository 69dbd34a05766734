"""Orchestration behaviour settings.

Retry budgets, step timeouts and EOD cutoff waits for the SOD/EOD
orchestrators. Environment variables use the ``ORCHESTRATION_`` prefix.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class OrchestrationSettings(BaseSettings):
    """Settings consumed by the orchestrators and the execution planner."""

    model_config = SettingsConfigDict(
        env_prefix="ORCHESTRATION_",
        case_sensitive=False,
        extra="ignore"
    )

    max_step_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Retries allowed per step after the first attempt"
    )
    retry_delay_seconds: float = Field(
        default=1.0,
        ge=0.0,
        le=300.0,
        description="Delay between attempts of the same step"
    )
    step_timeout_seconds: float = Field(
        default=300.0,
        gt=0.0,
        le=7200.0,
        description="Upper bound on a single action-executor call; exceeding it fails the attempt"
    )
    skip_non_critical_failures: bool = Field(
        default=False,
        description="Mark failed steps of non-critical services Skipped instead of failing the operation"
    )
    max_critical_depth: int = Field(
        default=3,
        ge=0,
        le=50,
        description="Dependency level above which a critical service produces a validation warning"
    )
    max_phases: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Safety cap on the number of phases in an execution plan"
    )
    cutoff_wait_timeout_seconds: float = Field(
        default=1800.0,
        ge=0.0,
        description="How long EOD cutoff waits for in-flight transactions to drain"
    )
    cutoff_poll_interval_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="Polling interval while waiting for in-flight transactions"
    )
