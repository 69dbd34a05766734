"""Monitoring and dashboard settings (``MONITORING_`` prefix)."""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class MonitoringSettings(BaseSettings):
    """Sampler cadence, history bounds and dashboard windows."""

    model_config = SettingsConfigDict(
        env_prefix="MONITORING_",
        case_sensitive=False,
        extra="ignore"
    )

    sampling_interval_seconds: float = Field(
        default=30.0,
        gt=0.0,
        le=3600.0,
        description="Interval of the background sampler over active operations"
    )
    history_limit: int = Field(
        default=100,
        ge=1,
        le=10000,
        description="Maximum metric samples kept per active operation (oldest evicted first)"
    )
    recent_window_hours: int = Field(
        default=24,
        ge=1,
        le=24 * 31,
        description="Trailing window for the dashboard's recent operations"
    )
    recent_limit: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Maximum recent operations listed on the dashboard"
    )
    trend_window_days: int = Field(
        default=7,
        ge=1,
        le=365,
        description="Trailing window for performance trends"
    )
    trend_bucket_hours: int = Field(
        default=24,
        ge=1,
        le=24 * 7,
        description="Bucket width of the performance trend series"
    )
    healthy_threshold: float = Field(
        default=90.0,
        ge=0.0,
        le=100.0,
        description="Healthy service percentage at or above which the fleet is Healthy"
    )
    warning_threshold: float = Field(
        default=70.0,
        ge=0.0,
        le=100.0,
        description="Healthy service percentage at or above which the fleet is Warning"
    )
    health_check_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        description="Timeout of each HealthCheck action issued for the dashboard"
    )
    recent_alert_limit: int = Field(
        default=10,
        ge=0,
        le=500,
        description="Number of recent alerts carried in the alert summary"
    )
    network_capacity_mbps: float = Field(
        default=1000.0,
        gt=0.0,
        description="Link capacity used to express network throughput as a utilisation percentage"
    )
    metrics_record_limit: int = Field(
        default=10000,
        ge=1,
        description="Finished operations kept in memory for metric summaries (oldest evicted first)"
    )
    metrics_retention_days: int = Field(
        default=7,
        ge=1,
        le=365,
        description="Age after which the sampler drops finished operations from the metric summaries"
    )

    @model_validator(mode='after')
    def validate_thresholds(self) -> 'MonitoringSettings':
        """Validate that the warning threshold does not exceed the healthy threshold."""
        if self.warning_threshold > self.healthy_threshold:
            raise ValueError(
                f"Warning threshold ({self.warning_threshold}) "
                f"must be <= healthy threshold ({self.healthy_threshold})"
            )
        return self
