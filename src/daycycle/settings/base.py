from typing import Any, List

import pytz
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DaycycleBaseSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__"
    )

    app_env: str = Field(
        default="dev",
        description="Deployment environment of the orchestrator itself (e.g., dev, uat, prod)"
    )

    environments: str = Field(
        default="",
        description=(
            "Comma-separated list of banking environments operations may target "
            "(e.g., 'PROD,UAT,DEV'). Empty means any environment is accepted."
        )
    )

    time_zone: str = Field(
        default="UTC",
        description="Time zone used for business dates and EOD cutoff times, e.g. 'Europe/London'"
    )

    log_level: str = Field(
        default="INFO",
        description="Root log level passed to setup_logging()"
    )

    @field_validator("environments")
    @classmethod
    def validate_environments(cls, v: str) -> str:
        """Normalise the environment list to upper-case, comma-separated names."""
        if not v:
            return v

        names = [e.strip() for e in v.split(",") if e.strip()]
        for name in names:
            if not name.replace("_", "").replace("-", "").isalnum():
                raise ValueError(
                    f"Invalid environment name '{name}'. "
                    f"Environment names must be alphanumeric with optional underscores or hyphens."
                )
        return ",".join(n.upper() for n in names)

    @field_validator("time_zone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Validate that the timezone is valid."""
        try:
            pytz.timezone(v)
            return v
        except pytz.exceptions.UnknownTimeZoneError:
            raise ValueError(f"Unknown timezone: {v}. Use pytz timezone names like 'Europe/London'")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {v}")
        return level

    def get_environment_list(self) -> List[str]:
        """Get the configured environments, or an empty list when unrestricted."""
        if not self.environments:
            return []
        return self.environments.split(",")

    def is_environment_known(self, environment: str) -> bool:
        """True when the environment may be targeted by an operation."""
        allowed = self.get_environment_list()
        return not allowed or environment.upper() in allowed

    @property
    def timezone_info(self) -> Any:
        """Get the pytz timezone object for the configured time zone."""
        return pytz.timezone(self.time_zone)
