# src/eb_deploy/config/settings.py
from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """
    Single source of truth for deployment defaults.

    Configuration precedence:
    1. Command-line options (applied on top by the CLI)
    2. Environment variables
    3. .env file (if exists)
    4. Default values in this class (lowest priority)

    Usage:
        from eb_deploy.config import get_settings
        settings = get_settings()
        timeout = settings.deployment_timeout
    """

    # AWS Core Settings
    aws_region: str = Field(
        default="us-east-1",
        alias="AWS_DEFAULT_REGION"
    )

    aws_endpoint_url: Optional[str] = Field(
        default=None,
        alias="AWS_ENDPOINT_URL",
        description="Override endpoint for local AWS emulators"
    )

    # Deployment behaviour
    deployment_timeout: int = Field(
        default=900,
        ge=60,
        le=3600,
        description="Per-phase wait budget in seconds"
    )

    max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Retries after the first attempt of each remote call"
    )

    retry_delay: int = Field(
        default=5,
        ge=1,
        le=60,
        description="Base delay in seconds for exponential backoff"
    )

    poll_interval: float = Field(
        default=5.0,
        gt=0,
        description="Seconds between environment status polls"
    )

    # Packaging
    workspace_root: str = Field(
        default=".",
        description="Root directory that deployment packages must live under"
    )

    # CI metadata
    github_sha: Optional[str] = Field(
        default=None,
        alias="GITHUB_SHA"
    )

    github_output: Optional[str] = Field(
        default=None,
        alias="GITHUB_OUTPUT",
        description="File that receives key=value deployment outputs"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Accept lower-case level names."""
        level = v.upper()
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if level not in valid_levels:
            raise ValueError(f"Invalid log_level: {v}. Must be one of {valid_levels}")
        return level

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_prefix="EB_DEPLOY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    This ensures we only create one Settings instance per process.
    """
    return Settings()
