# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

from typing import Optional, Any
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator

from resurrectci.core.enums import Environment, AppLogLevel


class Settings(BaseSettings):
    """
    Main application settings loaded from environment variables.

    All settings can be overridden by environment variables or a `.env` file.
    Names are matched case-insensitively.

    Example:
        VERCEL_TOKEN=vc_xxx
        GITHUB_TOKEN=ghp_xxx
        ENVIRONMENT=prod
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application settings
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Runtime environment (dev, staging, prod, test)"
    )

    app_name: str = Field(default="ResurrectCI", alias="APP_NAME")
    version: str = Field(default="0.1.0", description="Application version")

    log_level: AppLogLevel = Field(
        default=AppLogLevel.INFO,
        description="Logging level"
    )

    debug: bool = Field(default=False, description="Enable debug mode", alias="DEBUG")

    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=8000, alias="API_PORT")

    # Vercel settings
    vercel_token: str = Field(
        default="",
        description="Vercel API bearer token"
    )

    vercel_team_id: Optional[str] = Field(
        default=None,
        description="Vercel team id appended as teamId to every request"
    )

    vercel_api_base_url: str = Field(
        default="https://api.vercel.com",
        description="Vercel API base URL"
    )

    # GitHub settings
    github_token: str = Field(
        default="",
        description="GitHub personal access token or App installation token"
    )

    github_api_base_url: str = Field(
        default="https://api.github.com",
        description="GitHub API base URL"
    )

    github_default_owner: Optional[str] = Field(
        default=None,
        description="Repository owner used when a deployment does not name its repository"
    )

    # Kestra settings
    kestra_url: str = Field(
        default="http://localhost:8080",
        description="Kestra server URL"
    )

    kestra_api_token: Optional[str] = Field(
        default=None,
        description="Kestra API token used to read execution state"
    )

    kestra_namespace: str = Field(default="resurrectci", description="Kestra flow namespace")
    kestra_flow_id: str = Field(default="resurrect-agent", description="Kestra flow id")
    kestra_webhook_key: str = Field(default="resurrectci", description="Kestra webhook trigger key")

    # CodeRabbit settings
    coderabbit_enabled: bool = Field(
        default=False,
        description="Treat CodeRabbit as installed even without a config file in the repository"
    )

    coderabbit_review_command: str = Field(
        default="@coderabbitai review",
        description="Comment body that asks CodeRabbit for a review"
    )

    # Gemini settings
    gemini_api_key: str = Field(
        default="",
        description="Google Gemini API key"
    )

    gemini_api_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Gemini API base URL"
    )

    gemini_model: str = Field(
        default="gemini-1.5-flash",
        description="Gemini model used for error analysis"
    )

    gemini_api_timeout: int = Field(
        default=30,
        ge=1,
        le=300,
        description="Gemini request timeout in seconds"
    )

    # Timing settings
    poll_interval_seconds: float = Field(default=10.0, gt=0, description="Deployment poll interval")
    monitoring_window_seconds: float = Field(default=600.0, gt=0, description="Per-deployment monitoring window")
    discovery_interval_seconds: float = Field(default=30.0, gt=0, description="Interval between deployment discovery ticks")
    discovery_limit: int = Field(default=10, ge=1, le=100, description="Recent deployments inspected per discovery tick")

    merge_poll_interval_seconds: float = Field(default=30.0, gt=0, description="Pull request check poll interval")
    merge_deadline_seconds: float = Field(default=600.0, gt=0, description="Deadline for checks to pass before merge")

    execution_poll_interval_seconds: float = Field(default=5.0, gt=0, description="Workflow execution poll interval")
    execution_deadline_seconds: float = Field(default=600.0, gt=0, description="Deadline for a workflow execution watch")

    ai_rate_limit_calls: int = Field(default=15, ge=1, description="AI calls allowed per window")
    ai_rate_limit_window_seconds: float = Field(default=60.0, gt=0, description="AI rate limit window")
    ai_min_spacing_seconds: float = Field(default=2.0, ge=0, description="Minimum spacing between AI calls")
    ai_max_retries: int = Field(default=3, ge=0, le=10, description="Retries after the first AI call")
    ai_backoff_base_seconds: float = Field(default=1.0, ge=0, description="Base delay for rate-limit backoff")

    # Safety settings
    automation_enabled: bool = Field(
        default=True,
        description="Run the remediation pipeline automatically when an error is detected"
    )

    allow_merge_without_checks: bool = Field(
        default=False,
        description="Merge pull requests that report no checks at all"
    )

    max_remediation_depth: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Maximum redeploy generations that may be remediated again"
    )

    registry_max_deployments: int = Field(
        default=200,
        ge=1,
        description="Deployments kept in memory before terminal ones are evicted"
    )

    max_logs_per_deployment: int = Field(
        default=5000,
        ge=10,
        description="Log entries kept per deployment"
    )

    monitor_on_startup: bool = Field(
        default=False,
        description="Start deployment discovery when the API boots"
    )

    # API settings
    cors_origins: str = Field(
        default="*",
        description="Comma-separated allowed CORS origins"
    )

    # Validators
    @field_validator("environment", mode="before")
    @classmethod
    def validate_environment(cls, v: Any) -> Environment:
        """Ensure environment is valid."""
        if isinstance(v, str):
            return Environment(v.lower())
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: Any) -> AppLogLevel:
        """Ensure log level is valid."""
        if isinstance(v, str):
            return AppLogLevel(v.upper())
        return v

    # Properties
    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == Environment.DEVELOPMENT

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def kestra_configured(self) -> bool:
        return bool(self.kestra_url)

    @property
    def ai_configured(self) -> bool:
        return bool(self.gemini_api_key)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    This function is cached to ensure settings are only loaded once.

    Returns:
        Settings instance
    """
    return Settings()


# Global settings instance
settings = get_settings()
