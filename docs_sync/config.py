"""Centralized configuration using Pydantic BaseSettings"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    """Application configuration with environment variable support"""

    # Sources
    # Note: upstream repositories and destinations are configured in sources.yaml
    sources_config_path: str = Field(
        default="sources.yaml", description="Path to the sources configuration file"
    )

    # Site repository (the git working tree the publisher writes into)
    repo_root: str = Field(default=".", description="Root of the documentation site repository")
    git_user_name: str = Field(default="pact-docs-sync", description="Commit author name")
    git_user_email: str = Field(
        default="pact-docs-sync@users.noreply.github.com", description="Commit author email"
    )
    git_remote: str = Field(default="origin", description="Remote to push to")
    git_branch: str = Field(default="master", description="Default branch of the site repository")
    dry_run: bool = Field(default=False, description="Log intended changes without writing")

    # Deployment
    deploy_hook_url: str | None = Field(
        default=None, description="Build hook to POST after a successful push (optional)"
    )

    # Webhook server
    server_host: str = Field(default="0.0.0.0", description="Webhook server bind address")
    server_port: int = Field(default=8080, ge=1024, le=65535, description="Webhook server port")

    # Logging
    log_level: str = Field(default="INFO", description="Root log level")

    # OpenTelemetry
    otel_logging_enabled: bool = Field(default=False, description="Enable OpenTelemetry logging")
    otel_tracing_enabled: bool = Field(
        default=False, description="Enable OpenTelemetry tracing for HTTP requests"
    )
    otel_endpoint: str = Field(
        default="http://localhost:4318",
        description="OpenTelemetry collector endpoint (HTTP/protobuf)",
    )
    otel_service_name: str = Field(
        default="pact-docs-sync", description="Service name for OpenTelemetry"
    )
    otel_service_version: str = Field(
        default="1.0.0", description="Service version for OpenTelemetry"
    )

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )


# Global config instance
config = AppConfig()
