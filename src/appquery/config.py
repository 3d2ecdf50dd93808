"""Configuration and environment for the query engine."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment and .env."""

    model_config = SettingsConfigDict(
        env_prefix="APPQUERY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Hub cluster
    kubeconfig: Path | None = Field(
        default=None,
        description="Path to kubeconfig; uses KUBECONFIG env or default location if unset",
    )
    context: str | None = Field(default=None, description="Kubernetes context of the hub cluster")
    namespace: str = Field(default="default", description="Default namespace of applications")

    # Member clusters
    cluster_contexts: dict[str, str] = Field(
        default_factory=dict,
        description="Member cluster name -> kubeconfig context reaching it directly",
    )
    cluster_gateway: bool = Field(
        default=True,
        description="Route member clusters without a context through the hub cluster-gateway proxy",
    )

    request_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        description="Timeout applied to every call against a cluster",
    )


def get_settings() -> Settings:
    """Return validated settings instance."""
    return Settings()
