"""
Shared configuration management for the table data source service.
"""

from typing import Dict, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings.

    Every field can be overridden through a ``DATASOURCE_``-prefixed
    environment variable or a ``.env`` file, e.g. ``DATASOURCE_API_BASE_URL``.
    """

    model_config = SettingsConfigDict(
        env_prefix="DATASOURCE_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = "local"
    log_level: str = "info"

    # Remote API surface
    api_base_url: str = "http://localhost:8000/api"
    api_timeout: float = 30.0

    # Fields tried, in order, for a natural row id before a synthetic one is assigned
    id_fields: List[str] = Field(default_factory=lambda: ["id"])

    # Explicit endpoint -> "server" | "client" overrides of the URL-shape heuristic
    source_modes: Dict[str, str] = Field(default_factory=dict)

    # Demo rows API
    enable_mock_api: bool = True
    mock_api_prefix: str = "/api"
    mock_row_count: int = 100


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
