"""
Configuration for Pendulum SDK.

Uses pydantic-settings for environment variable loading.
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings


def _default_credentials_path() -> Path:
    return Path.home() / ".pendulum" / "credentials.json"


class Settings(BaseSettings):
    """SDK configuration loaded from environment."""

    # Pendulum server
    base_url: str = Field(default="http://localhost:3000", description="Pendulum server origin")
    app_path: str = Field(default="/pendulum", description="Path prefix of the REST API")
    events_path: str = Field(default="/pendulum-events", description="Path of the SSE endpoint")

    # HTTP
    request_timeout: float = Field(default=30.0, description="REST request timeout seconds")

    # Realtime
    reconnect_base_delay: float = Field(
        default=1.0, description="Seconds per attempt in the linear reconnect backoff"
    )
    max_reconnect_attempts: int = Field(default=5, description="Reconnect attempts before giving up")

    # Echo suppression
    operation_ttl: float = Field(default=30.0, description="Seconds a pending operation stays suppressible")
    sweep_interval: float = Field(default=10.0, description="Seconds between expired operation sweeps")

    # Credential storage
    credentials_path: Path = Field(
        default_factory=_default_credentials_path,
        description="File holding the persisted auth token and admin key",
    )

    model_config = {"env_prefix": "PENDULUM_"}

    @property
    def app_url(self) -> str:
        """Full REST API root."""
        return f"{self.base_url.rstrip('/')}{self.app_path}"

    @property
    def api_url(self) -> str:
        """Root of the record CRUD endpoints."""
        return f"{self.app_url}/api"

    @property
    def events_url(self) -> str:
        """Full SSE endpoint."""
        return f"{self.base_url.rstrip('/')}{self.events_path}"
