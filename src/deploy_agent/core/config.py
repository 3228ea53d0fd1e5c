"""Configuration management for Deploy Agent."""

from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Agent configuration settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server configuration
    host: str = Field("0.0.0.0", description="Server host")
    port: int = Field(3888, description="Server port")

    # Storage
    data_dir: str = Field("./data", description="Root directory for agent data")

    # Deployments
    retain_deployments: int = Field(5, ge=1, description="Number of deployments kept by rotation")
    default_command: str = Field("npm run start", description="Command used when none is configured")
    persistent_folders: Optional[str] = Field(
        None,
        description="Comma-separated persistent folders, overridden by the UI setting",
    )
    max_upload_size_mb: int = Field(500, description="Maximum accepted archive size in MB")

    # Process supervision
    graceful_stop_timeout_sec: float = Field(10.0, description="Wait after SIGTERM before force-kill")
    force_kill_timeout_sec: float = Field(5.0, description="Wait after SIGKILL before declaring the process stuck")
    watchdog_interval_sec: float = Field(10.0, description="Warn when the process is silent this long after start")
    host_restart_delay_sec: float = Field(2.0, description="Delay before the agent restarts itself")

    # Security
    bearer_keys: Optional[str] = Field(None, description="Comma-separated bearer tokens accepted by /upload")
    ui_user: str = Field("admin", description="Basic auth user")
    ui_password: str = Field("password", description="Basic auth password")

    # Observability
    log_level: str = Field("INFO")
    log_format: str = Field("json")
    metrics_enabled: bool = Field(True)

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper()

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir)

    @property
    def deployments_dir(self) -> Path:
        return self.data_path / "deployments"

    @property
    def persistent_dir(self) -> Path:
        return self.data_path / "persistent"

    @property
    def envs_dir(self) -> Path:
        return self.data_path / "env-configs"

    @property
    def uploads_dir(self) -> Path:
        return self.data_path / "uploads"

    @property
    def state_path(self) -> Path:
        return self.data_path / "config.json"

    @property
    def bearer_keys_list(self) -> List[str]:
        """Get bearer keys as a list."""
        if not self.bearer_keys:
            return []
        return [key.strip() for key in self.bearer_keys.split(",") if key.strip()]

    def ensure_directories(self) -> None:
        """Create the data directories the agent writes into."""
        for directory in (self.deployments_dir, self.persistent_dir, self.envs_dir, self.uploads_dir):
            directory.mkdir(parents=True, exist_ok=True)
