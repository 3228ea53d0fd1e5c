"""Persisted agent state (command, current deployment, selected env)."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import aiofiles
import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from deploy_agent.core.exceptions import ConfigurationError

logger = structlog.get_logger()


class AgentState(BaseModel):
    """Agent configuration that survives restarts."""

    model_config = ConfigDict(extra="ignore")

    command: Optional[str] = Field("npm run start", description="Shell command that runs the app")
    base_path: Optional[str] = Field(None, description="Path of the current deployment")
    last_upload_date: Optional[str] = Field(None, description="ISO timestamp of the last switch")
    selected_env: Optional[str] = Field(None, description="Name of the env file merged into the process env")
    persistent_folders_ui: Optional[str] = Field(None, description="Comma-separated persistent folders")

    @property
    def current_deployment(self) -> Optional[str]:
        """Name of the current deployment, derived from base_path."""
        if not self.base_path:
            return None
        return Path(self.base_path).name

    def point_to(self, deployment_path: Path) -> None:
        """Designate a deployment as current."""
        self.base_path = str(deployment_path)
        self.last_upload_date = datetime.now(timezone.utc).isoformat()


class StateStore:
    """Loads and saves AgentState as JSON."""

    def __init__(self, path: Path, default_command: str = "npm run start"):
        self.path = path
        self.default_command = default_command
        self.state = AgentState(command=default_command)

    async def load(self) -> AgentState:
        """Load state from disk, writing defaults when the file is missing."""
        if not self.path.exists():
            logger.info("No state file, writing defaults", path=str(self.path))
            await self.save()
            return self.state

        async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
            raw = await f.read()

        try:
            data = json.loads(raw) if raw.strip() else {}
            self.state = AgentState(**{"command": self.default_command, **data})
        except (json.JSONDecodeError, TypeError, ValidationError) as e:
            raise ConfigurationError(f"Invalid state file {self.path}: {e}")

        logger.info(
            "State loaded",
            path=str(self.path),
            current=self.state.current_deployment,
            selected_env=self.state.selected_env,
        )
        return self.state

    async def save(self) -> None:
        """Write state to disk."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(self.state.model_dump(), indent=2)
        tmp_path = self.path.with_suffix(".tmp")
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(payload)
        tmp_path.replace(self.path)
        logger.debug("State saved", path=str(self.path))
