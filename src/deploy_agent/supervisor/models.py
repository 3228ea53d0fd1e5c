"""Data models for the process supervisor."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional


class ProcessState(Enum):
    """State of the managed process."""
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    FORCE_KILLING = "force_killing"
    STUCK = "stuck"


@dataclass
class ManagedProcess:
    """The single child process driven by the supervisor."""

    command: str
    working_dir: str
    env: Dict[str, str] = field(default_factory=dict, repr=False)
    state: ProcessState = ProcessState.STARTING
    handle: Optional[asyncio.subprocess.Process] = field(default=None, repr=False)
    pid: Optional[int] = None
    started_at: Optional[datetime] = None
    stopped_at: Optional[datetime] = None
    last_output_at: Optional[datetime] = None
    exit_code: Optional[int] = None

    @property
    def is_running(self) -> bool:
        """Check if process is in running state."""
        return self.state == ProcessState.RUNNING

    @property
    def uptime(self) -> Optional[float]:
        """Get process uptime in seconds."""
        if self.started_at and self.is_running:
            return (datetime.now(timezone.utc) - self.started_at).total_seconds()
        return None

    def to_dict(self) -> Dict:
        return {
            "state": self.state.value,
            "pid": self.pid,
            "command": self.command,
            "workingDir": self.working_dir,
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "uptime": self.uptime,
            "exitCode": self.exit_code,
        }
