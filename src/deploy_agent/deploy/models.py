"""Models for versioned deployments."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

# 2025-06-17T13-53-57-029Z
NAME_FORMAT = "%Y-%m-%dT%H-%M-%S"


def deployment_name(moment: Optional[datetime] = None) -> str:
    """Build a sortable deployment name from a UTC timestamp."""
    moment = (moment or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return f"{moment.strftime(NAME_FORMAT)}-{moment.microsecond // 1000:03d}Z"


@dataclass(frozen=True)
class Deployment:
    """One extracted, versioned copy of an uploaded bundle."""

    name: str
    path: Path
