"""Versioned deployment directories: create, list, rotate, resolve."""

from __future__ import annotations

import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

import structlog

from deploy_agent.core.exceptions import VersionNotFoundError
from deploy_agent.deploy.models import Deployment, deployment_name

logger = structlog.get_logger()

DEFAULT_RETAIN = 5


class DeploymentStore:
    """Manages timestamp-named deployment directories under one root."""

    def __init__(self, root: Path):
        self.root = root

    def create(self, moment: Optional[datetime] = None) -> Deployment:
        """Allocate a new, empty deployment directory."""
        self.root.mkdir(parents=True, exist_ok=True)
        base = deployment_name(moment or datetime.now(timezone.utc))
        name = base
        suffix = 0
        while True:
            path = self.root / name
            try:
                path.mkdir()
                break
            except FileExistsError:
                # Same millisecond; the suffix still sorts after the base name
                suffix += 1
                name = f"{base}-{suffix}"

        logger.info("Deployment created", deployment=name, path=str(path))
        return Deployment(name=name, path=path)

    def list(self) -> List[str]:
        """Deployment names, newest first."""
        if not self.root.is_dir():
            return []
        names = [entry.name for entry in self.root.iterdir() if entry.is_dir()]
        names.sort(reverse=True)
        return names

    def resolve(self, name: str) -> Path:
        """Path of a deployment by exact name.

        Raises:
            VersionNotFoundError: If no such directory exists under the root
        """
        if not name or name in (".", "..") or "/" in name or "\\" in name:
            raise VersionNotFoundError(f"Deployment version not found: {name}")
        path = self.root / name
        if not path.is_dir():
            raise VersionNotFoundError(f"Deployment version not found: {name}")
        return path

    def get(self, name: str) -> Deployment:
        return Deployment(name=name, path=self.resolve(name))

    def rotate(self, retain: int = DEFAULT_RETAIN, current: Optional[str] = None) -> List[str]:
        """Delete deployments beyond the `retain` most recent.

        The deployment named `current` is never deleted.

        Returns:
            Names of deleted deployments
        """
        names = self.list()
        deleted: List[str] = []
        for name in names[retain:]:
            if name == current:
                logger.info("Keeping current deployment outside retention window", deployment=name)
                continue
            shutil.rmtree(self.root / name)
            deleted.append(name)
            logger.info("Deleted old deployment", deployment=name)
        return deleted

    def discard(self, name: str) -> None:
        """Remove a deployment slot that never became current."""
        path = self.resolve(name)
        shutil.rmtree(path, ignore_errors=True)
        logger.warning("Discarded deployment", deployment=name)
