"""Upload and rollback pipelines.

Each pipeline is a fixed sequence of fallible stages. A failing stage aborts
the rest and the error propagates; stages already completed are not undone.
A failure after the backup leaves persistent folders in the store; the next
upload or rollback restores them, since backup never replaces a stored copy
with nothing. A process that cannot be stopped aborts the pipeline before any
folder is moved.
"""

from __future__ import annotations

import asyncio
from functools import partial
from pathlib import Path
from typing import Any, Callable, List, Optional

import structlog
from prometheus_client import Counter

from deploy_agent.core.config import Settings
from deploy_agent.core.envfiles import EnvFileStore
from deploy_agent.core.exceptions import ArchiveError, ProcessStuckError, VersionNotFoundError
from deploy_agent.core.state import StateStore
from deploy_agent.deploy.archive import extract_archive
from deploy_agent.deploy.models import Deployment
from deploy_agent.deploy.paths import parse_persistent_folders
from deploy_agent.deploy.persistent import backup_folders, restore_folders
from deploy_agent.deploy.store import DeploymentStore
from deploy_agent.supervisor.models import ProcessState
from deploy_agent.supervisor.process_supervisor import ProcessSupervisor

logger = structlog.get_logger()

PIPELINE_RUNS = Counter(
    "deploy_agent_pipeline_runs_total",
    "Deployment pipeline runs",
    ["pipeline", "result"],
)


class DeploymentOrchestrator:
    """Sequences supervisor, relocator and store on upload and rollback."""

    def __init__(
        self,
        settings: Settings,
        store: DeploymentStore,
        supervisor: ProcessSupervisor,
        state_store: StateStore,
        env_store: EnvFileStore,
    ):
        self.settings = settings
        self.store = store
        self.supervisor = supervisor
        self.state_store = state_store
        self.env_store = env_store

    @property
    def state(self):
        return self.state_store.state

    @property
    def current_path(self) -> Optional[Path]:
        return Path(self.state.base_path) if self.state.base_path else None

    def persistent_specs(self) -> List[str]:
        """Configured persistent folders, UI setting first."""
        return parse_persistent_folders(self.state.persistent_folders_ui or self.settings.persistent_folders)

    async def _run_blocking(self, func: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args))

    async def start(self) -> bool:
        """Start the process in the current deployment."""
        env = self.env_store.build_environment(self.state.selected_env)
        return await self.supervisor.start(self.state.command, self.state.base_path, env)

    async def stop(self) -> bool:
        return await self.supervisor.stop()

    async def _stop_for_switch(self) -> None:
        """Stop the process before folders move; a stuck process aborts the pipeline."""
        await self.stop()
        if self.supervisor.state == ProcessState.STUCK:
            raise ProcessStuckError(
                "Process survived force-kill; agent restart pending, deployment aborted"
            )

    async def autostart(self) -> bool:
        """Start the process at boot if a current deployment exists."""
        current = self.current_path
        if current is None or not current.is_dir():
            logger.info("No current deployment to auto-start")
            return False
        logger.info("Auto-starting app", deployment=current.name)
        return await self.start()

    async def _backup_current(self, specs: List[str]) -> None:
        current = self.current_path
        if current is None:
            return
        moved = await self._run_blocking(backup_folders, current, self.settings.persistent_dir, specs)
        logger.info("Persistent folders backed up", deployment=current.name, folders=moved)

    async def _switch_to(self, deployment: Deployment, specs: List[str]) -> None:
        self.state.point_to(deployment.path)
        await self.state_store.save()
        logger.info("Current deployment set", deployment=deployment.name)

        restored = await self._run_blocking(restore_folders, deployment.path, self.settings.persistent_dir, specs)
        logger.info("Persistent folders restored", deployment=deployment.name, folders=restored)

        await self.start()

    async def deploy(self, archive_path: Path) -> Deployment:
        """Install an uploaded archive as the new current deployment."""
        try:
            specs = self.persistent_specs()
            await self._stop_for_switch()
            await self._backup_current(specs)

            deployment = self.store.create()
            log = logger.bind(deployment=deployment.name)
            try:
                entries = await self._run_blocking(extract_archive, archive_path, deployment.path)
            except ArchiveError:
                log.error("Extraction failed, discarding deployment; persistent folders remain in store")
                self.store.discard(deployment.name)
                raise
            log.info("Archive extracted", entries=entries)

            deleted = await self._run_blocking(
                self.store.rotate, self.settings.retain_deployments, deployment.name
            )
            if deleted:
                log.info("Rotated deployments", deleted=deleted)

            await self._switch_to(deployment, specs)
        except Exception:
            PIPELINE_RUNS.labels(pipeline="deploy", result="failed").inc()
            logger.exception("Deployment pipeline failed", current=self.state.current_deployment)
            raise
        finally:
            archive_path.unlink(missing_ok=True)

        PIPELINE_RUNS.labels(pipeline="deploy", result="succeeded").inc()
        log.info("Deployment complete", running=self.supervisor.is_running())
        return deployment

    async def rollback(self, version: str) -> Deployment:
        """Switch the current deployment to a retained version.

        The target is resolved before anything is stopped, so an unknown
        version leaves the running process untouched.
        """
        try:
            deployment = self.store.get(version)
        except VersionNotFoundError:
            PIPELINE_RUNS.labels(pipeline="rollback", result="not_found").inc()
            logger.warning("Rollback target not found", target=version)
            raise

        try:
            specs = self.persistent_specs()
            logger.info("Rolling back", target=version, current=self.state.current_deployment)

            await self._stop_for_switch()
            await self._backup_current(specs)
            await self._switch_to(deployment, specs)
        except Exception:
            PIPELINE_RUNS.labels(pipeline="rollback", result="failed").inc()
            logger.exception("Rollback pipeline failed", target=version, current=self.state.current_deployment)
            raise

        PIPELINE_RUNS.labels(pipeline="rollback", result="succeeded").inc()
        logger.info("Rollback complete", deployment=version, running=self.supervisor.is_running())
        return deployment
