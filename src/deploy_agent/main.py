"""Main entry point for Deploy Agent."""

import asyncio
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI
from prometheus_client import make_asgi_app

from deploy_agent import __version__
from deploy_agent.api import (
    deployments_router,
    envs_router,
    health_router,
    logs_router,
    process_router,
)
from deploy_agent.api.middleware import (
    setup_error_handling,
    setup_logging_middleware,
    setup_metrics_middleware,
)
from deploy_agent.core.config import Settings
from deploy_agent.core.envfiles import EnvFileStore
from deploy_agent.core.state import StateStore
from deploy_agent.deploy.orchestrator import DeploymentOrchestrator
from deploy_agent.deploy.store import DeploymentStore
from deploy_agent.supervisor.log_broadcaster import LogBroadcaster
from deploy_agent.supervisor.process_supervisor import ProcessSupervisor
from deploy_agent.utils.logging import setup_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting Deploy Agent", version=__version__)

    settings: Settings = app.state.settings
    settings.ensure_directories()
    await app.state.state_store.load()

    if app.state.autostart:
        try:
            await app.state.orchestrator.autostart()
        except Exception:
            logger.exception("Auto-start failed")

    yield

    logger.info("Shutting down Deploy Agent")
    await app.state.supervisor.shutdown()


def create_app(settings: Settings | None = None, autostart: bool = True) -> FastAPI:
    """Create FastAPI application."""
    if settings is None:
        settings = Settings()

    setup_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="Deploy Agent",
        version=__version__,
        description="Single-node deployment agent",
        lifespan=lifespan,
    )

    broadcaster = LogBroadcaster()
    supervisor = ProcessSupervisor(
        broadcaster,
        graceful_timeout=settings.graceful_stop_timeout_sec,
        force_kill_timeout=settings.force_kill_timeout_sec,
        watchdog_interval=settings.watchdog_interval_sec,
        host_restart_delay=settings.host_restart_delay_sec,
    )

    def report_exit(exit_code):
        broadcaster.publish_line(f"Process exited with code {exit_code}")

    supervisor.add_exit_listener(report_exit)

    state_store = StateStore(settings.state_path, default_command=settings.default_command)
    env_store = EnvFileStore(settings.envs_dir)
    deployment_store = DeploymentStore(settings.deployments_dir)

    app.state.settings = settings
    app.state.autostart = autostart
    app.state.broadcaster = broadcaster
    app.state.supervisor = supervisor
    app.state.state_store = state_store
    app.state.env_store = env_store
    app.state.deployment_store = deployment_store
    app.state.orchestrator = DeploymentOrchestrator(settings, deployment_store, supervisor, state_store, env_store)
    app.state.pipeline_lock = asyncio.Lock()

    setup_error_handling(app)
    setup_logging_middleware(app)
    setup_metrics_middleware(app)

    app.include_router(health_router, tags=["health"])
    app.include_router(process_router, tags=["process"])
    app.include_router(deployments_router, tags=["deployments"])
    app.include_router(envs_router, tags=["envs"])
    app.include_router(logs_router, tags=["logs"])

    if settings.metrics_enabled:
        app.mount("/metrics", make_asgi_app())

    return app


def run():
    """Run the application."""
    settings = Settings()

    config = uvicorn.Config(
        "deploy_agent.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_config=None,  # We handle logging ourselves
        access_log=False,  # Handled by middleware
    )

    server = uvicorn.Server(config)
    server.run()


if __name__ == "__main__":
    run()
