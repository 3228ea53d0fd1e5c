"""API module for Deploy Agent."""

from .health import router as health_router
from .process import router as process_router
from .deployments import router as deployments_router
from .envs import router as envs_router
from .logs import router as logs_router

__all__ = [
    "health_router",
    "process_router",
    "deployments_router",
    "envs_router",
    "logs_router",
]
