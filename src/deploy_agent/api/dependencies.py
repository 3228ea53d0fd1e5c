"""Shared request dependencies: component lookup and authentication."""

from __future__ import annotations

import asyncio
import base64
import binascii
import secrets
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import structlog
from fastapi import Header, HTTPException, Request
from starlette.requests import HTTPConnection

from deploy_agent.core.config import Settings
from deploy_agent.core.envfiles import EnvFileStore
from deploy_agent.core.state import StateStore
from deploy_agent.deploy.orchestrator import DeploymentOrchestrator
from deploy_agent.deploy.store import DeploymentStore
from deploy_agent.supervisor.process_supervisor import ProcessSupervisor

logger = structlog.get_logger()


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_orchestrator(request: Request) -> DeploymentOrchestrator:
    return request.app.state.orchestrator


def get_supervisor(request: Request) -> ProcessSupervisor:
    return request.app.state.supervisor


def get_store(request: Request) -> DeploymentStore:
    return request.app.state.deployment_store


def get_state_store(request: Request) -> StateStore:
    return request.app.state.state_store


def get_env_store(request: Request) -> EnvFileStore:
    return request.app.state.env_store


def _bearer_token(auth_header: Optional[str]) -> Optional[str]:
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1]
    return None


def _token_accepted(settings: Settings, token: str) -> bool:
    return any(secrets.compare_digest(token, key) for key in settings.bearer_keys_list)


def _basic_accepted(settings: Settings, auth_header: Optional[str]) -> bool:
    if not auth_header or not auth_header.startswith("Basic "):
        return False
    try:
        decoded = base64.b64decode(auth_header.split(" ", 1)[1]).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return False
    user, _, password = decoded.partition(":")
    return secrets.compare_digest(user, settings.ui_user) and secrets.compare_digest(password, settings.ui_password)


def is_authorized(settings: Settings, auth_header: Optional[str]) -> bool:
    """Accept a configured bearer token or the UI basic-auth credentials."""
    token = _bearer_token(auth_header)
    if token is not None and _token_accepted(settings, token):
        return True
    return _basic_accepted(settings, auth_header)


def require_bearer(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> None:
    """Bearer check for uploads; skipped when no keys are configured."""
    settings = get_settings(request)
    if not settings.bearer_keys_list:
        return
    token = _bearer_token(authorization)
    if token is None:
        logger.debug("Bearer auth: missing or malformed Authorization header")
        raise HTTPException(status_code=401, detail="Missing or invalid Bearer token")
    if not _token_accepted(settings, token):
        logger.debug("Bearer auth: invalid token provided")
        raise HTTPException(status_code=403, detail="Invalid Bearer token")


def require_ui_auth(connection: HTTPConnection) -> None:
    """Basic auth for the management routes, or a valid bearer token."""
    settings: Settings = connection.app.state.settings
    if is_authorized(settings, connection.headers.get("authorization")):
        return
    raise HTTPException(
        status_code=401,
        detail="Authentication required",
        headers={"WWW-Authenticate": 'Basic realm="deploy-agent"'},
    )


@asynccontextmanager
async def pipeline_slot(request: Request) -> AsyncIterator[None]:
    """Hold the single pipeline slot, rejecting concurrent operations."""
    lock: asyncio.Lock = request.app.state.pipeline_lock
    if lock.locked():
        raise HTTPException(status_code=409, detail="Another deployment operation is in progress")
    async with lock:
        yield
