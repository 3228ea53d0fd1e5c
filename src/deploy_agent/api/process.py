"""Process control and agent configuration endpoints."""

from __future__ import annotations

from typing import Any, Dict, Optional, Union

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from deploy_agent.api.dependencies import (
    get_orchestrator,
    get_state_store,
    get_supervisor,
    pipeline_slot,
    require_ui_auth,
)
from deploy_agent.core.envfiles import ENV_NAME_PATTERN
from deploy_agent.core.exceptions import InvalidEnvNameError
from deploy_agent.deploy.paths import parse_persistent_folders
from deploy_agent.supervisor.models import ProcessState

router = APIRouter(dependencies=[Depends(require_ui_auth)])
logger = structlog.get_logger()


class ConfigUpdate(BaseModel):
    """Partial update of the persisted agent configuration."""

    model_config = ConfigDict(populate_by_name=True)

    command: Optional[str] = None
    selected_env: Optional[str] = Field(None, alias="selectedEnv")
    persistent_folders_ui: Optional[str] = Field(None, alias="persistentFoldersUI")


@router.get("/status")
async def status(request: Request) -> Dict[str, Any]:
    supervisor = get_supervisor(request)
    state = get_state_store(request).state
    return {
        "running": supervisor.is_running(),
        "process": supervisor.status(),
        "current": state.current_deployment,
        **state.model_dump(),
    }


@router.post("/start")
async def start(request: Request) -> Dict[str, Any]:
    async with pipeline_slot(request):
        if get_supervisor(request).is_running():
            raise HTTPException(status_code=400, detail="App already running")
        started = await get_orchestrator(request).start()
    return {"message": "App started" if started else "App failed to start", "started": started}


@router.post("/stop", response_model=None)
async def stop(request: Request) -> Union[Dict[str, str], JSONResponse]:
    supervisor = get_supervisor(request)
    async with pipeline_slot(request):
        if supervisor.state == ProcessState.STUCK:
            return JSONResponse(
                status_code=409,
                content={"message": "App is stuck; agent restart scheduled", "process": supervisor.status()},
            )
        if not await get_orchestrator(request).stop():
            raise HTTPException(status_code=400, detail="App not running")
    return {"message": "App stopped"}


@router.post("/config")
async def update_config(payload: ConfigUpdate, request: Request) -> Dict[str, str]:
    fields = payload.model_fields_set
    if not fields:
        raise HTTPException(status_code=400, detail="Invalid config payload")

    # Reject bad values before anything is changed
    if "selected_env" in fields and payload.selected_env and not ENV_NAME_PATTERN.match(payload.selected_env):
        raise InvalidEnvNameError(f"Invalid env name: {payload.selected_env!r}")
    if "persistent_folders_ui" in fields:
        parse_persistent_folders(payload.persistent_folders_ui)

    state_store = get_state_store(request)
    state = state_store.state

    if "command" in fields:
        state.command = payload.command or None
    if "selected_env" in fields:
        state.selected_env = payload.selected_env or None
    if "persistent_folders_ui" in fields:
        state.persistent_folders_ui = payload.persistent_folders_ui or None
        logger.info("Updated persistent folders", persistent_folders=state.persistent_folders_ui)

    await state_store.save()
    return {"message": "Config updated"}
