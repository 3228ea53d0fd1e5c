"""Environment file endpoints."""

from __future__ import annotations

from typing import Dict, List

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from deploy_agent.api.dependencies import get_env_store, get_state_store, require_ui_auth

router = APIRouter(prefix="/api/envs", dependencies=[Depends(require_ui_auth)])


class EnvPayload(BaseModel):
    name: str
    content: str = ""


@router.get("")
async def list_envs(request: Request) -> List[str]:
    return get_env_store(request).list_names()


@router.get("/{name}")
async def get_env(name: str, request: Request) -> Dict[str, str]:
    return {"name": name, "content": get_env_store(request).read(name)}


@router.post("", status_code=201)
async def save_env(payload: EnvPayload, request: Request) -> Dict[str, str]:
    get_env_store(request).write(payload.name, payload.content)
    return {"message": "Env saved"}


@router.delete("/{name}")
async def delete_env(name: str, request: Request) -> Dict[str, str]:
    get_env_store(request).delete(name)

    state_store = get_state_store(request)
    if state_store.state.selected_env == name:
        state_store.state.selected_env = None
        await state_store.save()
    return {"message": "Env deleted"}
