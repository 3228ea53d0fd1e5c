"""Upload, listing and rollback endpoints."""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import Any, Dict, List

import aiofiles
import structlog
from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile

from deploy_agent.api.dependencies import (
    get_orchestrator,
    get_settings,
    get_state_store,
    get_store,
    pipeline_slot,
    require_bearer,
    require_ui_auth,
)
from deploy_agent.utils.logging import bind_pipeline_context, clear_pipeline_context

router = APIRouter()
logger = structlog.get_logger()

UPLOAD_CHUNK_SIZE = 64 * 1024


async def _save_upload(upload: UploadFile, dest_path: Path, max_size_bytes: int) -> int:
    """Stream an upload to disk with max-size enforcement."""
    dest_path.parent.mkdir(parents=True, exist_ok=True)
    bytes_written = 0
    async with aiofiles.open(dest_path, "wb") as f:
        while True:
            chunk = await upload.read(UPLOAD_CHUNK_SIZE)
            if not chunk:
                break
            bytes_written += len(chunk)
            if bytes_written > max_size_bytes:
                break
            await f.write(chunk)

    if bytes_written > max_size_bytes:
        dest_path.unlink(missing_ok=True)
        raise HTTPException(status_code=413, detail="Uploaded file exceeds maximum allowed size")
    return bytes_written


@router.post("/upload", dependencies=[Depends(require_bearer)])
async def upload(request: Request, file: UploadFile = File(...)) -> Dict[str, Any]:
    settings = get_settings(request)
    async with pipeline_slot(request):
        archive_path = settings.uploads_dir / f"{uuid.uuid4().hex}.zip"
        size = await _save_upload(file, archive_path, settings.max_upload_size_mb * 1024 * 1024)
        logger.info("Upload received", filename=file.filename, size=size)

        bind_pipeline_context("deploy")
        try:
            deployment = await get_orchestrator(request).deploy(archive_path)
        finally:
            clear_pipeline_context()

    return {"message": "Upload successful, app started.", "deployment": deployment.name}


@router.get("/api/deployments", dependencies=[Depends(require_ui_auth)])
async def list_deployments(request: Request) -> List[str]:
    return get_store(request).list()


@router.get("/api/deployment/current", dependencies=[Depends(require_ui_auth)])
async def current_deployment(request: Request) -> Dict[str, Any]:
    return {"current": get_state_store(request).state.current_deployment}


@router.post("/api/deployments/rollback/{version}", dependencies=[Depends(require_ui_auth)])
async def rollback(version: str, request: Request) -> Dict[str, str]:
    async with pipeline_slot(request):
        bind_pipeline_context("rollback", version)
        try:
            deployment = await get_orchestrator(request).rollback(version)
        finally:
            clear_pipeline_context()
    return {"message": f"Rolled back to deployment: {deployment.name}"}
