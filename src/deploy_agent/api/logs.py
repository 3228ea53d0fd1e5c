"""Live log streaming of the supervised process."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List

import structlog
from fastapi import APIRouter, Depends, Request, WebSocket, WebSocketDisconnect, status

from deploy_agent.api.dependencies import is_authorized, require_ui_auth

router = APIRouter()
logger = structlog.get_logger()


@router.get("/api/logs/recent", dependencies=[Depends(require_ui_auth)])
async def recent_logs(request: Request, limit: int = 200) -> Dict[str, Any]:
    chunks: List[bytes] = request.app.state.broadcaster.recent(limit)
    return {"output": b"".join(chunks).decode("utf-8", errors="replace")}


@router.websocket("/logs")
async def stream_logs(websocket: WebSocket) -> None:
    if not is_authorized(websocket.app.state.settings, websocket.headers.get("authorization")):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    subscription = websocket.app.state.broadcaster.subscribe()
    logger.info("Log stream opened")

    async def _drain_client() -> None:
        # Returns when the client disconnects
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                return

    watcher = asyncio.create_task(_drain_client())
    try:
        while not watcher.done():
            getter = asyncio.create_task(subscription.get())
            done, _ = await asyncio.wait({getter, watcher}, return_when=asyncio.FIRST_COMPLETED)
            if getter not in done:
                getter.cancel()
                break
            await websocket.send_bytes(getter.result())
    except WebSocketDisconnect:
        pass
    finally:
        watcher.cancel()
        subscription.close()
        logger.info("Log stream closed")
