"""
System endpoints: Docker availability, event stream, execution mode
"""
import asyncio
import json

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from microdock.deps import get_workspace
from microdock.routers.projects import SSE_HEADERS
from microdock.schemas import DockerStatus, ModeChange
from microdock.state import Workspace

router = APIRouter(prefix="/api/system", tags=["System"])


@router.get("/docker", response_model=DockerStatus)
async def get_docker_status(workspace: Workspace = Depends(get_workspace)):
    """Whether the Docker CLI is installed and the daemon answers"""
    return await asyncio.to_thread(workspace.prober.docker_status)


@router.get("/events")
async def stream_events(workspace: Workspace = Depends(get_workspace)):
    """Stream status changes, notifications and URLs to open via SSE"""
    async def event_stream():
        async for event in workspace.bus.stream():
            yield f"data: {json.dumps(event.to_dict())}\n\n"

    return StreamingResponse(event_stream(), media_type="text/event-stream", headers=SSE_HEADERS)


@router.get("/mode")
async def get_mode(workspace: Workspace = Depends(get_workspace)):
    return {"mode": workspace.mode}


@router.post("/mode")
async def change_mode(
    body: ModeChange,
    workspace: Workspace = Depends(get_workspace)
):
    """Switch between docker and local execution, stopping everything first"""
    changed = await workspace.set_mode(body.mode)
    return {"mode": workspace.mode, "changed": changed}
