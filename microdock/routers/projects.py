"""
Project and microservice endpoints
"""
import asyncio
import json

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse

from microdock.deps import get_workspace, get_project, get_microservice
from microdock.schemas import (
    Project, Microservice, ProjectCreate, MicroserviceCreate, ServiceAction, ProjectAction,
    OperationOutcome, OperationResult, BulkResult, StatusSnapshot,
)
from microdock.services.scaffold import create_project, create_microservice
from microdock.state import Workspace

router = APIRouter(prefix="/api/projects", tags=["Projects"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no"  # Disable nginx buffering
}


@router.get("", response_model=StatusSnapshot)
async def list_projects(workspace: Workspace = Depends(get_workspace)):
    """Projects with their microservices, statuses and tree descriptors"""
    return await workspace.snapshot()


@router.post("", response_model=Project, status_code=status.HTTP_201_CREATED)
async def new_project(
    body: ProjectCreate,
    workspace: Workspace = Depends(get_workspace)
):
    """Create a project directory under the workspace root"""
    project = create_project(workspace.root, body.name)
    workspace.bus.info(f"Project {project.name} created successfully")
    return project


@router.delete("/{project}")
async def remove_project(
    project: Project = Depends(get_project),
    workspace: Workspace = Depends(get_workspace)
):
    """Stop and remove every container of a project"""
    removed = await workspace.remove_project(project)
    return {"message": f"Removed {removed} container(s) of {project.name}", "removed": removed}


@router.post("/{project}/microservices", status_code=status.HTTP_201_CREATED)
async def new_microservice(
    body: MicroserviceCreate,
    project: Project = Depends(get_project),
    workspace: Workspace = Depends(get_workspace)
):
    """Scaffold a microservice and register it in the project's compose file"""
    path, port = create_microservice(project, body.name)
    workspace.bus.info(f"Microservice {path.name} created successfully")
    return {"name": path.name, "path": str(path), "port": port}


async def _local_action(workspace: Workspace, microservice: Microservice, action: str) -> OperationResult:
    local = workspace.local
    orchestrator = workspace.orchestrator
    with orchestrator.exclusive(f"{action} {microservice.name} (local)") as tracker:
        if action == "stop":
            outcome = await local.stop(microservice)
        elif action == "restart":
            await local.stop(microservice, notify=False)
            outcome = await local.start(microservice)
            if outcome == OperationOutcome.STARTED:
                outcome = OperationOutcome.RESTARTED
        else:
            # deploy has no meaning without Docker: it is a plain start
            outcome = await local.start(microservice)
        orchestrator.finish(tracker, outcome)

    return OperationResult(
        outcome=outcome,
        message=f"{action} {microservice.name}: {outcome.value}",
        operation_id=tracker.operation_id,
    )


async def _local_bulk_action(workspace: Workspace, project: Project, action: str) -> BulkResult:
    local = workspace.local
    with workspace.orchestrator.exclusive(f"{action} all in {project.name} (local)"):
        if action == "stop":
            counts = await local.stop_all(project)
        else:
            if action == "restart":
                await local.stop_all(project, quiet=True)
            counts = await local.start_all(project)
    return BulkResult(project=project.name, counts=counts)


@router.post("/{project}/microservices/{name}/action", response_model=OperationResult)
async def control_microservice(
    action: ServiceAction,
    microservice: Microservice = Depends(get_microservice),
    workspace: Workspace = Depends(get_workspace)
):
    """Start, stop, restart or deploy one microservice"""
    if workspace.mode == "local":
        return await _local_action(workspace, microservice, action.action)

    result = await workspace.orchestrator.run_command(action.action, microservice)
    if result.outcome == OperationOutcome.BUSY:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=result.message)
    return result


@router.post("/{project}/action", response_model=BulkResult)
async def control_project(
    action: ProjectAction,
    project: Project = Depends(get_project),
    workspace: Workspace = Depends(get_workspace)
):
    """Start, stop or restart every microservice of a project"""
    if workspace.mode == "local":
        return await _local_bulk_action(workspace, project, action.action)

    result = await workspace.orchestrator.run_bulk_command(action.action, project)
    if result.counts.get(OperationOutcome.BUSY):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=result.notifications[0].message)
    return result


@router.get("/{project}/logs")
async def get_project_logs(
    lines: int = 100,
    project: Project = Depends(get_project),
    workspace: Workspace = Depends(get_workspace)
):
    """Recent docker-compose log lines of a project"""
    logs = await asyncio.to_thread(workspace.logs.tail, project.path, lines)
    return {"project": project.name, "logs": logs}


@router.get("/{project}/logs/stream")
async def stream_project_logs(
    project: Project = Depends(get_project),
    workspace: Workspace = Depends(get_workspace)
):
    """Stream docker-compose logs via Server-Sent Events (SSE)"""
    workspace.logs.deployment_path(project.path)

    async def event_stream():
        async for line in workspace.logs.stream(project.path):
            yield f"data: {json.dumps({'line': line})}\n\n"

    return StreamingResponse(event_stream(), media_type="text/event-stream", headers=SSE_HEADERS)
