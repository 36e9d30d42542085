"""
Progress of lifecycle operations
"""
from fastapi import APIRouter, Depends, HTTPException, status

from microdock.deps import get_workspace
from microdock.state import Workspace

router = APIRouter(prefix="/api/operations", tags=["Operations"])


@router.get("/current")
async def get_current_operation(workspace: Workspace = Depends(get_workspace)):
    """Lifecycle operation in flight, if any"""
    orchestrator = workspace.orchestrator
    return {"busy": orchestrator.is_busy, "operation": orchestrator.current_operation}


@router.get("/{operation_id}")
async def get_operation_progress(
    operation_id: str,
    workspace: Workspace = Depends(get_workspace)
):
    """Get progress for a lifecycle operation"""
    tracker = workspace.orchestrator.progress.get_tracker(operation_id)
    if not tracker:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Operation not found")
    return tracker.to_dict()
