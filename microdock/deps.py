"""
FastAPI dependencies resolving workspace, project and microservice
"""
from fastapi import Depends, HTTPException, Path, Request, status

from microdock.schemas import Microservice, Project
from microdock.state import Workspace


def get_workspace(request: Request) -> Workspace:
    return request.app.state.workspace


def get_project(
    project: str = Path(..., description="Project directory name"),
    workspace: Workspace = Depends(get_workspace),
) -> Project:
    """Resolve the project path parameter against the workspace"""
    found = workspace.scanner.get_project(project)
    if found is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Project not found: {project}")
    return found


def get_microservice(
    name: str = Path(..., description="Microservice directory name"),
    project: Project = Depends(get_project),
    workspace: Workspace = Depends(get_workspace),
) -> Microservice:
    found = workspace.scanner.get_microservice(project, name)
    if found is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Microservice not found: {project.name}/{name}"
        )
    return found
