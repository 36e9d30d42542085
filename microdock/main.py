"""
Main FastAPI application
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from microdock.config import settings
from microdock.exceptions import (
    MicrodockError, DockerUnavailableError, OperationError, ReadinessTimeoutError,
    OperationInProgressError, ProjectExistsError, ProjectNotFoundError, MicroserviceNotFoundError,
)
from microdock.routers import projects, system, operations
from microdock.state import Workspace
from microdock.utils import setup_logging

logger = logging.getLogger(__name__)

# Most specific first
ERROR_STATUS = [
    (OperationInProgressError, status.HTTP_409_CONFLICT),
    (ProjectExistsError, status.HTTP_409_CONFLICT),
    (ProjectNotFoundError, status.HTTP_404_NOT_FOUND),
    (MicroserviceNotFoundError, status.HTTP_404_NOT_FOUND),
    (DockerUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ReadinessTimeoutError, status.HTTP_504_GATEWAY_TIMEOUT),
    (OperationError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def status_for(error: MicrodockError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(error, error_type):
            return status_code
    return status.HTTP_400_BAD_REQUEST


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan events for the application"""
    # Startup
    await app.state.workspace.startup()
    yield
    # Shutdown
    await app.state.workspace.shutdown()


async def microdock_error_handler(request: Request, exc: MicrodockError):
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


async def unexpected_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": f"Internal error: {exc}"}
    )


def create_app(workspace: Optional[Workspace] = None) -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Docker lifecycle management for microservice projects",
        lifespan=lifespan
    )
    app.state.workspace = workspace or Workspace()

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(MicrodockError, microdock_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)

    # Include routers
    app.include_router(projects.router)
    app.include_router(system.router)
    app.include_router(operations.router)

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "mode": app.state.workspace.mode,
            "status": "operational"
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "healthy"}

    return app


setup_logging(settings.LOG_LEVEL)
app = create_app()


def run():
    """Console entry point: serve the API with uvicorn"""
    import uvicorn
    uvicorn.run("microdock.main:app", host="127.0.0.1", port=settings.API_PORT, reload=settings.DEBUG)
