"""
Pydantic schemas for the project / microservice model and API payloads
"""
import os
from enum import Enum
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict, Any, Literal

from microdock.utils import DEPLOYMENT_DIR, COMPOSE_FILE


class MicroserviceStatus(str, Enum):
    """Derived status of a microservice, recomputed on every refresh"""
    NEEDS_DOCKER = "need to install and/or start docker"
    NOT_DEPLOYED = "not deployed"
    STOPPED = "stopped"
    RUNNING = "running"
    ERROR = "error"


class OperationOutcome(str, Enum):
    """Result category of a single lifecycle operation"""
    STARTED = "started"
    ALREADY_RUNNING = "already_running"
    DEPLOYED = "deployed"
    STOPPED = "stopped"
    ALREADY_STOPPED = "already_stopped"
    RESTARTED = "restarted"
    FAILED = "failed"
    BUSY = "busy"


class NotificationLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


# Filesystem model
class Project(BaseModel):
    name: str
    path: str

    @property
    def deployment_path(self) -> str:
        return os.path.join(self.path, DEPLOYMENT_DIR)

    @property
    def compose_path(self) -> str:
        return os.path.join(self.path, DEPLOYMENT_DIR, COMPOSE_FILE)


class Microservice(BaseModel):
    name: str
    path: str
    project: Project


# Presentation
class PresentationDescriptor(BaseModel):
    """What a tree node looks like and what clicking it does"""
    kind: MicroserviceStatus
    label: str
    icon: str
    tooltip: str
    command: Optional[str] = None


class MicroserviceInfo(BaseModel):
    name: str
    path: str
    status: MicroserviceStatus
    presentation: Optional[PresentationDescriptor] = None


class ProjectInfo(BaseModel):
    name: str
    path: str
    compose_file: str
    running: int = 0
    total: int = 0
    description: str = ""
    microservices: List[MicroserviceInfo] = Field(default_factory=list)


class StatusSnapshot(BaseModel):
    docker_available: bool
    projects: List[ProjectInfo] = Field(default_factory=list)


# Docker
class ContainerInfo(BaseModel):
    id: str
    name: str
    status: str
    image: str = "unknown"
    ports: Dict[str, Any] = Field(default_factory=dict)


class DockerStatus(BaseModel):
    cli_installed: bool
    daemon_running: bool
    install_url: Optional[str] = None


# Requests / responses
class ServiceAction(BaseModel):
    action: Literal["start", "stop", "restart", "deploy"]


class ProjectAction(BaseModel):
    action: Literal["start", "stop", "restart"]


class ProjectCreate(BaseModel):
    name: str

    @field_validator('name')
    @classmethod
    def name_not_blank(cls, v):
        if not v.strip():
            raise ValueError("Project name is required")
        return v


class MicroserviceCreate(BaseModel):
    name: str

    @field_validator('name')
    @classmethod
    def name_not_blank(cls, v):
        if not v.strip():
            raise ValueError("Microservice name is required")
        return v


class ModeChange(BaseModel):
    mode: Literal["docker", "local"]


class Notification(BaseModel):
    level: NotificationLevel
    message: str


class OperationResult(BaseModel):
    outcome: OperationOutcome
    message: str = ""
    operation_id: Optional[str] = None


class BulkResult(BaseModel):
    project: str
    counts: Dict[OperationOutcome, int] = Field(default_factory=dict)
    notifications: List[Notification] = Field(default_factory=list)
