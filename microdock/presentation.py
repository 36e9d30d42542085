"""
Presentation of microservice states

Pure mapping from a status to what a tree node shows and which command a
click triggers. Status computation never depends on this module.
"""
from typing import Dict

from microdock.schemas import MicroserviceStatus, PresentationDescriptor


_DESCRIPTORS: Dict[MicroserviceStatus, dict] = {
    MicroserviceStatus.RUNNING: {
        "label": "running",
        "icon": "stop",
        "command": "stop_microservice",
        "tooltip": "Stop this microservice",
    },
    MicroserviceStatus.STOPPED: {
        "label": "stopped",
        "icon": "play",
        "command": "start_microservice",
        "tooltip": "Start this microservice",
    },
    MicroserviceStatus.NOT_DEPLOYED: {
        "label": "not deployed (click to deploy)",
        "icon": "loading",
        "command": "deploy_microservice",
        "tooltip": "Deploy this microservice",
    },
    MicroserviceStatus.NEEDS_DOCKER: {
        "label": "need to install and/or start docker",
        "icon": "download",
        "command": "open_docker_website",
        "tooltip": "Install Docker to manage this microservice",
    },
    MicroserviceStatus.ERROR: {
        "label": "error",
        "icon": "error",
        "command": None,
        "tooltip": "Docker state could not be read",
    },
}


def describe(status: MicroserviceStatus) -> PresentationDescriptor:
    """Presentation descriptor of a microservice status"""
    return PresentationDescriptor(kind=status, **_DESCRIPTORS[status])


def describe_project(running: int, total: int) -> str:
    return f"{running} / {total} running"
