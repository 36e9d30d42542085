"""
Workspace scanner

Projects are directories holding project-config.json directly under the
workspace root; microservices are the directories under <project>/microservices.
Nothing is cached: every call reads the filesystem again.
"""
import logging
from pathlib import Path
from typing import List, Optional, Union

from microdock.schemas import Project, Microservice
from microdock.utils import PROJECT_CONFIG, MICROSERVICES_DIR, DEPLOYMENT_DIR, COMPOSE_FILE

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def deployment_path(project_path: PathLike) -> Path:
    return Path(project_path) / DEPLOYMENT_DIR


def compose_path(project_path: PathLike) -> Path:
    return deployment_path(project_path) / COMPOSE_FILE


def _child_dirs(path: Path) -> List[Path]:
    try:
        return sorted(
            (p for p in path.iterdir() if p.is_dir() and not p.name.startswith('.')),
            key=lambda p: p.name,
        )
    except OSError as e:
        logger.debug(f"Cannot list {path}: {e}")
        return []


class WorkspaceScanner:
    """Lists projects and microservices of a workspace root"""

    def __init__(self, root: PathLike):
        self.root = Path(root)

    def list_projects(self) -> List[Project]:
        """Immediate child directories containing project-config.json"""
        return [
            Project(name=p.name, path=str(p))
            for p in _child_dirs(self.root)
            if (p / PROJECT_CONFIG).is_file()
        ]

    def get_project(self, name: str) -> Optional[Project]:
        for project in self.list_projects():
            if project.name == name:
                return project
        return None

    @staticmethod
    def list_microservices(project: Project) -> List[Microservice]:
        """Immediate child directories of <project>/microservices"""
        return [
            Microservice(name=p.name, path=str(p), project=project)
            for p in _child_dirs(Path(project.path) / MICROSERVICES_DIR)
        ]

    def get_microservice(self, project: Project, name: str) -> Optional[Microservice]:
        for microservice in self.list_microservices(project):
            if microservice.name == name:
                return microservice
        return None
