"""
Project and microservice scaffolding
"""
import json
import logging
from pathlib import Path
from typing import Optional, Tuple, Union

from microdock.config import settings
from microdock.exceptions import MicrodockError, ProjectExistsError
from microdock.schemas import Project
from microdock.services.compose import update_docker_compose
from microdock.utils import normalize_name, PROJECT_CONFIG, MICROSERVICES_DIR, DEPLOYMENT_DIR

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

MAIN_PY = '''from fastapi import FastAPI

app = FastAPI(title="{name}")


@app.get("/")
def read_root():
    return {{"service": "{name}"}}
'''

REQUIREMENTS = """fastapi
uvicorn
pydantic
pydantic-settings
"""

DOCKERFILE = """FROM python:3.12-slim

WORKDIR /app

COPY ./requirements.txt /app/requirements.txt
RUN pip install --no-cache-dir --upgrade -r /app/requirements.txt

COPY ./app /app/app

EXPOSE {port}

CMD ["uvicorn", "app.main:app", "--host", "0.0.0.0", "--port", "{port}"]
"""


def _write_missing(path: Path, content: str) -> bool:
    if path.exists():
        return False
    path.write_text(content, encoding="utf-8")
    return True


def create_project(root: PathLike, name: str) -> Project:
    """Create <root>/<normalized-name>/ with its project-config.json

    Raises:
        ProjectExistsError: if the directory already exists
    """
    project_name = normalize_name(name)
    if not project_name:
        raise MicrodockError(f"Invalid project name: {name!r}")

    project_path = Path(root) / project_name
    if project_path.exists():
        raise ProjectExistsError(f"Project {project_name} already exists")

    (project_path / MICROSERVICES_DIR).mkdir(parents=True)
    (project_path / DEPLOYMENT_DIR).mkdir()
    (project_path / PROJECT_CONFIG).write_text(
        json.dumps({"name": project_name}, indent=2), encoding="utf-8"
    )
    logger.info(f"Project {project_name} created successfully")
    return Project(name=project_name, path=str(project_path))


def create_microservice(project: Project, name: str) -> Tuple[Path, Optional[int]]:
    """Create a minimal FastAPI microservice and register it in the compose file

    Existing files are left untouched, so calling it again only makes sure
    the compose entry exists.

    Returns:
        The microservice directory and the host port it was given (None if
        the compose file already had an entry)
    """
    service_name = normalize_name(name)
    if not service_name:
        raise MicrodockError(f"Invalid microservice name: {name!r}")

    project_path = Path(project.path)
    service_path = project_path / MICROSERVICES_DIR / service_name
    app_path = service_path / "app"
    app_path.mkdir(parents=True, exist_ok=True)

    _write_missing(app_path / "__init__.py", "")
    _write_missing(app_path / "main.py", MAIN_PY.format(name=service_name))
    _write_missing(service_path / "requirements.txt", REQUIREMENTS)
    _write_missing(service_path / "Dockerfile", DOCKERFILE.format(port=settings.CONTAINER_PORT))
    _write_missing(project_path / PROJECT_CONFIG, json.dumps({"name": project.name}, indent=2))

    port = update_docker_compose(project_path, project.name, service_name)
    logger.info(f"Microservice {service_name} created successfully")
    return service_path, port
