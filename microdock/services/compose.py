"""
docker-compose file management

Service blocks are appended as text and host ports are discovered with a
line regex, so hand-edited compose files keep their formatting. Host ports
are allocated globally: every project under the workspace root is scanned
before a port is picked.
"""
import logging
import re
import yaml
from pathlib import Path
from typing import Dict, Optional, Set, Union

from microdock.config import settings
from microdock.utils import normalize_name, compose_service_name, DEPLOYMENT_DIR, COMPOSE_FILE

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

COMPOSE_HEADER = "\nservices:\n"

SERVICE_TEMPLATE = """
  {service}:
    build:
      context: ../microservices/{name}
    container_name: {project}-{service}
    ports:
      - "{host_port}:{container_port}"
    environment:
      - DATABASE_URL=sqlite:///./test.db
"""


def _port_pattern(container_port: int):
    return re.compile(r'- "(\d+):%d"' % container_port)


def ports_in_text(content: str, container_port: Optional[int] = None) -> Set[int]:
    """Host ports of every '- "<port>:<container_port>"' mapping in a compose text"""
    pattern = _port_pattern(container_port or settings.CONTAINER_PORT)
    return {int(port) for port in pattern.findall(content)}


def used_ports(root: PathLike, container_port: Optional[int] = None) -> Set[int]:
    """Host ports already mapped by any project of the workspace"""
    ports: Set[int] = set()
    root = Path(root)
    try:
        candidates = [p for p in root.iterdir() if p.is_dir() and p.name != DEPLOYMENT_DIR]
    except OSError as e:
        logger.warning(f"Cannot scan workspace {root}: {e}")
        return ports

    for project_dir in candidates:
        compose_file = project_dir / DEPLOYMENT_DIR / COMPOSE_FILE
        if compose_file.is_file():
            ports |= ports_in_text(compose_file.read_text(encoding="utf-8"), container_port)
    return ports


def next_available_port(used: Set[int], base: Optional[int] = None) -> int:
    """Lowest port >= base that is not used"""
    port = settings.BASE_HOST_PORT if base is None else base
    while port in used:
        port += 1
    return port


def update_docker_compose(project_path: PathLike, project_name: str, service_name: str) -> Optional[int]:
    """Make sure the project's compose file has an entry for service_name

    Creates the file with a services: root when missing. When the compose
    service name already appears in the file nothing is written.

    Returns:
        The host port assigned to the new entry, or None if it already existed
    """
    project_path = Path(project_path)
    compose_file = project_path / DEPLOYMENT_DIR / COMPOSE_FILE

    if compose_file.exists():
        content = compose_file.read_text(encoding="utf-8")
    else:
        content = COMPOSE_HEADER

    service = compose_service_name(service_name)
    if service in content:
        logger.info(f"{service} already present in {compose_file}")
        return None

    host_port = next_available_port(used_ports(project_path.parent))
    content += SERVICE_TEMPLATE.format(
        service=service,
        name=normalize_name(service_name),
        project=normalize_name(project_name),
        host_port=host_port,
        container_port=settings.CONTAINER_PORT,
    )

    compose_file.parent.mkdir(parents=True, exist_ok=True)
    compose_file.write_text(content.strip() + "\n", encoding="utf-8")
    logger.info(f"Added {service} to {compose_file} on port {host_port}")
    return host_port


def read_service_ports(compose_file: PathLike) -> Dict[str, int]:
    """Host port of every service, read structurally from the compose file

    Malformed or missing files yield an empty mapping.
    """
    compose_file = Path(compose_file)
    if not compose_file.is_file():
        return {}

    try:
        with open(compose_file, 'r', encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        logger.warning(f"Cannot parse {compose_file}: {e}")
        return {}

    services = data.get("services") if isinstance(data, dict) else None
    if not isinstance(services, dict):
        return {}

    ports: Dict[str, int] = {}
    for name, definition in services.items():
        if not isinstance(definition, dict):
            continue
        for mapping in definition.get("ports") or []:
            host = str(mapping).split(":")[0]
            if host.isdigit():
                ports[name] = int(host)
                break
    return ports


def service_port(compose_file: PathLike, microservice_name: str) -> Optional[int]:
    """Host port of one microservice according to the compose file"""
    return read_service_ports(compose_file).get(compose_service_name(microservice_name))
