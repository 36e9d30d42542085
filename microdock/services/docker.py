"""
Docker service management utilities
"""
import docker
import logging
import subprocess
from docker.errors import DockerException, NotFound, APIError
from requests.exceptions import RequestException
from typing import List, Dict, Any, Optional, Iterator

from microdock.config import settings
from microdock.exceptions import DockerUnavailableError, OperationError, ComposeCommandError
from microdock.schemas import ContainerInfo

logger = logging.getLogger(__name__)

# Container events that can change a microservice status
STATUS_EVENTS = ["start", "stop", "die", "destroy"]

# The SDK raises plain requests errors once an existing client loses the daemon
CONNECTION_ERRORS = (DockerException, RequestException)


def first_host_port(ports: Optional[Dict[str, Any]]) -> Optional[int]:
    """First published host port of a container port map"""
    for bindings in (ports or {}).values():
        for binding in bindings or []:
            host_port = binding.get("HostPort")
            if host_port:
                return int(host_port)
    return None


class DockerManager:
    """Manager for Docker containers through the Docker SDK"""

    def __init__(self, client=None, docker_command: Optional[str] = None):
        self._client = client
        self.docker_command = docker_command or settings.DOCKER_COMMAND

    @property
    def client(self):
        """Docker client, created lazily so a daemon started later is picked up"""
        if self._client is None:
            try:
                self._client = docker.from_env()
            except CONNECTION_ERRORS as e:
                raise DockerUnavailableError(f"Docker client not available: {e}") from e
        return self._client

    def is_cli_installed(self) -> bool:
        """Check that the docker CLI is on the PATH"""
        try:
            result = subprocess.run(
                [self.docker_command, "--version"],
                capture_output=True,
                text=True
            )
            return result.returncode == 0
        except OSError:
            return False

    def is_daemon_running(self) -> bool:
        """Check that the Docker daemon answers"""
        try:
            return bool(self.client.ping())
        except (DockerUnavailableError, DockerException, RequestException) as e:
            logger.debug(f"Docker daemon not reachable: {e}")
            self._client = None
            return False

    def list_containers(self, all: bool = True) -> List[ContainerInfo]:
        """List Docker containers, stopped ones included by default"""
        try:
            containers = self.client.containers.list(all=all)
        except CONNECTION_ERRORS as e:
            raise DockerUnavailableError(f"Failed to list containers: {e}") from e

        return [
            ContainerInfo(
                id=c.id,
                name=c.name,
                status=c.status,
                image=c.attrs.get("Config", {}).get("Image") or "unknown",
                ports=c.ports or {}
            )
            for c in containers
        ]

    def find_container(self, service_name: str) -> Optional[ContainerInfo]:
        """First container whose name contains service_name, in list order"""
        for container in self.list_containers(all=True):
            if service_name in container.name:
                return container
        return None

    def _get(self, container_id: str):
        try:
            return self.client.containers.get(container_id)
        except NotFound as e:
            raise OperationError(f"Container {container_id} not found") from e
        except CONNECTION_ERRORS as e:
            raise DockerUnavailableError(str(e)) from e

    def start_container(self, container_id: str) -> None:
        """Start a Docker container"""
        try:
            self._get(container_id).start()
        except APIError as e:
            raise OperationError(f"Failed to start container {container_id}: {e.explanation or e}") from e
        except RequestException as e:
            raise DockerUnavailableError(f"Lost the Docker daemon while trying to start {container_id}: {e}") from e

    def stop_container(self, container_id: str) -> None:
        """Stop a Docker container"""
        try:
            self._get(container_id).stop()
        except APIError as e:
            raise OperationError(f"Failed to stop container {container_id}: {e.explanation or e}") from e
        except RequestException as e:
            raise DockerUnavailableError(f"Lost the Docker daemon while trying to stop {container_id}: {e}") from e

    def remove_container(self, container_id: str) -> None:
        """Remove a Docker container"""
        try:
            self._get(container_id).remove()
        except APIError as e:
            raise OperationError(f"Failed to remove container {container_id}: {e.explanation or e}") from e
        except RequestException as e:
            raise DockerUnavailableError(f"Lost the Docker daemon while trying to remove {container_id}: {e}") from e

    def get_host_port(self, container_id: str) -> Optional[int]:
        """Published host port of a container, read from a fresh inspect"""
        container = self._get(container_id)
        try:
            container.reload()
        except NotFound as e:
            raise OperationError(f"Container {container_id} not found") from e
        except CONNECTION_ERRORS as e:
            raise DockerUnavailableError(f"Cannot inspect container {container_id}: {e}") from e
        return first_host_port(container.attrs.get("NetworkSettings", {}).get("Ports"))

    def events(self):
        """Live container event stream filtered to status-changing events

        The returned stream is blocking; close() ends it.
        """
        try:
            return self.client.events(
                decode=True,
                filters={"type": "container", "event": STATUS_EVENTS}
            )
        except CONNECTION_ERRORS as e:
            raise DockerUnavailableError(f"Cannot subscribe to Docker events: {e}") from e


class ComposeRunner:
    """Runs docker-compose as a subprocess"""

    def __init__(self, compose_command: Optional[str] = None):
        self.compose_command = (compose_command or settings.COMPOSE_COMMAND).split()

    def run(self, args: List[str], cwd: Optional[str] = None) -> subprocess.CompletedProcess:
        """Run a compose command, raising on non-zero exit"""
        command = self.compose_command + args
        logger.info(f"Running: {' '.join(command)}")
        try:
            result = subprocess.run(
                command,
                cwd=cwd,
                capture_output=True,
                text=True
            )
        except OSError as e:
            raise DockerUnavailableError(f"{self.compose_command[0]} is not available: {e}") from e

        if result.returncode != 0:
            raise ComposeCommandError(command, result.returncode, result.stderr)
        return result

    def up(self, compose_file: str, service: str) -> subprocess.CompletedProcess:
        """Create and start one service in the background"""
        return self.run(["-f", compose_file, "up", "-d", service])

    def build(self, compose_file: str, service: str) -> subprocess.CompletedProcess:
        """Rebuild the image of one service"""
        return self.run(["-f", compose_file, "build", service])

    def logs(self, deployment_path: str, lines: int = 100) -> List[str]:
        """Recent log lines of every service of the project"""
        result = self.run(["logs", "--no-color", "--tail", str(lines)], cwd=deployment_path)
        return result.stdout.split('\n')

    def follow_command(self) -> List[str]:
        return self.compose_command + ["logs", "-f"]
