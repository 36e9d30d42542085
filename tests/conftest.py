# tests/conftest.py
"""
Common test fixtures for microdock.
"""
import subprocess
import pytest

from microdock.exceptions import ComposeCommandError, DockerUnavailableError, OperationError, ReadinessTimeoutError
from microdock.schemas import ContainerInfo
from microdock.services.events import EventBus, EventType
from microdock.services.scaffold import create_project, create_microservice
from microdock.services.scanner import WorkspaceScanner
from microdock.utils import docs_url


class FakeDocker:
    """In-memory stand-in for DockerManager."""
    def __init__(self, cli_installed=True, daemon_running=True):
        self.cli_installed = cli_installed
        self.daemon_running = daemon_running
        self.containers = []
        self.calls = []
        self.fail_on = set()

    def add(self, name, status="running", port=None):
        ports = {"8000/tcp": [{"HostIp": "0.0.0.0", "HostPort": str(port)}]} if port else {}
        container = ContainerInfo(id=f"id-{name}", name=name, status=status, ports=ports)
        self.containers.append(container)
        return container

    def _record(self, call, container_id=None):
        self.calls.append((call, container_id))
        if call in self.fail_on:
            raise OperationError(f"{call} failed")

    def _by_id(self, container_id):
        return next(c for c in self.containers if c.id == container_id)

    def is_cli_installed(self):
        return self.cli_installed

    def is_daemon_running(self):
        return self.daemon_running

    def list_containers(self, all=True):
        self.calls.append(("list", None))
        if not self.daemon_running:
            raise DockerUnavailableError()
        return list(self.containers)

    def find_container(self, service_name):
        for container in self.list_containers():
            if service_name in container.name:
                return container
        return None

    def start_container(self, container_id):
        self._record("start", container_id)
        self._by_id(container_id).status = "running"

    def stop_container(self, container_id):
        self._record("stop", container_id)
        self._by_id(container_id).status = "exited"

    def remove_container(self, container_id):
        self._record("remove", container_id)
        self.containers.remove(self._by_id(container_id))

    def get_host_port(self, container_id):
        ports = self._by_id(container_id).ports
        for bindings in ports.values():
            return int(bindings[0]["HostPort"])
        return None

    def events(self):
        return iter([])


class FakeCompose:
    """Stand-in for ComposeRunner; `up` creates a running container."""
    def __init__(self, docker, port=8000):
        self.docker = docker
        self.port = port
        self.calls = []
        self.stderr = ""
        self.fail_build = False
        self.fail_up = False
        self.up_status = "running"

    def up(self, compose_file, service):
        self.calls.append(("up", service))
        if self.fail_up:
            raise ComposeCommandError(["docker-compose", "up"], 1, "boom")
        existing = self.docker.find_container(service)
        if existing is None:
            self.docker.add(f"shop-{service}", status=self.up_status, port=self.port)
        else:
            existing.status = self.up_status
        return subprocess.CompletedProcess(["docker-compose"], 0, stdout="", stderr=self.stderr)

    def build(self, compose_file, service):
        self.calls.append(("build", service))
        if self.fail_build:
            raise ComposeCommandError(["docker-compose", "build"], 1, "build failed")
        return subprocess.CompletedProcess(["docker-compose"], 0, stdout="", stderr="")

    def logs(self, deployment_path, lines=100):
        return ["line one", "line two"][:lines]

    def follow_command(self):
        return ["docker-compose", "logs", "-f"]


class FakeReadiness:
    """Answers immediately, or times out when `ready` is False."""
    def __init__(self, ready=True):
        self.ready = ready
        self.waited = []

    async def wait(self, port, timeout=None):
        self.waited.append((port, timeout))
        if not self.ready:
            raise ReadinessTimeoutError(docs_url(port), timeout or 0)
        return docs_url(port)


class FakeLogViewer:
    def __init__(self):
        self.followed = []

    def follow(self, project_path):
        self.followed.append(project_path)


@pytest.fixture
def workspace_root(tmp_path):
    """Workspace with project `shop` holding microservices auth and billing."""
    project = create_project(tmp_path, "shop")
    create_microservice(project, "auth")
    create_microservice(project, "billing")
    return tmp_path


@pytest.fixture
def scanner(workspace_root):
    return WorkspaceScanner(workspace_root)


@pytest.fixture
def shop(scanner):
    return scanner.get_project("shop")


@pytest.fixture
def fake_docker():
    return FakeDocker()


@pytest.fixture
def fake_compose(fake_docker):
    return FakeCompose(fake_docker)


@pytest.fixture
def fake_readiness():
    return FakeReadiness()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def notifications(bus):
    """List of (level, message) notifications published on the bus."""
    received = []
    bus.add_listener(
        lambda event: received.append((event.data["level"], event.data["message"]))
        if event.type == EventType.NOTIFICATION else None
    )
    return received


@pytest.fixture
def log_viewer():
    return FakeLogViewer()
