# tests/test_docker.py
"""
Tests for the Docker SDK manager and the docker-compose runner.
"""
import subprocess
import docker
import requests
import pytest
from unittest.mock import MagicMock, patch
from docker.errors import APIError, DockerException, NotFound

from microdock.exceptions import ComposeCommandError, DockerUnavailableError, OperationError
from microdock.services.docker import ComposeRunner, DockerManager, first_host_port


def _sdk_container(name, status="running", ports=None):
    container = MagicMock()
    container.id = f"id-{name}"
    container.name = name
    container.status = status
    container.ports = ports or {}
    container.attrs = {"Config": {"Image": f"{name}:latest"}}
    return container


def test_first_host_port():
    assert first_host_port({"8000/tcp": [{"HostIp": "0.0.0.0", "HostPort": "8003"}]}) == 8003
    assert first_host_port({"8000/tcp": None}) is None
    assert first_host_port(None) is None


def test_list_and_find_containers():
    client = MagicMock()
    client.containers.list.return_value = [
        _sdk_container("other"),
        _sdk_container("shop-microservice-auth", status="exited"),
    ]
    manager = DockerManager(client=client)

    found = manager.find_container("microservice-auth")

    assert found.id == "id-shop-microservice-auth"
    assert found.status == "exited"
    assert found.image == "shop-microservice-auth:latest"
    client.containers.list.assert_called_with(all=True)
    assert manager.find_container("microservice-billing") is None


def test_list_containers_when_daemon_is_gone():
    client = MagicMock()
    client.containers.list.side_effect = DockerException("connection refused")
    with pytest.raises(DockerUnavailableError):
        DockerManager(client=client).list_containers()


def test_daemon_ping_failure_resets_client():
    client = MagicMock()
    client.ping.side_effect = DockerException("down")
    manager = DockerManager(client=client)

    assert manager.is_daemon_running() is False
    assert manager._client is None


def test_client_creation_failure():
    with patch("microdock.services.docker.docker.from_env", side_effect=DockerException("no socket")):
        manager = DockerManager()
        with pytest.raises(DockerUnavailableError):
            manager.client
        assert manager.is_daemon_running() is False


def test_cli_detection():
    with patch("microdock.services.docker.subprocess.run") as run:
        run.return_value = subprocess.CompletedProcess(["docker"], 0, stdout="Docker version 25", stderr="")
        assert DockerManager(client=MagicMock()).is_cli_installed() is True

    with patch("microdock.services.docker.subprocess.run", side_effect=FileNotFoundError()):
        assert DockerManager(client=MagicMock()).is_cli_installed() is False


def test_container_actions_wrap_sdk_errors():
    client = MagicMock()
    container = _sdk_container("shop-microservice-auth")
    container.stop.side_effect = APIError("conflict")
    client.containers.get.return_value = container
    manager = DockerManager(client=client)

    manager.start_container("id-shop-microservice-auth")
    container.start.assert_called_once()
    with pytest.raises(OperationError):
        manager.stop_container("id-shop-microservice-auth")

    client.containers.get.side_effect = NotFound("gone")
    with pytest.raises(OperationError):
        manager.remove_container("id-shop-microservice-auth")


def test_get_host_port_reads_fresh_inspect():
    client = MagicMock()
    container = _sdk_container("shop-microservice-auth")
    container.attrs = {"NetworkSettings": {"Ports": {"8000/tcp": [{"HostIp": "0.0.0.0", "HostPort": "8001"}]}}}
    client.containers.get.return_value = container

    assert DockerManager(client=client).get_host_port("id") == 8001
    container.reload.assert_called_once()


def test_events_are_filtered_to_status_changes():
    client = MagicMock()
    DockerManager(client=client).events()
    client.events.assert_called_once_with(
        decode=True, filters={"type": "container", "event": ["start", "stop", "die", "destroy"]}
    )


def test_compose_up_and_build_commands():
    runner = ComposeRunner(compose_command="docker compose")
    with patch("microdock.services.docker.subprocess.run") as run:
        run.return_value = subprocess.CompletedProcess([], 0, stdout="", stderr="")
        runner.up("/p/deployment/docker-compose.yml", "microservice-auth")
        runner.build("/p/deployment/docker-compose.yml", "microservice-auth")

    commands = [call.args[0] for call in run.call_args_list]
    assert commands == [
        ["docker", "compose", "-f", "/p/deployment/docker-compose.yml", "up", "-d", "microservice-auth"],
        ["docker", "compose", "-f", "/p/deployment/docker-compose.yml", "build", "microservice-auth"],
    ]


def test_compose_failure_raises():
    runner = ComposeRunner()
    with patch("microdock.services.docker.subprocess.run") as run:
        run.return_value = subprocess.CompletedProcess([], 1, stdout="", stderr="no such service")
        with pytest.raises(ComposeCommandError) as exc_info:
            runner.up("/p/docker-compose.yml", "microservice-auth")

    assert exc_info.value.returncode == 1
    assert "no such service" in str(exc_info.value)


def test_compose_missing_binary():
    runner = ComposeRunner()
    with patch("microdock.services.docker.subprocess.run", side_effect=FileNotFoundError("docker-compose")):
        with pytest.raises(DockerUnavailableError):
            runner.logs("/p/deployment")


def test_compose_logs():
    runner = ComposeRunner()
    with patch("microdock.services.docker.subprocess.run") as run:
        run.return_value = subprocess.CompletedProcess([], 0, stdout="a\nb", stderr="")
        assert runner.logs("/p/deployment", lines=2) == ["a", "b"]

    assert run.call_args.args[0] == ["docker-compose", "logs", "--no-color", "--tail", "2"]
    assert run.call_args.kwargs["cwd"] == "/p/deployment"


# A socket path nothing listens on: the SDK fails with requests errors, not DockerException
UNREACHABLE_DAEMON = "unix:///tmp/microdock-no-such-daemon.sock"


def _unreachable_client():
    return docker.DockerClient(base_url=UNREACHABLE_DAEMON, version="1.41", timeout=2)


def test_lost_daemon_reads_as_not_running():
    manager = DockerManager(client=_unreachable_client())
    assert manager.is_daemon_running() is False
    assert manager._client is None


def test_lost_daemon_raises_unavailable():
    manager = DockerManager(client=_unreachable_client())
    with pytest.raises(DockerUnavailableError):
        manager.list_containers()
    with pytest.raises(DockerUnavailableError):
        manager.start_container("id-shop-microservice-auth")


def test_connection_errors_from_sdk_calls_are_unavailable():
    client = MagicMock()
    client.ping.side_effect = requests.ConnectionError("connection aborted")
    client.containers.list.side_effect = requests.ConnectionError("connection aborted")
    container = _sdk_container("shop-microservice-auth")
    container.stop.side_effect = requests.ConnectionError("connection aborted")
    container.reload.side_effect = requests.ReadTimeout("read timed out")
    client.containers.get.return_value = container

    assert DockerManager(client=client).is_daemon_running() is False
    manager = DockerManager(client=client)
    with pytest.raises(DockerUnavailableError):
        manager.list_containers()
    with pytest.raises(DockerUnavailableError):
        manager.stop_container(container.id)
    with pytest.raises(DockerUnavailableError):
        manager.get_host_port(container.id)
