# tests/test_presentation.py
"""
Tests for the status -> tree descriptor mapping.
"""
import pytest

from microdock.presentation import describe, describe_project
from microdock.schemas import MicroserviceStatus


@pytest.mark.parametrize("status, icon, command", [
    (MicroserviceStatus.RUNNING, "stop", "stop_microservice"),
    (MicroserviceStatus.STOPPED, "play", "start_microservice"),
    (MicroserviceStatus.NOT_DEPLOYED, "loading", "deploy_microservice"),
    (MicroserviceStatus.NEEDS_DOCKER, "download", "open_docker_website"),
    (MicroserviceStatus.ERROR, "error", None),
])
def test_describe(status, icon, command):
    descriptor = describe(status)
    assert descriptor.kind == status
    assert descriptor.icon == icon
    assert descriptor.command == command
    assert descriptor.tooltip


def test_not_deployed_label_invites_deploy():
    assert describe(MicroserviceStatus.NOT_DEPLOYED).label == "not deployed (click to deploy)"


def test_needs_docker_label():
    assert describe(MicroserviceStatus.NEEDS_DOCKER).label == "need to install and/or start docker"


def test_describe_project():
    assert describe_project(1, 3) == "1 / 3 running"
    assert describe_project(0, 0) == "0 / 0 running"
