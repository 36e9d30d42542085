# tests/test_compose.py
"""
Tests for compose file mutation and global port allocation.
"""
import yaml

from microdock.services.compose import (
    next_available_port, ports_in_text, read_service_ports, service_port, update_docker_compose, used_ports,
)


def _compose_file(project_path):
    return project_path / "deployment" / "docker-compose.yml"


def _write_ports(project_path, *ports):
    compose_file = _compose_file(project_path)
    compose_file.parent.mkdir(parents=True, exist_ok=True)
    lines = ["services:"]
    for i, port in enumerate(ports):
        lines += [f"  microservice-s{i}:", "    ports:", f'      - "{port}:8000"']
    compose_file.write_text("\n".join(lines) + "\n")


def test_next_available_port_fills_gaps():
    assert next_available_port({8000, 8002}) == 8001
    assert next_available_port(set()) == 8000
    assert next_available_port({8000, 8001, 8002}) == 8003


def test_ports_in_text_only_matches_container_port():
    content = '- "8004:8000"\n- "9000:9000"\n  - "8007:8000"'
    assert ports_in_text(content) == {8004, 8007}


def test_used_ports_spans_projects_and_skips_deployment(tmp_path):
    _write_ports(tmp_path / "one", 8000, 8001)
    _write_ports(tmp_path / "two", 8005)
    _write_ports(tmp_path / "deployment", 8009)
    assert used_ports(tmp_path) == {8000, 8001, 8005}


def test_first_service_creates_compose_file(tmp_path):
    project = tmp_path / "shop"
    project.mkdir()

    port = update_docker_compose(project, "Shop", "Auth")

    assert port == 8000
    content = _compose_file(project).read_text()
    assert content.startswith("services:")
    data = yaml.safe_load(content)
    entry = data["services"]["microservice-auth"]
    assert entry["build"]["context"] == "../microservices/auth"
    assert entry["container_name"] == "shop-microservice-auth"
    assert entry["ports"] == ["8000:8000"]
    assert entry["environment"] == ["DATABASE_URL=sqlite:///./test.db"]


def test_adding_twice_is_idempotent(tmp_path):
    project = tmp_path / "shop"
    project.mkdir()
    update_docker_compose(project, "shop", "auth")
    before = _compose_file(project).read_text()

    assert update_docker_compose(project, "shop", "auth") is None
    assert _compose_file(project).read_text() == before


def test_gap_is_reused(tmp_path):
    _write_ports(tmp_path / "other", 8000, 8002)
    project = tmp_path / "shop"
    project.mkdir()
    assert update_docker_compose(project, "shop", "auth") == 8001


def test_contiguous_ports_allocate_next(tmp_path):
    _write_ports(tmp_path / "other", 8000, 8001, 8002)
    project = tmp_path / "shop"
    project.mkdir()
    assert update_docker_compose(project, "shop", "auth") == 8003


def test_ports_unique_across_projects(tmp_path):
    allocated = []
    for project_name in ("alpha", "beta"):
        project = tmp_path / project_name
        project.mkdir()
        for service in ("auth", "billing", "orders"):
            allocated.append(update_docker_compose(project, project_name, service))

    assert sorted(allocated) == list(range(8000, 8006))
    assert len(used_ports(tmp_path)) == 6


def test_auth_and_billing_in_one_project(tmp_path):
    project = tmp_path / "shop"
    project.mkdir()
    assert update_docker_compose(project, "shop", "auth") == 8000
    assert update_docker_compose(project, "shop", "billing") == 8001

    ports = read_service_ports(_compose_file(project))
    assert ports == {"microservice-auth": 8000, "microservice-billing": 8001}
    assert service_port(_compose_file(project), "Billing") == 8001


def test_read_service_ports_tolerates_bad_files(tmp_path):
    assert read_service_ports(tmp_path / "missing.yml") == {}

    broken = tmp_path / "broken.yml"
    broken.write_text("services: [unclosed\n")
    assert read_service_ports(broken) == {}

    not_a_map = tmp_path / "list.yml"
    not_a_map.write_text("- a\n- b\n")
    assert read_service_ports(not_a_map) == {}
