# tests/test_scanner.py
"""
Tests for the workspace scanner.
"""
from microdock.services.scanner import WorkspaceScanner, compose_path, deployment_path


def test_missing_root_yields_no_projects(tmp_path):
    scanner = WorkspaceScanner(tmp_path / "nowhere")
    assert scanner.list_projects() == []


def test_only_directories_with_project_config_are_projects(tmp_path):
    (tmp_path / "b-project").mkdir()
    (tmp_path / "b-project" / "project-config.json").write_text("{}")
    (tmp_path / "a-project").mkdir()
    (tmp_path / "a-project" / "project-config.json").write_text("{}")
    (tmp_path / "not-a-project").mkdir()
    (tmp_path / "stray-file.txt").write_text("")

    names = [p.name for p in WorkspaceScanner(tmp_path).list_projects()]
    assert names == ["a-project", "b-project"]


def test_list_microservices(scanner, shop):
    microservices = scanner.list_microservices(shop)
    assert [m.name for m in microservices] == ["auth", "billing"]
    assert all(m.project.name == "shop" for m in microservices)


def test_hidden_microservice_directories_are_skipped(scanner, shop, workspace_root):
    (workspace_root / "shop" / "microservices" / ".cache").mkdir()
    assert [m.name for m in scanner.list_microservices(shop)] == ["auth", "billing"]


def test_project_without_microservices_directory(tmp_path):
    (tmp_path / "empty").mkdir()
    (tmp_path / "empty" / "project-config.json").write_text("{}")
    scanner = WorkspaceScanner(tmp_path)
    project = scanner.get_project("empty")
    assert scanner.list_microservices(project) == []


def test_lookups(scanner, shop):
    assert scanner.get_project("missing") is None
    assert scanner.get_microservice(shop, "auth").name == "auth"
    assert scanner.get_microservice(shop, "missing") is None


def test_path_helpers(tmp_path):
    assert deployment_path(tmp_path) == tmp_path / "deployment"
    assert compose_path(tmp_path) == tmp_path / "deployment" / "docker-compose.yml"
