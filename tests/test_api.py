"""Tests for the HTTP API"""
import socket
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from runconfigs.config import Settings
from runconfigs.main import create_app, find_free_port

from .conftest import read_json, write_launch, write_tasks


@pytest.fixture
def client(workspace, launcher, runner):
    runner.read_log = Mock(return_value="hello\n")
    runner.stop = Mock(return_value=False)
    write_launch(workspace, [
        {"name": "Server", "type": "node", "request": "launch", "program": "server.js"},
        {"name": "Attach", "type": "python", "request": "attach", "port": 5678},
    ])
    write_tasks(workspace, [{"label": "build", "type": "shell", "command": "make"}])
    app = create_app(Settings(workspace=str(workspace)), launcher=launcher, runner=runner)
    return TestClient(app)


class TestConfigurationsApi:
    """Tests for configuration endpoints"""

    def test_list(self, client):
        response = client.get("/api/configurations")
        assert response.status_code == 200
        configs = response.json()["configurations"]
        assert [c["display_name"] for c in configs] == ["Attach", "build", "Server"]
        assert {c["identity"] for c in configs} == {"launch-0", "launch-1", "task-0"}

    def test_get_and_not_found(self, client):
        assert client.get("/api/configurations/task-0").json()["display_name"] == "build"
        assert client.get("/api/configurations/task-7").status_code == 404

    def test_form(self, client):
        fields = client.get("/api/configurations/launch-1/form").json()["fields"]
        assert {"key": "port", "label": "Port", "value": "5678"} in fields

    def test_run_ranks_item_first(self, client, launcher):
        """Test running a configuration records usage and moves it to the top"""
        response = client.post("/api/configurations/launch-0/run")
        assert response.json() == {"status": "success", "message": "Started debugging: Server"}
        launcher.launch.assert_awaited_once()

        configs = client.get("/api/configurations").json()["configurations"]
        assert configs[0]["identity"] == "launch-0"
        assert configs[0]["usage_count"] == 1

    def test_run_failure_is_a_result(self, client, launcher):
        launcher.launch.side_effect = RuntimeError("boom")
        response = client.post("/api/configurations/launch-0/run")
        assert response.status_code == 200
        assert response.json()["status"] == "error"

        notifications = client.get("/api/notifications").json()["notifications"]
        assert notifications[-1]["severity"] == "error"

    def test_create_opens_editor(self, client, workspace):
        response = client.post("/api/configurations", json={"kind": "task"})
        assert response.json()["identity"] == "task-1"
        assert len(read_json(workspace / ".vscode" / "tasks.json")["tasks"]) == 2

        session = client.get("/api/session").json()["session"]
        assert session["selected"] == "task-1"
        assert session["editing"] is True

    def test_create_rejects_unknown_kind(self, client):
        assert client.post("/api/configurations", json={"kind": "macro"}).status_code == 422

    def test_update_with_spec(self, client, workspace):
        spec = {"label": "build", "type": "shell", "command": "make", "args": ["all"]}
        response = client.put("/api/configurations/task-0", json={"spec": spec})
        assert response.status_code == 200
        assert read_json(workspace / ".vscode" / "tasks.json")["tasks"][0] == spec

    def test_update_with_form_fields(self, client, workspace):
        """Test form text is coerced before saving"""
        fields = {"name": "Attach", "type": "python", "request": "attach", "port": "5679", "justMyCode": "false"}
        client.put("/api/configurations/launch-1", json={"fields": fields})
        saved = read_json(workspace / ".vscode" / "launch.json")["configurations"][1]
        assert saved["port"] == 5679
        assert saved["justMyCode"] is False

    def test_save_and_run(self, client, runner):
        spec = {"label": "build", "type": "shell", "command": "make"}
        response = client.put("/api/configurations/task-0", json={"spec": spec, "run": True})
        assert response.json() == {"status": "success", "message": "Started task: build"}
        runner.execute_shell_task.assert_awaited_once()

    def test_update_requires_body(self, client):
        assert client.put("/api/configurations/task-0", json={}).status_code == 400

    def test_update_not_found(self, client):
        response = client.put("/api/configurations/task-5", json={"spec": {"label": "x", "type": "shell"}})
        assert response.status_code == 404

    def test_delete_requires_confirmation(self, client, workspace):
        assert client.delete("/api/configurations/launch-0").status_code == 400
        assert len(read_json(workspace / ".vscode" / "launch.json")["configurations"]) == 2

    def test_delete(self, client, workspace):
        response = client.delete("/api/configurations/launch-0", params={"confirm": "true"})
        assert response.status_code == 200
        configs = read_json(workspace / ".vscode" / "launch.json")["configurations"]
        assert [c["name"] for c in configs] == ["Attach"]
        assert client.get("/api/configurations/launch-0").json()["display_name"] == "Attach"

    def test_malformed_file_on_update(self, client, workspace):
        (workspace / ".vscode" / "tasks.json").write_text("{ broken", encoding="utf-8")
        response = client.put("/api/configurations/task-0", json={"spec": {"label": "x", "type": "shell"}})
        assert response.status_code == 422

    def test_reload(self, client, workspace):
        write_tasks(workspace, [])
        assert client.post("/api/reload").json()["count"] == 2


class TestOtherEndpoints:
    """Tests for task, session and health endpoints"""

    def test_task_logs(self, client):
        assert client.get("/api/tasks/build/logs").json() == {"label": "build", "logs": "hello\n"}

    def test_stop_task_not_running(self, client):
        assert client.post("/api/tasks/build/stop").status_code == 404

    def test_session_lifecycle(self, client):
        assert client.get("/api/session").json()["session"] is None

        opened = client.post("/api/session", json={"identity": "launch-0", "edit": True}).json()["session"]
        assert opened["editing"] is True
        assert opened["original"]["program"] == "server.js"

        reopened = client.post("/api/session", json={}).json()["session"]
        assert reopened["selected"] == "launch-0"

        assert client.delete("/api/session").json()["closed"] is True

    def test_edit_without_selection(self, client):
        assert client.post("/api/session", json={"edit": True}).status_code == 400

    def test_health(self, client, workspace):
        body = client.get("/api/health").json()
        assert body["status"] == "ok"
        assert body["workspace"] == str(workspace.resolve())


def test_no_workspace_create_conflict(tmp_path, launcher):
    app = create_app(Settings(workspace=str(tmp_path / "missing")), launcher=launcher, runner=Mock())
    client = TestClient(app)
    assert client.get("/api/configurations").json() == {"configurations": []}
    assert client.post("/api/configurations", json={"kind": "launch"}).status_code == 409


def test_find_free_port_skips_busy_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as busy:
        busy.bind(("127.0.0.1", 0))
        busy.listen()
        busy_port = busy.getsockname()[1]

        port = find_free_port("127.0.0.1", busy_port)

    assert port is not None
    assert busy_port < port <= busy_port + 20
