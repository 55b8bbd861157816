"""End-to-end tests for the admin API behind the request gate."""
import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock, Mock

from blockhaven.dependencies import (
    get_command_executor,
    get_game_status_probe,
    get_instance_controller,
    get_log_source,
    get_settings,
)
from blockhaven.domain.interfaces import GameStatus, InstanceDescription, LogEntry, StateChange
from blockhaven.errors import (
    ExecutionTimeout,
    InstanceNotFound,
    LogSourceNotConfigured,
    UpstreamUnavailable,
)
from blockhaven.main import app
from blockhaven.settings import Settings

INSTANCE_ID = "i-0abc123"


@pytest.fixture
def authed(client, session_token):
    client.cookies.set("blockhaven_session", session_token)
    app.dependency_overrides[get_settings] = lambda: Settings(EC2_INSTANCE_ID=INSTANCE_ID, MC_SERVER_IP=None)
    return client


@pytest.fixture
def controller():
    mock = Mock()
    mock.describe = AsyncMock()
    mock.start = AsyncMock()
    mock.stop = AsyncMock()
    app.dependency_overrides[get_instance_controller] = lambda: mock
    return mock


@pytest.fixture
def probe():
    mock = Mock()
    mock.probe = AsyncMock(return_value=GameStatus(
        online=True, players_online=2, players_max=20, player_list=["Steve", "Alex"],
        version="1.20.4", motd="BlockHaven",
    ))
    app.dependency_overrides[get_game_status_probe] = lambda: mock
    return mock


@pytest.fixture
def executor():
    mock = Mock()
    mock.execute = AsyncMock(return_value="There are 3 players")
    app.dependency_overrides[get_command_executor] = lambda: mock
    return mock


@pytest.fixture
def log_source():
    mock = Mock()
    mock.fetch = AsyncMock(return_value=[])
    app.dependency_overrides[get_log_source] = lambda: mock
    return mock


def emitted(mock_sink):
    return [c.args[0] for c in mock_sink.emit.await_args_list]


class TestServerStatus:
    def test_running_instance_includes_game_status(self, authed, controller, probe):
        controller.describe.return_value = InstanceDescription(
            instance_id=INSTANCE_ID,
            state="running",
            public_ip="3.14.15.92",
            launch_time=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )

        resp = authed.get("/api/admin/server/status")

        assert resp.status_code == 200
        data = resp.json()
        assert data["ec2"]["state"] == "running"
        assert data["ec2"]["publicIp"] == "3.14.15.92"
        assert data["ec2"]["instanceId"] == INSTANCE_ID
        assert data["ec2"]["launchTime"] == "2024-01-01T00:00:00.000Z"
        assert data["ec2"]["uptimeSeconds"] > 0
        assert data["minecraft"] == {
            "online": True,
            "players": {"online": 2, "max": 20, "list": ["Steve", "Alex"]},
            "version": "1.20.4",
            "motd": "BlockHaven",
        }
        assert data["timestamp"].endswith("Z")
        probe.probe.assert_awaited_once_with("3.14.15.92")

    def test_stopped_instance_skips_probe(self, authed, controller, probe):
        controller.describe.return_value = InstanceDescription(instance_id=INSTANCE_ID, state="stopped")

        data = authed.get("/api/admin/server/status").json()

        assert data["ec2"]["state"] == "stopped"
        assert data["ec2"]["uptimeSeconds"] is None
        assert data["minecraft"] is None
        probe.probe.assert_not_awaited()

    def test_server_ip_override(self, authed, controller, probe):
        app.dependency_overrides[get_settings] = lambda: Settings(
            EC2_INSTANCE_ID=INSTANCE_ID, MC_SERVER_IP="play.blockhaven.gg"
        )
        controller.describe.return_value = InstanceDescription(
            instance_id=INSTANCE_ID, state="running", public_ip="3.14.15.92"
        )

        authed.get("/api/admin/server/status")

        probe.probe.assert_awaited_once_with("play.blockhaven.gg")

    def test_instance_not_found(self, authed, controller, probe):
        controller.describe.side_effect = InstanceNotFound("Instance not found")

        resp = authed.get("/api/admin/server/status")

        assert resp.status_code == 404
        assert resp.json() == {"error": "Instance not found", "instanceId": INSTANCE_ID}

    def test_control_plane_error(self, authed, controller, probe):
        controller.describe.side_effect = UpstreamUnavailable("UnauthorizedOperation")

        resp = authed.get("/api/admin/server/status")

        assert resp.status_code == 500
        assert resp.json() == {"error": "Failed to get server status", "message": "UnauthorizedOperation"}


class TestPowerState:
    def test_start_is_audited(self, authed, controller, mock_sink):
        controller.start.return_value = StateChange(INSTANCE_ID, current_state="pending", previous_state="stopped")

        resp = authed.post("/api/admin/server/start")

        assert resp.status_code == 200
        assert resp.json() == {
            "success": True,
            "message": "Server is starting. This may take 30-60 seconds.",
            "currentState": "pending",
            "previousState": "stopped",
        }
        records = emitted(mock_sink)
        assert len(records) == 1
        assert records[0]["action"] == "server_start"
        assert records[0]["success"] is True
        assert records[0]["username"] == "steve"
        assert records[0]["details"] == {
            "previousState": "stopped", "currentState": "pending", "instanceId": INSTANCE_ID,
        }

    def test_start_when_already_running(self, authed, controller):
        controller.start.return_value = StateChange(INSTANCE_ID, current_state="running", previous_state="running")
        assert authed.post("/api/admin/server/start").json()["message"] == "Server is already running"

    def test_stop_message(self, authed, controller, mock_sink):
        controller.stop.return_value = StateChange(INSTANCE_ID, current_state="stopping", previous_state="running")

        resp = authed.post("/api/admin/server/stop")

        assert resp.json()["message"] == "Server is stopping. World data is being saved."
        assert emitted(mock_sink)[0]["action"] == "server_stop"

    def test_unlisted_state_uses_generic_message(self, authed, controller):
        controller.stop.return_value = StateChange(INSTANCE_ID, current_state="shutting-down", previous_state="running")
        assert authed.post("/api/admin/server/stop").json()["message"] == "Server state changed to shutting-down"

    def test_start_failure_is_audited(self, authed, controller, mock_sink):
        controller.start.side_effect = UpstreamUnavailable("IncorrectInstanceState")

        resp = authed.post("/api/admin/server/start")

        assert resp.status_code == 500
        assert resp.json() == {
            "success": False,
            "error": "Failed to start server",
            "message": "IncorrectInstanceState",
        }
        record = emitted(mock_sink)[0]
        assert record["success"] is False
        assert record["details"]["error"] == "IncorrectInstanceState"


class TestLogs:
    def test_default_count(self, authed, log_source):
        log_source.fetch.return_value = [
            LogEntry(timestamp="2024-01-01T00:00:00.000Z", message="[Server thread/INFO]: Done", level="INFO"),
            LogEntry(timestamp="2024-01-01T00:00:01.000Z", message="[Server thread/WARN]: Lag", level="WARN"),
        ]

        resp = authed.get("/api/admin/logs")

        assert resp.status_code == 200
        data = resp.json()
        assert data["count"] == 2
        assert data["logs"][1] == {
            "timestamp": "2024-01-01T00:00:01.000Z",
            "message": "[Server thread/WARN]: Lag",
            "level": "WARN",
        }
        assert "message" not in data
        log_source.fetch.assert_awaited_once_with(100)

    def test_allowed_count(self, authed, log_source):
        authed.get("/api/admin/logs?count=250")
        log_source.fetch.assert_awaited_once_with(250)

    @pytest.mark.parametrize("count", ["42", "abc", "1000"])
    def test_invalid_count(self, authed, log_source, count):
        resp = authed.get(f"/api/admin/logs?count={count}")
        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid count. Must be one of: 100, 250, 500"}
        log_source.fetch.assert_not_awaited()

    def test_log_group_missing(self, authed, log_source):
        log_source.fetch.side_effect = LogSourceNotConfigured("Log group not configured")

        resp = authed.get("/api/admin/logs")

        assert resp.status_code == 200
        data = resp.json()
        assert data["logs"] == []
        assert data["count"] == 0
        assert data["message"] == "CloudWatch logs not configured. See setup documentation."

    def test_log_source_unavailable(self, authed, log_source):
        log_source.fetch.side_effect = UpstreamUnavailable("ThrottlingException")
        assert authed.get("/api/admin/logs").status_code == 503


class TestRcon:
    def test_list_end_to_end(self, authed, executor, mock_sink):
        resp = authed.post("/api/admin/rcon", json={"command": "list"})

        assert resp.status_code == 200
        assert resp.json() == {"success": True, "output": "There are 3 players"}
        executor.execute.assert_awaited_once_with("list", None)

        records = emitted(mock_sink)
        assert len(records) == 1
        record = records[0]
        assert record["action"] == "rcon_command"
        assert record["success"] is True
        assert record["userId"] == "1001"
        assert record["details"] == {"command": "list", "output": "There are 3 players"}
        assert record["requestId"]

    def test_rejected_command_is_audited_and_not_executed(self, authed, executor, mock_sink):
        resp = authed.post("/api/admin/rcon", json={"command": "op", "args": "steve"})

        assert resp.status_code == 400
        assert resp.json()["success"] is False
        assert resp.json()["error"].startswith("Command not allowed")
        executor.execute.assert_not_awaited()
        record = emitted(mock_sink)[0]
        assert record["success"] is False
        assert record["details"]["command"] == "op"

    def test_missing_command(self, authed, executor, mock_sink):
        resp = authed.post("/api/admin/rcon", json={"args": "hello"})
        assert resp.status_code == 400
        assert resp.json() == {"success": False, "error": "Command is required"}
        mock_sink.emit.assert_not_awaited()

    def test_malformed_body(self, authed, executor):
        resp = authed.post(
            "/api/admin/rcon", content="{not json", headers={"Content-Type": "application/json"}
        )
        assert resp.status_code == 400
        assert resp.json() == {"success": False, "error": "Invalid request body"}

    def test_execution_timeout(self, authed, executor, mock_sink):
        executor.execute.side_effect = ExecutionTimeout("Command timed out waiting for result")

        resp = authed.post("/api/admin/rcon", json={"command": "save-all"})

        assert resp.status_code == 500
        assert resp.json() == {"success": False, "error": "Command timed out waiting for result"}
        assert emitted(mock_sink)[0]["success"] is False

    def test_unexpected_executor_error_is_generic(self, authed, executor):
        executor.execute.side_effect = RuntimeError("socket closed")

        resp = authed.post("/api/admin/rcon", json={"command": "list"})

        assert resp.status_code == 500
        assert resp.json() == {"success": False, "error": "Command execution failed"}

    def test_long_output_is_truncated_in_audit(self, authed, executor, mock_sink):
        executor.execute.return_value = "x" * 500

        resp = authed.post("/api/admin/rcon", json={"command": "whitelist list"})

        assert resp.json()["output"] == "x" * 500
        assert len(emitted(mock_sink)[0]["details"]["output"]) == 200
