"""Tests for the Swarmkeeper CLI."""

import json
from datetime import timedelta
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from swarmkeeper import __version__
from swarmkeeper.cli import app
from swarmkeeper.converge.poller import ConvergeState, PollResult
from swarmkeeper.errors import DidNotConvergeError, ServiceRollbackError
from tests.conftest import FakeSwarmClient, Snapshot, make_service, make_task

runner = CliRunner()


@pytest.fixture
def resource_file(tmp_path):
    path = tmp_path / "web.json"
    path.write_text(json.dumps({
        "name": "web",
        "image": "nginx:alpine",
        "replicas": 2,
        "converge_config": {"delay": "1s", "timeout": "1m"},
    }))
    return path


@pytest.fixture
def reconciler():
    with patch("swarmkeeper.cli.ServiceReconciler") as mock_cls:
        yield mock_cls.return_value


def test_apply_create(resource_file, reconciler):
    reconciler.apply.return_value = {"action": "create", "service_id": "svc-1", "warnings": []}

    result = runner.invoke(app, ["apply", str(resource_file)])

    assert result.exit_code == 0
    assert "Service created" in result.output
    resource = reconciler.apply.call_args.args[0]
    assert resource.name == "web"
    assert resource.converge_config.timeout == timedelta(minutes=1)


def test_apply_prints_warnings(resource_file, reconciler):
    reconciler.apply.return_value = {
        "action": "update",
        "service_id": "svc-1",
        "warnings": ["image nginx:alpine could not be accessed"],
    }

    result = runner.invoke(app, ["apply", str(resource_file)])

    assert result.exit_code == 0
    assert "Service updated" in result.output
    assert "could not be accessed" in result.output


def test_apply_timeout_fails(resource_file, reconciler):
    reconciler.apply.side_effect = DidNotConvergeError("svc-1", timedelta(minutes=1))

    result = runner.invoke(app, ["apply", str(resource_file)])

    assert result.exit_code == 1
    assert "did not converge after 1m0s" in result.output
    assert "Hint" in result.output


def test_apply_missing_file(tmp_path, reconciler):
    result = runner.invoke(app, ["apply", str(tmp_path / "missing.json")])

    assert result.exit_code == 1
    assert "missing.json" in result.output
    reconciler.apply.assert_not_called()


def test_apply_invalid_resource(tmp_path, reconciler):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"name": "agent", "image": "agent", "mode": "global",
                                "converge_config": {"timeout": "1m"}}))

    result = runner.invoke(app, ["apply", str(path)])

    assert result.exit_code == 1
    assert "Invalid resource" in result.output


def test_destroy(resource_file, reconciler):
    reconciler.destroy.return_value = {"removed": True, "service_id": "svc-1"}

    result = runner.invoke(app, ["destroy", str(resource_file)])

    assert result.exit_code == 0
    assert "Service removed" in result.output


def test_converge_options(reconciler):
    reconciler.converge.return_value = PollResult(ConvergeState.COMPLETED)

    result = runner.invoke(app, ["converge", "svc-1", "--update", "--delay", "0s", "--timeout", "30s"])

    assert result.exit_code == 0
    assert "completed" in result.output
    service_id, config = reconciler.converge.call_args.args
    assert service_id == "svc-1"
    assert config.delay == timedelta(0)
    assert config.timeout == timedelta(seconds=30)
    assert reconciler.converge.call_args.kwargs["update"] is True


def test_converge_rollback_fails(reconciler):
    reconciler.converge.side_effect = ServiceRollbackError("svc-1", timedelta(minutes=3), "rolled back")

    result = runner.invoke(app, ["converge", "svc-1", "--update"])

    assert result.exit_code == 1
    assert "service rollback completed" in result.output
    assert "swarmkeeper tasks svc-1" in result.output


def test_tasks_table(reconciler):
    reconciler.client = FakeSwarmClient([
        Snapshot(make_service(replicas=2), [make_task("task-a", 1), make_task("task-b", 2, state="starting")]),
    ])

    result = runner.invoke(app, ["tasks", "svc-1"])

    assert result.exit_code == 0
    assert "task-a" in result.output
    assert "starting" in result.output
    assert "Replicas: 2" in result.output


def test_version():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert __version__ in result.output
