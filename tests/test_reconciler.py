"""Tests for the ServiceReconciler."""

from unittest.mock import Mock

import pytest

from swarmkeeper.converge.config import ConvergeConfig
from swarmkeeper.converge.poller import ConvergeState
from swarmkeeper.errors import (
    CompensationError,
    DidNotConvergeError,
    DockerApiError,
    ServiceRollbackError,
)
from swarmkeeper.reconciler import ServiceReconciler
from swarmkeeper.resources import ServiceResource
from tests.conftest import FakeSwarmClient, Snapshot, make_service, make_task


def _reconciler(client, clock):
    return ServiceReconciler(
        client=client,
        reporter=Mock(),
        poll_interval=5.0,
        clock=clock,
        sleep=clock.sleep,
    )


def _resource(**kwargs):
    defaults = {"name": "web", "image": "nginx:alpine", "replicas": 2}
    defaults.update(kwargs)
    return ServiceResource(**defaults)


class TestCreate:

    def test_create_without_converge_returns_immediately(self, clock):
        client = FakeSwarmClient()

        service_id = _reconciler(client, clock).create(_resource())

        assert service_id == "svc-1"
        assert client.created[0].name == "web"
        assert client.position == -1
        assert clock.sleeps == []

    def test_create_waits_for_replicas(self, clock):
        service = make_service(replicas=2)
        client = FakeSwarmClient([
            Snapshot(service, [make_task("a", 1, state="starting")]),
            Snapshot(service, [make_task("a", 1), make_task("b", 2)]),
        ])
        resource = _resource(converge_config={"delay": "1s", "timeout": "1m"})

        assert _reconciler(client, clock).create(resource) == "svc-1"
        assert clock.sleeps == [1.0, 5.0]
        assert client.removed == []

    def test_create_timeout_removes_service_once(self, clock):
        client = FakeSwarmClient([Snapshot(make_service(replicas=2), [])])
        resource = _resource(converge_config={"delay": "0s", "timeout": "20s"})

        with pytest.raises(DidNotConvergeError):
            _reconciler(client, clock).create(resource)

        assert client.removed == ["svc-1"]

    def test_create_timeout_with_failed_removal(self, clock, daemon_error):
        client = FakeSwarmClient([Snapshot(make_service(replicas=2), [])])
        client.remove_error = daemon_error("service is locked")
        resource = _resource(converge_config={"delay": "0s", "timeout": "10s"})

        with pytest.raises(CompensationError) as excinfo:
            _reconciler(client, clock).create(resource)

        assert isinstance(excinfo.value.original, DidNotConvergeError)
        assert "Error deleting service with ID 'svc-1'" in str(excinfo.value.cleanup)
        assert client.removed == ["svc-1"]


class TestUpdate:

    def test_update_passes_current_version(self, clock):
        client = FakeSwarmClient([Snapshot(make_service(version=42), [])])
        client.update_warnings = ["image could not be accessed"]

        warnings = _reconciler(client, clock).update("svc-1", _resource(image="nginx:1.27"))

        assert warnings == ["image could not be accessed"]
        service_id, version, spec = client.updated[0]
        assert service_id == "svc-1"
        assert version.index == 42
        assert spec.task_template.container_spec.image == "nginx:1.27"

    def test_update_waits_for_completion(self, clock):
        client = FakeSwarmClient([
            Snapshot(make_service(), []),
            Snapshot(make_service(update_state="updating"), [make_task("a", 1)]),
            Snapshot(make_service(update_state="completed"), []),
        ])
        resource = _resource(converge_config={"delay": "0s", "timeout": "1m"})

        _reconciler(client, clock).update("svc-1", resource)

        assert client.position == 2

    def test_update_rollback_keeps_service(self, clock):
        client = FakeSwarmClient([
            Snapshot(make_service(), []),
            Snapshot(make_service(update_state="rollback_completed", update_message="rolled back"), []),
        ])
        resource = _resource(converge_config={"delay": "0s", "timeout": "1m"})

        with pytest.raises(ServiceRollbackError):
            _reconciler(client, clock).update("svc-1", resource)

        assert client.removed == []


class TestApplyDestroy:

    def test_apply_creates_missing_service(self, clock):
        client = FakeSwarmClient()

        result = _reconciler(client, clock).apply(_resource())

        assert result == {"action": "create", "service_id": "svc-1", "warnings": []}
        assert len(client.created) == 1

    def test_apply_updates_existing_service(self, clock):
        client = FakeSwarmClient()
        client.services = [make_service(service_id="svc-9", name="web")]

        result = _reconciler(client, clock).apply(_resource())

        assert result["action"] == "update"
        assert result["service_id"] == "svc-9"
        assert client.created == []
        assert client.updated[0][0] == "svc-9"

    def test_read_by_id_or_name(self, clock):
        client = FakeSwarmClient()
        client.services = [make_service(service_id="a", name="api"), make_service(service_id="b", name="web")]
        reconciler = _reconciler(client, clock)

        assert reconciler.read(name="web").id == "b"
        assert reconciler.read(service_id="a").spec.name == "api"
        assert reconciler.read(name="db") is None

    def test_destroy_missing_service(self, clock):
        client = FakeSwarmClient()

        assert _reconciler(client, clock).destroy(_resource()) == {"removed": False, "service_id": None}
        assert client.removed == []

    def test_destroy_existing_service(self, clock):
        client = FakeSwarmClient()
        client.services = [make_service(service_id="svc-3", name="web")]

        assert _reconciler(client, clock).destroy(_resource()) == {"removed": True, "service_id": "svc-3"}
        assert client.removed == ["svc-3"]


class TestDelete:

    def test_delete_without_grace_period_does_not_reap(self, clock):
        client = FakeSwarmClient([Snapshot(make_service(), [make_task("a", 1, container="c1")])])

        _reconciler(client, clock).delete("svc-1", _resource())

        assert client.removed == ["svc-1"]
        assert client.task_filters == []
        assert client.waited == []

    def test_delete_reaps_containers_within_grace_period(self, clock):
        tasks = [
            make_task("a", 1, container="c1"),
            make_task("b", 2, state="shutdown", desired="shutdown", container="c2"),
            make_task("c", 3, state="pending", node=""),
        ]
        client = FakeSwarmClient([Snapshot(make_service(), tasks)])

        _reconciler(client, clock).delete("svc-1", _resource(stop_grace_period="10s"))

        assert client.task_filters == [("web", None)]
        assert client.removed == ["svc-1"]
        assert client.waited == [("c1", 10.0)]
        assert client.removed_containers == ["c1"]

    def test_delete_ignores_containers_already_gone(self, clock, daemon_error):
        client = FakeSwarmClient([Snapshot(make_service(), [make_task("a", 1, container="c1")])])
        client.wait_error = daemon_error("Error response from daemon: No such container: c1")
        client.container_remove_error = daemon_error("removal of container c1 is already in progress")

        _reconciler(client, clock).delete("svc-1", _resource(stop_grace_period="5s"))

        assert client.removed_containers == ["c1"]

    def test_delete_removes_container_still_running_after_grace_period(self, clock, daemon_error):
        """A wait that runs out of time does not keep the container alive."""
        client = FakeSwarmClient([Snapshot(make_service(), [make_task("a", 1, container="c1")])])
        client.wait_error = daemon_error("'docker wait c1' timed out after 5.0s")

        _reconciler(client, clock).delete("svc-1", _resource(stop_grace_period="5s"))

        assert client.waited == [("c1", 5.0)]
        assert client.removed_containers == ["c1"]

    def test_delete_reports_other_container_errors(self, clock, daemon_error):
        client = FakeSwarmClient([Snapshot(make_service(), [make_task("a", 1, container="c1")])])
        client.container_remove_error = daemon_error("permission denied")

        with pytest.raises(DockerApiError, match="Error deleting container with ID 'c1'"):
            _reconciler(client, clock).delete("svc-1", _resource(stop_grace_period="5s"))

    def test_delete_wraps_service_removal_error(self, clock, daemon_error):
        client = FakeSwarmClient()
        client.remove_error = daemon_error("service svc-1 not found")

        with pytest.raises(DockerApiError, match="Error deleting service with ID 'svc-1'"):
            _reconciler(client, clock).delete("svc-1")


def test_converge_returns_terminal_state(clock):
    client = FakeSwarmClient([Snapshot(make_service(replicas=1), [make_task("a", 1)])])

    result = _reconciler(client, clock).converge("svc-1", ConvergeConfig(delay=0, timeout=60))

    assert result.state == ConvergeState.RUNNING
