"""
Pytest configuration and fixtures for Swarmkeeper tests.

Convergence tests run against an in-memory swarm: each poll of the fake
client serves the next scripted snapshot of the service and its tasks,
and a fake clock advances only when the poller sleeps.
"""

from dataclasses import dataclass, field
from typing import Optional

import pytest

from swarmkeeper.errors import DockerApiError
from swarmkeeper.models import Node, Service, ServiceSpec, Task, Version


def make_task(
    task_id: str,
    slot: int,
    state: str = "running",
    desired: str = "running",
    node: str = "node-1",
    container: str = "",
    service_id: str = "svc-1",
) -> Task:
    """Build a task the way the daemon reports it."""
    status = {"State": state, "Message": state}
    if container:
        status["ContainerStatus"] = {"ContainerID": container}
    return Task.model_validate({
        "ID": task_id,
        "ServiceID": service_id,
        "Slot": slot,
        "NodeID": node,
        "DesiredState": desired,
        "Status": status,
    })


def make_service(
    service_id: str = "svc-1",
    replicas: Optional[int] = 2,
    update_state: Optional[str] = None,
    update_message: str = "",
    global_mode: bool = False,
    name: str = "web",
    version: int = 10,
) -> Service:
    """Build a service the way the daemon reports it."""
    if global_mode:
        mode = {"Global": {}}
    else:
        mode = {"Replicated": {"Replicas": replicas} if replicas is not None else {}}
    data = {
        "ID": service_id,
        "Version": {"Index": version},
        "Spec": {
            "Name": name,
            "TaskTemplate": {"ContainerSpec": {"Image": "nginx:alpine"}},
            "Mode": mode,
        },
    }
    if update_state is not None:
        data["UpdateStatus"] = {"State": update_state, "Message": update_message}
    return Service.model_validate(data)


def make_node(node_id: str, state: str = "ready") -> Node:
    return Node.model_validate({"ID": node_id, "Status": {"State": state}})


@dataclass
class Snapshot:
    """What the swarm reports during one poll."""
    service: Service
    tasks: list[Task] = field(default_factory=list)


class FakeSwarmClient:
    """In-memory ``SwarmClient`` serving scripted snapshots.

    Each ``inspect_service`` call moves to the next snapshot, the last one
    is repeated once the script is exhausted.
    """

    def __init__(self, snapshots: Optional[list[Snapshot]] = None,
                 nodes: Optional[list[Node]] = None):
        self.snapshots = snapshots or [Snapshot(make_service())]
        self.nodes = nodes if nodes is not None else [make_node("node-1"), make_node("node-2")]
        self.position = -1
        self.created: list[ServiceSpec] = []
        self.updated: list[tuple[str, Version, ServiceSpec]] = []
        self.removed: list[str] = []
        self.waited: list[tuple[str, float]] = []
        self.removed_containers: list[str] = []
        self.task_filters: list[tuple[str, Optional[str]]] = []
        self.services: list[Service] = []
        self.created_id = "svc-1"
        self.update_warnings: list[str] = []
        self.remove_error: Optional[Exception] = None
        self.wait_error: Optional[Exception] = None
        self.container_remove_error: Optional[Exception] = None
        self.inspect_error: Optional[Exception] = None

    @property
    def current(self) -> Snapshot:
        return self.snapshots[max(0, min(self.position, len(self.snapshots) - 1))]

    def inspect_service(self, service_id: str) -> Service:
        if self.inspect_error is not None:
            raise self.inspect_error
        self.position += 1
        return self.current.service

    def list_services(self) -> list[Service]:
        return list(self.services)

    def list_tasks(self, service_id: str, desired_state: Optional[str] = None) -> list[Task]:
        self.task_filters.append((service_id, desired_state))
        return list(self.current.tasks)

    def list_nodes(self) -> list[Node]:
        return list(self.nodes)

    def create_service(self, spec: ServiceSpec) -> str:
        self.created.append(spec)
        return self.created_id

    def update_service(self, service_id: str, version: Version, spec: ServiceSpec) -> list[str]:
        self.updated.append((service_id, version, spec))
        return list(self.update_warnings)

    def remove_service(self, service_id: str) -> None:
        self.removed.append(service_id)
        if self.remove_error is not None:
            raise self.remove_error

    def wait_container(self, container_id: str, timeout: float) -> int:
        self.waited.append((container_id, timeout))
        if self.wait_error is not None:
            raise self.wait_error
        return 0

    def remove_container(self, container_id: str) -> None:
        self.removed_containers.append(container_id)
        if self.container_remove_error is not None:
            raise self.container_remove_error


class FakeClock:
    """Monotonic clock that only moves when ``sleep`` is called."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    """Provide a fake clock."""
    return FakeClock()


@pytest.fixture
def daemon_error():
    """Factory for daemon errors."""
    def _make(message: str = "Cannot connect to the Docker daemon") -> DockerApiError:
        return DockerApiError(message, ["docker"], 1, message)
    return _make
