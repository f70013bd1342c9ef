"""The daemon operations Swarmkeeper depends on."""

from typing import Optional, Protocol

from ..models import Node, Service, ServiceSpec, Task, Version


class SwarmClient(Protocol):
    """Calls against the Docker Engine/Swarm API.

    Every method raises ``DockerApiError`` when the daemon call fails.
    """

    def inspect_service(self, service_id: str) -> Service:
        ...

    def list_services(self) -> list[Service]:
        ...

    def list_tasks(self, service_id: str, desired_state: Optional[str] = None) -> list[Task]:
        ...

    def list_nodes(self) -> list[Node]:
        ...

    def create_service(self, spec: ServiceSpec) -> str:
        """Create a service and return its ID."""
        ...

    def update_service(self, service_id: str, version: Version, spec: ServiceSpec) -> list[str]:
        """Update a service and return the daemon's warnings."""
        ...

    def remove_service(self, service_id: str) -> None:
        ...

    def wait_container(self, container_id: str, timeout: float) -> int:
        """Block until the container is removed, return its exit code."""
        ...

    def remove_container(self, container_id: str) -> None:
        ...


def get_active_nodes(client: SwarmClient) -> set[str]:
    """Return the IDs of all swarm nodes that are not down."""
    return {node.id for node in client.list_nodes() if not node.is_down}
