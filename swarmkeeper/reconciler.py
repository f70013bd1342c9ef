"""
Swarmkeeper Reconciler - moves swarm services to their declared state.

Apply: find service by name → create or update → converge (optional)
Destroy: find service by name → remove service → reap its containers (optional)

Convergence is opt-in per resource through ``converge_config``; without it
every mutation returns as soon as the daemon accepted it.
"""

import logging
import time
from collections.abc import Callable
from typing import Any, Optional

from .client.base import SwarmClient
from .client.docker_cli import DockerCliClient
from .converge.config import ConvergeConfig
from .converge.poller import ConvergencePoller, PollResult
from .converge.progress import ProgressReporter, log_progress
from .converge.states import TaskState
from .durations import format_duration
from .errors import DockerApiError
from .models import Service
from .resources.service import ServiceResource
from .settings import get_settings

logger = logging.getLogger(__name__)


def _is_ignorable(error: Exception, *messages: str) -> bool:
    text = str(error)
    return any(message in text for message in messages)


class ServiceReconciler:
    """Create, update, converge and remove swarm services."""

    def __init__(
        self,
        client: Optional[SwarmClient] = None,
        reporter: ProgressReporter = log_progress,
        poll_interval: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize ServiceReconciler.

        Args:
            client: Daemon client (defaults to the docker CLI client)
            reporter: Receives convergence progress
            poll_interval: Seconds between convergence polls (overrides settings)
            clock: Monotonic clock used for convergence deadlines
            sleep: Sleep function used between polls
        """
        settings = get_settings()
        self.client = client if client is not None else DockerCliClient()
        self.reporter = reporter
        self.poll_interval = poll_interval if poll_interval is not None else settings.poll_interval
        self.clock = clock
        self.sleep = sleep

    # -- lifecycle -----------------------------------------------------------

    def create(self, resource: ServiceResource) -> str:
        """Create the service and, if configured, wait for it to converge.

        A service that does not converge is removed again before the error
        is raised.

        Returns:
            str: ID of the new service
        """
        service_id = self.client.create_service(resource.to_service_spec())
        logger.info(f"Created service '{resource.name}' with ID: {service_id}")

        if resource.converge_config is not None:
            self.converge(
                service_id,
                resource.converge_config,
                compensate=lambda: self.delete(service_id, resource),
            )

        return service_id

    def update(self, service_id: str, resource: ServiceResource) -> list[str]:
        """Update the service and, if configured, wait for the update to complete.

        Returns:
            list[str]: Warnings reported by the daemon
        """
        service = self.client.inspect_service(service_id)
        warnings = self.client.update_service(service_id, service.version, resource.to_service_spec())
        if warnings:
            logger.info(f"Warning while updating Service '{service.id}': {warnings}")

        if resource.converge_config is not None:
            self.converge(service.id, resource.converge_config, update=True)

        return warnings

    def read(self, service_id: Optional[str] = None, name: Optional[str] = None) -> Optional[Service]:
        """Find a service by ID or name.

        Returns:
            The service, or None if it no longer exists
        """
        for service in self.client.list_services():
            if (service_id and service.id == service_id) or (name and service.spec.name == name):
                return service
        return None

    def delete(self, service_id: str, resource: Optional[ServiceResource] = None) -> None:
        """Remove the service.

        With a stop grace period on the resource, the containers of the
        service are collected first, since they are not listed anymore once
        the service is gone, then awaited for up to the grace period and
        force-removed.
        """
        grace_period = resource.stop_grace_period if resource is not None else None
        reap = grace_period is not None and grace_period.total_seconds() > 0

        container_ids = []
        if reap:
            for task in self.client.list_tasks(resource.name):
                container_id = task.container_id.strip()
                logger.info(
                    f"Found container with ID ['{container_id}'] in state '{task.state.value}' for destroying"
                )
                if container_id and task.state != TaskState.SHUTDOWN:
                    container_ids.append(container_id)

        logger.info(f"Deleting service with ID: '{service_id}'")
        try:
            self.client.remove_service(service_id)
        except DockerApiError as e:
            raise DockerApiError(
                f"Error deleting service with ID '{service_id}': {e}",
                e.command,
                e.returncode,
                e.stderr,
            ) from e

        for container_id in container_ids:
            self._reap_container(container_id, grace_period.total_seconds())

    def _reap_container(self, container_id: str, grace_seconds: float) -> None:
        logger.info(f"Waiting for container with ID: '{container_id}' to exit: max {grace_seconds}s")
        try:
            exit_code = self.client.wait_container(container_id, grace_seconds)
            logger.info(f"Container with ID '{container_id}' exited with code '{exit_code}'")
        except DockerApiError as e:
            # still running after the grace period, or already gone: removal is forced either way
            logger.info(f"Stopped waiting for container with ID '{container_id}': {e}")

        logger.info(f"Removing container with ID: '{container_id}'")
        try:
            self.client.remove_container(container_id)
        except DockerApiError as e:
            if not _is_ignorable(e, "No such container", "is already in progress"):
                raise DockerApiError(f"Error deleting container with ID '{container_id}': {e}") from e

    # -- convergence ---------------------------------------------------------

    def converge(
        self,
        service_id: str,
        config: ConvergeConfig,
        update: bool = False,
        compensate: Optional[Callable[[], None]] = None,
    ) -> PollResult:
        """Block until the service converged.

        Args:
            service_id: Service to wait for
            config: Delay and timeout
            update: Wait for an update instead of a create
            compensate: Called once if the wait fails

        Returns:
            PollResult: The successful terminal state

        Raises:
            ConvergenceError: If the service timed out, rolled back or paused
            CompensationError: If ``compensate`` failed as well
            DockerApiError: If a daemon call failed while polling
        """
        action = "updated" if update else "created"
        logger.info(
            f"Waiting for Service '{service_id}' to be {action} with timeout: "
            f"{format_duration(config.timeout)}"
        )
        poller = ConvergencePoller(
            self.client,
            service_id,
            config,
            update=update,
            interval=self.poll_interval,
            reporter=self.reporter,
            compensate=compensate,
            clock=self.clock,
            sleep=self.sleep,
        )
        result = poller.run()
        logger.info(f"State awaited: {result.state.value} after {poller.polls} polls")
        return result

    # -- declarative entry points -------------------------------------------

    def apply(self, resource: ServiceResource) -> dict[str, Any]:
        """Create the service if it does not exist yet, update it otherwise.

        Returns:
            Dict with the action taken, the service ID and daemon warnings
        """
        existing = self.read(name=resource.name)
        if existing is None:
            service_id = self.create(resource)
            return {"action": "create", "service_id": service_id, "warnings": []}

        warnings = self.update(existing.id, resource)
        return {"action": "update", "service_id": existing.id, "warnings": warnings}

    def destroy(self, resource: ServiceResource) -> dict[str, Any]:
        """Remove the service of ``resource`` if it exists.

        Returns:
            Dict telling whether a service was removed and its ID
        """
        existing = self.read(name=resource.name)
        if existing is None:
            logger.warning(f"Service '{resource.name}' not found, nothing to remove")
            return {"removed": False, "service_id": None}

        self.delete(existing.id, resource)
        return {"removed": True, "service_id": existing.id}
