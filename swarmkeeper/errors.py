"""
Swarmkeeper errors.
"""

from datetime import timedelta

from .durations import format_duration


class SwarmkeeperError(Exception):
    """Base exception for all Swarmkeeper errors."""
    pass


class ConfigurationError(SwarmkeeperError):
    """Errors in configuration or resource definitions."""
    pass


class ReplicaCountError(ConfigurationError):
    """A service expected to be replicated carries no replica count."""

    def __init__(self, service_id: str):
        self.service_id = service_id
        super().__init__(f"no replica count for service {service_id}")


class DockerApiError(SwarmkeeperError):
    """A call against the Docker daemon failed."""

    def __init__(self, message: str, command: list[str] | None = None,
                 returncode: int | None = None, stderr: str = ""):
        self.command = command or []
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message)


class ConvergenceError(SwarmkeeperError):
    """A service did not reach its desired state.

    Attributes:
        service_id: ID of the service that failed to converge
        timeout: Configured convergence timeout
    """

    def __init__(self, message: str, service_id: str, timeout: timedelta):
        self.service_id = service_id
        self.timeout = timeout
        super().__init__(message)


class DidNotConvergeError(ConvergenceError):
    """The convergence timeout elapsed before the service converged."""

    def __init__(self, service_id: str, timeout: timedelta):
        super().__init__(
            f"Service with ID ({service_id}) did not converge after "
            f"{format_duration(timeout)}",
            service_id,
            timeout,
        )


class ServiceRollbackError(ConvergenceError):
    """The update was rolled back by the swarm."""

    def __init__(self, service_id: str, timeout: timedelta, message: str = ""):
        self.update_message = message
        super().__init__(f"service rollback completed: {message}", service_id, timeout)


class ServiceUpdatePausedError(ConvergenceError):
    """The swarm paused the update (or its rollback) and needs an operator."""

    def __init__(self, service_id: str, timeout: timedelta, message: str = "",
                 rollback: bool = False):
        self.update_message = message
        self.rollback = rollback
        kind = "rollback" if rollback else "update"
        super().__init__(f"service {kind} paused: {message}", service_id, timeout)


class CompensationError(SwarmkeeperError):
    """Removing a service that failed to converge failed as well.

    Both the convergence failure and the removal failure are kept.
    """

    def __init__(self, service_id: str, original: Exception, cleanup: Exception):
        self.service_id = service_id
        self.original = original
        self.cleanup = cleanup
        super().__init__(
            f"failed to remove service {service_id} after it did not converge "
            f"({original}): {cleanup}"
        )
