"""
Convergence poller - waits for a created or updated service to converge.

The poller is an explicit state machine. Every tick inspects the service,
lists its tasks desired to run and the active nodes, and moves to one of
the states of ``ConvergeState``:

- creating / updating: not converged yet, poll again after the interval
- running (create) / completed (update): converged
- rollback_completed, paused, rollback_paused: the swarm gave up on the
  update, reported as a failure of the update
- timeout: the time budget ran out

The loop runs on the caller's thread. Errors from the daemon abort it
immediately; they are not retried.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..client.base import SwarmClient, get_active_nodes
from ..errors import (
    CompensationError,
    ConvergenceError,
    DidNotConvergeError,
    ServiceRollbackError,
    ServiceUpdatePausedError,
    SwarmkeeperError,
)
from ..models import UpdateState
from ..settings import get_settings
from .config import ConvergeConfig
from .progress import ConvergenceSession, ProgressReporter, log_progress
from .slots import tasks_by_slot

logger = logging.getLogger(__name__)


class ConvergeState(str, Enum):
    """States of a convergence wait."""
    CREATING = "creating"
    UPDATING = "updating"
    RUNNING = "running"
    COMPLETED = "completed"
    ROLLBACK_COMPLETED = "rollback_completed"
    PAUSED = "paused"
    ROLLBACK_PAUSED = "rollback_paused"
    TIMEOUT = "timeout"

    @property
    def is_pending(self) -> bool:
        return self in (ConvergeState.CREATING, ConvergeState.UPDATING)

    @property
    def is_success(self) -> bool:
        return self in (ConvergeState.RUNNING, ConvergeState.COMPLETED)

    @property
    def is_failure(self) -> bool:
        return not (self.is_pending or self.is_success)


@dataclass
class PollResult:
    """Outcome of a single poll."""
    state: ConvergeState
    message: str = ""
    rollback: bool = False


class ConvergencePoller:
    """Polls a service until it converges, fails, or times out.

    Attributes:
        client: Daemon client
        service_id: Service to wait for
        config: Delay and timeout of the wait
        update: True when waiting for an update, False for a create
        interval: Seconds between polls
        compensate: Called once when a create-flow wait fails, e.g. to
            remove the half-created service
        session: Progress state shared across the polls of this wait
        state: Current state of the machine
        polls: Number of polls issued so far
    """

    def __init__(
        self,
        client: SwarmClient,
        service_id: str,
        config: ConvergeConfig,
        update: bool = False,
        interval: Optional[float] = None,
        reporter: ProgressReporter = log_progress,
        compensate: Optional[Callable[[], None]] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.service_id = service_id
        self.config = config
        self.update = update
        self.interval = get_settings().poll_interval if interval is None else interval
        self.compensate = compensate
        self.clock = clock
        self.sleep = sleep
        self.session = ConvergenceSession(service_id, reporter=reporter)
        self.state = ConvergeState.UPDATING if update else ConvergeState.CREATING
        self.polls = 0

    def poll_once(self) -> PollResult:
        """Fetch the current state of the service and classify it."""
        service = self.client.inspect_service(self.service_id)
        rollback = False
        message = ""

        if self.update and service.update_status is not None:
            update_state = service.update_status.state
            message = service.update_status.message
            logger.debug(f"update status: {update_state.value}")

            if update_state == UpdateState.COMPLETED:
                return PollResult(ConvergeState.COMPLETED, message)
            if update_state == UpdateState.ROLLBACK_STARTED:
                rollback = True
            elif update_state == UpdateState.ROLLBACK_COMPLETED:
                return PollResult(ConvergeState.ROLLBACK_COMPLETED, message, rollback=True)
            elif update_state == UpdateState.PAUSED:
                return PollResult(ConvergeState.PAUSED, message)
            elif update_state == UpdateState.ROLLBACK_PAUSED:
                return PollResult(ConvergeState.ROLLBACK_PAUSED, message, rollback=True)

        tasks = self.client.list_tasks(self.service_id, desired_state="running")
        active_nodes = get_active_nodes(self.client)
        slots = tasks_by_slot(tasks, active_nodes)

        if self.session.evaluate(service, slots, rollback):
            if not self.update:
                return PollResult(ConvergeState.RUNNING)
            # reaching the replica count while rolling back still fails the update
            if rollback:
                return PollResult(ConvergeState.ROLLBACK_COMPLETED, message, rollback=True)
            return PollResult(ConvergeState.COMPLETED, message)

        pending = ConvergeState.UPDATING if self.update else ConvergeState.CREATING
        return PollResult(pending, message, rollback=rollback)

    def run(self) -> PollResult:
        """Wait for the service to converge.

        Returns:
            PollResult: The successful terminal result

        Raises:
            DidNotConvergeError: If the timeout elapsed
            ServiceRollbackError: If the swarm rolled the update back
            ServiceUpdatePausedError: If the swarm paused the update or rollback
            CompensationError: If removing the service after a failed create failed
            DockerApiError: If a daemon call failed
        """
        try:
            return self._wait()
        except SwarmkeeperError as exc:
            if self.compensate is not None:
                self._compensate(exc)
            raise

    def _wait(self) -> PollResult:
        timeout = self.config.timeout.total_seconds()
        deadline = self.clock() + timeout

        delay = min(self.config.delay.total_seconds(), timeout)
        if delay > 0:
            self.sleep(delay)

        while True:
            result = self.poll_once()
            self.polls += 1
            self.state = result.state

            if result.state.is_success:
                logger.info(f"Service {self.service_id} converged: {result.state.value}")
                return result
            if result.state.is_failure:
                raise self._failure(result)

            remaining = deadline - self.clock()
            if remaining <= 0:
                self.state = ConvergeState.TIMEOUT
                raise DidNotConvergeError(self.service_id, self.config.timeout)
            self.sleep(min(self.interval, remaining))

    def _failure(self, result: PollResult) -> ConvergenceError:
        if result.state == ConvergeState.ROLLBACK_COMPLETED:
            return ServiceRollbackError(self.service_id, self.config.timeout, result.message)
        return ServiceUpdatePausedError(
            self.service_id,
            self.config.timeout,
            result.message,
            rollback=result.state == ConvergeState.ROLLBACK_PAUSED,
        )

    def _compensate(self, error: SwarmkeeperError) -> None:
        logger.warning(f"Service {self.service_id} did not converge, removing it: {error}")
        try:
            self.compensate()
        except Exception as cleanup:
            raise CompensationError(self.service_id, error, cleanup) from cleanup
