"""
Progress evaluation for replicated services.

A ``ConvergenceSession`` lives for one create or update of a service. Each
poll hands it the service and the tasks resolved per slot; it answers
whether the desired number of replicas is running and reports progress
through a plain callable.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Optional

from ..errors import ReplicaCountError
from ..models import Service, Task
from .states import TaskState

logger = logging.getLogger(__name__)


@dataclass
class SlotProgress:
    """A resolved slot with its stable display index (1-based)."""
    index: int
    slot: int
    task: Task


@dataclass
class Progress:
    """Snapshot of convergence progress after one evaluation."""
    service_id: str
    running: int
    replicas: int
    rollback: bool
    slots: list[SlotProgress] = field(default_factory=list)
    state_width: int = 0

    @property
    def converged(self) -> bool:
        return self.running == self.replicas


ProgressReporter = Callable[[Progress], None]


def log_progress(progress: Progress) -> None:
    """Default reporter: writes progress lines to the module logger."""
    logger.info(
        f"... progress: [{progress.running}/{progress.replicas}] - rollback: {progress.rollback}"
    )
    for slot in progress.slots:
        task = slot.task
        logger.debug(
            f"    {slot.index}/{progress.replicas}: "
            f"{task.state.value:<{progress.state_width}} task {task.id} "
            f"(desired {task.desired_state.value}) {task.status.message}"
        )


def replica_count(service: Service) -> int:
    """Return the replica count of a replicated service.

    Raises:
        ReplicaCountError: If the service is global or has no replica count
    """
    replicas = service.replicas
    if replicas is None:
        raise ReplicaCountError(service.id)
    return replicas


@dataclass
class ConvergenceSession:
    """Tracks convergence of one service across polls.

    Attributes:
        service_id: Service being converged
        reporter: Callable receiving a ``Progress`` while not converged
        done: Set once all replicas run, cleared again when a slot regresses
        replicas: Replica target seen on the first evaluation
        slot_indexes: Slot number -> compact index, for stable display order
        state_width: Longest state name seen, for aligned progress lines
    """
    service_id: str
    reporter: ProgressReporter = log_progress
    done: bool = False
    replicas: Optional[int] = None
    slot_indexes: dict[int, int] = field(default_factory=dict)
    state_width: int = 0

    def evaluate(self, service: Service, slots: dict[int, Task], rollback: bool = False) -> bool:
        """Evaluate resolved slots against the replica target.

        The target is read from ``service`` on the first evaluation and kept
        for the rest of the session.

        Args:
            service: Current service as inspected from the daemon
            slots: Output of ``tasks_by_slot``
            rollback: Whether the swarm is rolling back the update

        Returns:
            bool: True when exactly ``replicas`` slots run a task that is
            not being torn down

        Raises:
            ReplicaCountError: If the first service seen is not replicated with a count
        """
        if self.replicas is None:
            self.replicas = replica_count(service)
        replicas = self.replicas

        # a converged service has to stay converged
        if self.done:
            for task in slots.values():
                if task.state != TaskState.RUNNING:
                    logger.info(
                        f"Service {self.service_id} regressed: task {task.id} is {task.state.value}"
                    )
                    self.done = False
                    break

        running = 0
        for slot, task in slots.items():
            if slot not in self.slot_indexes:
                self.slot_indexes[slot] = len(self.slot_indexes) + 1
            self.state_width = max(self.state_width, len(task.state.value))

            if not task.desired_state.is_terminal and task.state == TaskState.RUNNING:
                running += 1

        if not self.done:
            self.reporter(self._progress(slots, running, replicas, rollback))
            if running == replicas:
                logger.info(f"DONE: all {running} replicas running")
                self.done = True

        return running == replicas

    def _progress(self, slots: dict[int, Task], running: int, replicas: int,
                  rollback: bool) -> Progress:
        ordered = sorted(
            (SlotProgress(self.slot_indexes[slot], slot, task) for slot, task in slots.items()),
            key=lambda entry: entry.index,
        )
        return Progress(
            service_id=self.service_id,
            running=running,
            replicas=replicas,
            rollback=rollback,
            slots=ordered,
            state_width=self.state_width,
        )
